"""
Tests for model artifact persistence.

Tests cover:
- Save/load round trip
- Missing and incomplete artifacts
- Failed saves leaving the previous artifact intact
- Staged saves committed or discarded
"""

import json

import numpy as np
import pytest

from review_analytics.artifacts import (
    ARTIFACT_FILENAME,
    REQUIRED_FILES,
    ModelArtifact,
    commit_artifact,
    discard_staged,
    load_artifact,
    open_artifact,
    save_artifact,
    stage_artifact,
)
from review_analytics.exceptions import ModelNotFoundError
from review_analytics.features import FeatureExtractor
from review_analytics.model import ModelParameters, SentimentClassifier


def build_artifact(weights, stopwords=("the", "a")) -> ModelArtifact:
    vocabulary = FeatureExtractor().fit([["awful", "screen"], ["great"]])
    return ModelArtifact(
        vocabulary=vocabulary,
        params=ModelParameters(weights=np.asarray(weights, dtype=np.float64), bias=0.25),
        stopwords=frozenset(stopwords),
        metadata={"metrics": {"accuracy": 1.0}},
    )


class TestSaveLoad:
    """Tests for artifact round trip."""

    def test_save_creates_files(self, tmp_path):
        """Test that every required file is written."""
        target = save_artifact(build_artifact([-1.0, 1.0, 0.0]), tmp_path / "model")
        for name in REQUIRED_FILES:
            assert (target / name).exists()

    def test_round_trip(self, tmp_path):
        """Test loaded artifact matches the saved one."""
        artifact = build_artifact([-1.0, 1.0, 0.5])
        save_artifact(artifact, tmp_path / "model")
        loaded = load_artifact(tmp_path / "model")
        assert loaded.vocabulary == artifact.vocabulary
        np.testing.assert_array_equal(loaded.params.weights, artifact.params.weights)
        assert loaded.params.bias == artifact.params.bias
        assert loaded.stopwords == artifact.stopwords
        assert loaded.metadata["metrics"]["accuracy"] == 1.0

    def test_loaded_predictor_uses_stored_stopwords(self, tmp_path):
        """Test that the predictor drops the stopwords stored with the model."""
        save_artifact(build_artifact([-1.0, 1.0, 0.0], stopwords={"great"}), tmp_path / "model")
        with open_artifact(tmp_path / "model") as artifact:
            predictor = artifact.build_predictor()
        assert predictor.normalizer.normalize("great screen") == ["screen"]

    def test_overwrite(self, tmp_path):
        """Test that saving replaces the previous artifact."""
        save_artifact(build_artifact([1.0, 1.0, 1.0]), tmp_path / "model")
        save_artifact(build_artifact([2.0, 2.0, 2.0]), tmp_path / "model")
        loaded = load_artifact(tmp_path / "model")
        np.testing.assert_array_equal(loaded.params.weights, [2.0, 2.0, 2.0])
        assert sorted(p.name for p in tmp_path.iterdir()) == ["model"]

    def test_dimension_mismatch_rejected(self):
        """Test vocabulary and parameters must agree."""
        with pytest.raises(ValueError):
            build_artifact([1.0, 2.0])


class TestMissingArtifact:
    """Tests for missing or unreadable artifacts."""

    def test_missing_directory(self, tmp_path):
        """Test loading when nothing was trained."""
        with pytest.raises(ModelNotFoundError) as exc_info:
            load_artifact(tmp_path / "absent")
        assert exc_info.value.kind == "model_not_found"

    def test_incomplete_directory(self, tmp_path):
        """Test loading a directory missing the weights."""
        target = save_artifact(build_artifact([0.0, 0.0, 0.0]), tmp_path / "model")
        (target / "pytorch_model.bin").unlink()
        with pytest.raises(ModelNotFoundError) as exc_info:
            load_artifact(target)
        assert "pytorch_model.bin" in exc_info.value.context["missing"]

    def test_unsupported_schema(self, tmp_path):
        """Test loading an artifact written with another schema version."""
        target = save_artifact(build_artifact([0.0, 0.0, 0.0]), tmp_path / "model")
        manifest = json.loads((target / ARTIFACT_FILENAME).read_text())
        manifest["schema_version"] = 99
        (target / ARTIFACT_FILENAME).write_text(json.dumps(manifest))
        with pytest.raises(ModelNotFoundError):
            load_artifact(target)

    def test_open_artifact_missing(self, tmp_path):
        """Test the context manager surfaces a missing model."""
        with pytest.raises(ModelNotFoundError):
            with open_artifact(tmp_path / "absent"):
                pass


class TestFailedSave:
    """Tests for save failures."""

    def test_failed_save_keeps_previous(self, tmp_path, monkeypatch):
        """Test a save failing midway leaves the previous artifact loadable."""
        save_artifact(build_artifact([1.0, 2.0, 3.0]), tmp_path / "model")

        def fail(self, save_path):
            raise OSError("disk full")

        monkeypatch.setattr(SentimentClassifier, "save_pretrained", fail)

        with pytest.raises(OSError):
            save_artifact(build_artifact([9.0, 9.0, 9.0]), tmp_path / "model")

        monkeypatch.undo()
        loaded = load_artifact(tmp_path / "model")
        np.testing.assert_array_equal(loaded.params.weights, [1.0, 2.0, 3.0])
        assert sorted(p.name for p in tmp_path.iterdir()) == ["model"]


class TestStagedSave:
    """Tests for staging an artifact before it replaces the current one."""

    def test_stage_leaves_target_untouched(self, tmp_path):
        """Test staging writes beside the target without replacing it."""
        save_artifact(build_artifact([-1.0, 1.0, 0.0]), tmp_path / "model")
        staging = stage_artifact(build_artifact([2.0, 2.0, 2.0]), tmp_path / "model")

        assert staging.parent == tmp_path
        assert staging.name.startswith(".model.staging-")
        for name in REQUIRED_FILES:
            assert (staging / name).exists()
        np.testing.assert_array_equal(load_artifact(tmp_path / "model").params.weights, [-1.0, 1.0, 0.0])

    def test_commit_replaces_target(self, tmp_path):
        """Test committing swaps the staged artifact in and cleans up."""
        save_artifact(build_artifact([-1.0, 1.0, 0.0]), tmp_path / "model")
        staging = stage_artifact(build_artifact([2.0, 2.0, 2.0]), tmp_path / "model")

        commit_artifact(staging, tmp_path / "model")

        np.testing.assert_array_equal(load_artifact(tmp_path / "model").params.weights, [2.0, 2.0, 2.0])
        assert [p.name for p in tmp_path.iterdir()] == ["model"]

    def test_discard_keeps_target(self, tmp_path):
        """Test discarding a staged artifact removes it and keeps the current one."""
        save_artifact(build_artifact([-1.0, 1.0, 0.0]), tmp_path / "model")
        staging = stage_artifact(build_artifact([2.0, 2.0, 2.0]), tmp_path / "model")

        discard_staged(staging)

        assert not staging.exists()
        assert [p.name for p in tmp_path.iterdir()] == ["model"]
        np.testing.assert_array_equal(load_artifact(tmp_path / "model").params.weights, [-1.0, 1.0, 0.0])

    def test_commit_without_previous(self, tmp_path):
        """Test committing where no artifact existed yet."""
        staging = stage_artifact(build_artifact([0.5, 0.5, 0.5]), tmp_path / "models" / "sentiment")
        commit_artifact(staging, tmp_path / "models" / "sentiment")
        assert load_artifact(tmp_path / "models" / "sentiment").params.bias == 0.25
