"""
Persisted model artifact: vocabulary, classifier weights and the text
settings needed to reproduce training-time features at inference.

Layout of an artifact directory:
    artifact.json       schema version, stopwords, metrics, creation time
    vocabulary.json     VocabularyModel state
    config.json         classifier config
    pytorch_model.bin   classifier state_dict
"""

import json
import logging
import shutil
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator

from .exceptions import ModelNotFoundError
from .features import VOCABULARY_FILENAME, VocabularyModel
from .inference import SentimentPredictor
from .model import CONFIG_FILENAME, WEIGHTS_FILENAME, ModelParameters, SentimentClassifier
from .preprocessing import TextNormalizer

logger = logging.getLogger("review_analytics")


ARTIFACT_SCHEMA_VERSION = 1
ARTIFACT_FILENAME = "artifact.json"
REQUIRED_FILES = (ARTIFACT_FILENAME, VOCABULARY_FILENAME, CONFIG_FILENAME, WEIGHTS_FILENAME)


@dataclass(eq=False)
class ModelArtifact:
    """Everything inference needs, as one serializable value."""

    vocabulary: VocabularyModel
    params: ModelParameters
    stopwords: frozenset[str]
    metadata: dict[str, Any] = field(default_factory=dict)
    schema_version: int = ARTIFACT_SCHEMA_VERSION

    def __post_init__(self):
        if self.vocabulary.size != self.params.n_features:
            raise ValueError(
                f"Vocabulary size ({self.vocabulary.size}) does not match model "
                f"dimension ({self.params.n_features})"
            )
        self.stopwords = frozenset(self.stopwords)

    def build_predictor(self) -> SentimentPredictor:
        return SentimentPredictor(
            vocabulary=self.vocabulary,
            params=self.params,
            normalizer=TextNormalizer(self.stopwords),
        )


def stage_artifact(artifact: ModelArtifact, path: str | Path) -> Path:
    """
    Write an artifact to a staging directory next to `path`.

    Nothing at `path` changes until commit_artifact is called with the
    returned directory.

    Args:
        artifact: Artifact to save
        path: Target directory the artifact will replace

    Returns:
        Staging directory path
    """
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    staging = target.parent / f".{target.name}.staging-{uuid.uuid4().hex}"

    try:
        staging.mkdir()
        artifact.vocabulary.save(staging)
        SentimentClassifier.from_parameters(artifact.params).save_pretrained(staging)

        manifest = {
            "schema_version": artifact.schema_version,
            "created_at": datetime.now(timezone.utc).isoformat(),
            "stopwords": sorted(artifact.stopwords),
            "n_features": artifact.params.n_features,
            "metadata": artifact.metadata,
        }
        with open(staging / ARTIFACT_FILENAME, "w", encoding="utf-8") as f:
            json.dump(manifest, f, ensure_ascii=False, indent=2, default=str)
    except Exception:
        discard_staged(staging)
        raise

    logger.debug(f"Model artifact staged in {staging}")
    return staging


def commit_artifact(staging: str | Path, path: str | Path) -> Path:
    """
    Swap a staged artifact in at `path`.

    The previous artifact is moved aside first and restored if the swap
    fails.

    Returns:
        Target directory path
    """
    staging = Path(staging)
    target = Path(path)
    backup = target.parent / f".{target.name}.previous-{uuid.uuid4().hex}"

    try:
        if target.exists():
            target.rename(backup)
        staging.rename(target)
    except Exception:
        if backup.exists() and not target.exists():
            backup.rename(target)
        raise

    shutil.rmtree(backup, ignore_errors=True)
    logger.info(f"Model artifact saved to {target}")
    return target


def discard_staged(staging: str | Path) -> None:
    """Remove a staged artifact that will not be committed."""
    shutil.rmtree(staging, ignore_errors=True)


def save_artifact(artifact: ModelArtifact, path: str | Path) -> Path:
    """
    Save an artifact, replacing any previous one at `path`.

    A failed save leaves the previous artifact untouched.
    """
    staging = stage_artifact(artifact, path)
    try:
        return commit_artifact(staging, path)
    except Exception:
        discard_staged(staging)
        raise


def load_artifact(path: str | Path) -> ModelArtifact:
    """
    Load an artifact saved with save_artifact.

    Raises:
        ModelNotFoundError: If the directory is missing, incomplete or
            written with an unsupported schema
    """
    load_path = Path(path)

    if not load_path.is_dir():
        raise ModelNotFoundError(
            "No trained model found; run the pipeline in train mode first",
            model_dir=str(load_path),
        )

    missing = [name for name in REQUIRED_FILES if not (load_path / name).exists()]
    if missing:
        raise ModelNotFoundError(
            "Model directory is incomplete",
            model_dir=str(load_path),
            missing=missing,
        )

    try:
        with open(load_path / ARTIFACT_FILENAME, "r", encoding="utf-8") as f:
            manifest = json.load(f)

        version = manifest.get("schema_version")
        if version != ARTIFACT_SCHEMA_VERSION:
            raise ValueError(
                f"Unsupported artifact schema version {version} "
                f"(expected {ARTIFACT_SCHEMA_VERSION})"
            )

        vocabulary = VocabularyModel.load(load_path)
        params = SentimentClassifier.from_pretrained(load_path).to_parameters()
        artifact = ModelArtifact(
            vocabulary=vocabulary,
            params=params,
            stopwords=frozenset(manifest.get("stopwords", [])),
            metadata=manifest.get("metadata", {}),
            schema_version=version,
        )
    except (OSError, ValueError, KeyError, RuntimeError) as e:
        raise ModelNotFoundError(
            f"Model artifact could not be read: {e}",
            model_dir=str(load_path),
        ) from e

    logger.info(f"Model artifact loaded from {load_path} ({params.n_features} features)")
    return artifact


@contextmanager
def open_artifact(path: str | Path) -> Iterator[ModelArtifact]:
    """Scoped access to a persisted artifact; all files are closed on entry."""
    artifact = load_artifact(path)
    try:
        yield artifact
    finally:
        logger.debug(f"Released model artifact {path}")
