"""
Pipeline configuration.

Configuration is read from a YAML file with one section per stage
(see configs/pipeline_config.yaml) and validated before a run starts.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Callable

from .exceptions import ConfigError
from .preprocessing import DEFAULT_STOPWORDS
from .utils import load_config

logger = logging.getLogger("review_analytics")


LabelPolicy = Callable[[float | None, bool | None], int | None]

RATING_THRESHOLD_POLICY = "rating_threshold"


def rating_threshold_policy(threshold: float = 4.0) -> LabelPolicy:
    """
    Build the default label policy.

    A rating at or above `threshold` is positive, below it negative. When the
    rating is missing the recommend flag decides; with neither the review is
    left unlabeled (None) and excluded from training.
    """

    def policy(rating: float | None, recommended: bool | None) -> int | None:
        if rating is not None:
            return 1 if rating >= threshold else 0
        if recommended is not None:
            return 1 if recommended else 0
        return None

    return policy


@dataclass
class PipelineConfig:
    """All options accepted by the pipeline orchestrator."""

    stopwords: frozenset[str] = DEFAULT_STOPWORDS
    max_vocabulary_size: int | None = 20000
    min_document_frequency: int = 1
    use_idf: bool = True
    regularization_strength: float = 0.01
    max_train_iterations: int = 500
    convergence_threshold: float = 1e-6
    learning_rate: float = 0.1
    batch_size: int | None = None
    positive_rating_threshold: float = 4.0
    random_seed: int = 42
    partition_size: int = 256
    num_workers: int = 1
    model_dir: str = "models/sentiment_model"
    log_level: str = "INFO"
    log_file: str | None = None
    label_policy: LabelPolicy | None = field(default=None, compare=False, repr=False)
    _custom_policy: bool = field(default=False, init=False, compare=False, repr=False)

    def __post_init__(self):
        self.stopwords = frozenset(word.lower() for word in self.stopwords)
        # YAML reads exponent literals such as 1e-6 as strings
        self.regularization_strength = float(self.regularization_strength)
        self.convergence_threshold = float(self.convergence_threshold)
        self.learning_rate = float(self.learning_rate)
        self.positive_rating_threshold = float(self.positive_rating_threshold)
        self._custom_policy = self.label_policy is not None
        if not self._custom_policy:
            self.label_policy = rating_threshold_policy(self.positive_rating_threshold)

    @property
    def label_policy_name(self) -> str:
        """Name recorded with trained models."""
        if not self._custom_policy:
            return RATING_THRESHOLD_POLICY
        return getattr(self.label_policy, "__name__", type(self.label_policy).__name__)

    def validate(self) -> "PipelineConfig":
        """
        Check option ranges and rebuild the default label policy from the
        current positive_rating_threshold.

        Raises:
            ConfigError: On the first invalid option found
        """
        if self.max_vocabulary_size is not None and self.max_vocabulary_size < 1:
            raise ConfigError(
                "max_vocabulary_size must be positive",
                max_vocabulary_size=self.max_vocabulary_size,
            )
        if self.min_document_frequency < 1:
            raise ConfigError(
                "min_document_frequency must be at least 1",
                min_document_frequency=self.min_document_frequency,
            )
        if self.regularization_strength < 0:
            raise ConfigError(
                "regularization_strength cannot be negative",
                regularization_strength=self.regularization_strength,
            )
        if self.max_train_iterations < 1:
            raise ConfigError(
                "max_train_iterations must be at least 1",
                max_train_iterations=self.max_train_iterations,
            )
        if self.convergence_threshold < 0:
            raise ConfigError(
                "convergence_threshold cannot be negative",
                convergence_threshold=self.convergence_threshold,
            )
        if self.learning_rate <= 0:
            raise ConfigError("learning_rate must be positive", learning_rate=self.learning_rate)
        if self.batch_size is not None and self.batch_size < 1:
            raise ConfigError("batch_size must be positive", batch_size=self.batch_size)
        if not math.isfinite(self.positive_rating_threshold):
            raise ConfigError(
                "positive_rating_threshold must be a finite number",
                positive_rating_threshold=self.positive_rating_threshold,
            )
        if not self._custom_policy:
            self.label_policy = rating_threshold_policy(self.positive_rating_threshold)
        if self.partition_size < 1:
            raise ConfigError("partition_size must be positive", partition_size=self.partition_size)
        if self.num_workers < 1:
            raise ConfigError("num_workers must be positive", num_workers=self.num_workers)
        if not callable(self.label_policy):
            raise ConfigError("label_policy must be callable")
        return self

    @classmethod
    def from_dict(cls, config: dict[str, Any]) -> "PipelineConfig":
        """
        Build from the sectioned dictionary layout of the YAML file.

        Unknown keys are ignored; missing keys keep their defaults.
        """
        text_cfg = config.get("text", {}) or {}
        features_cfg = config.get("features", {}) or {}
        training_cfg = config.get("training", {}) or {}
        labels_cfg = config.get("labels", {}) or {}
        pipeline_cfg = config.get("pipeline", {}) or {}
        paths_cfg = config.get("paths", {}) or {}
        logging_cfg = config.get("logging", {}) or {}

        kwargs: dict[str, Any] = {}

        if text_cfg.get("stopwords") is not None:
            kwargs["stopwords"] = frozenset(text_cfg["stopwords"])
        if text_cfg.get("extra_stopwords"):
            base = kwargs.get("stopwords", DEFAULT_STOPWORDS)
            kwargs["stopwords"] = frozenset(base) | frozenset(text_cfg["extra_stopwords"])

        for key in ("max_vocabulary_size", "min_document_frequency", "use_idf"):
            if key in features_cfg:
                kwargs[key] = features_cfg[key]

        for key in (
            "regularization_strength",
            "max_train_iterations",
            "convergence_threshold",
            "learning_rate",
            "batch_size",
            "random_seed",
        ):
            if key in training_cfg:
                kwargs[key] = training_cfg[key]

        if "positive_rating_threshold" in labels_cfg:
            kwargs["positive_rating_threshold"] = labels_cfg["positive_rating_threshold"]

        for key in ("partition_size", "num_workers"):
            if key in pipeline_cfg:
                kwargs[key] = pipeline_cfg[key]

        if "model_dir" in paths_cfg:
            kwargs["model_dir"] = paths_cfg["model_dir"]

        if "level" in logging_cfg:
            kwargs["log_level"] = logging_cfg["level"]
        if "file" in logging_cfg:
            kwargs["log_file"] = logging_cfg["file"]

        try:
            return cls(**kwargs)
        except (AttributeError, TypeError, ValueError) as e:
            raise ConfigError(f"Invalid configuration: {e}") from e

    @classmethod
    def from_yaml(cls, path: str) -> "PipelineConfig":
        """Load and validate configuration from a YAML file."""
        try:
            raw = load_config(path)
        except FileNotFoundError as e:
            raise ConfigError(str(e), path=path) from e
        logger.info(f"Loaded configuration from {path}")
        return cls.from_dict(raw).validate()

    def to_dict(self) -> dict[str, Any]:
        """Sectioned dictionary suitable for save_config."""
        return {
            "text": {"stopwords": sorted(self.stopwords)},
            "features": {
                "max_vocabulary_size": self.max_vocabulary_size,
                "min_document_frequency": self.min_document_frequency,
                "use_idf": self.use_idf,
            },
            "training": {
                "regularization_strength": self.regularization_strength,
                "max_train_iterations": self.max_train_iterations,
                "convergence_threshold": self.convergence_threshold,
                "learning_rate": self.learning_rate,
                "batch_size": self.batch_size,
                "random_seed": self.random_seed,
            },
            "labels": {"positive_rating_threshold": self.positive_rating_threshold},
            "pipeline": {
                "partition_size": self.partition_size,
                "num_workers": self.num_workers,
            },
            "paths": {"model_dir": self.model_dir},
            "logging": {"level": self.log_level, "file": self.log_file},
        }
