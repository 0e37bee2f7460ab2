"""
Error taxonomy for the review analytics pipeline.

Record-level errors are recovered (skip and log); every other kind aborts
the run and is surfaced to the caller with its kind and context.
"""

from typing import Any


class PipelineError(Exception):
    """Base class for all pipeline errors."""

    kind = "pipeline_error"

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict[str, Any]:
        """Structured form for logs and operator output."""
        return {
            "kind": self.kind,
            "message": self.message,
            "context": self.context,
        }

    def __str__(self) -> str:
        if not self.context:
            return self.message
        details = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
        return f"{self.message} ({details})"


class RecordError(PipelineError):
    """A single malformed review. Skipped; the batch continues."""

    kind = "record_error"

    def __init__(self, message: str, review_id: str | None = None, **context: Any):
        super().__init__(message, review_id=review_id, **context)
        self.review_id = review_id


class ConfigError(PipelineError):
    """Invalid configuration, raised before a run starts."""

    kind = "config_error"


class TrainingError(PipelineError):
    """Degenerate training data or a diverging optimization."""

    kind = "training_error"


class SinkError(PipelineError):
    """Failure writing to an external sink."""

    kind = "sink_error"


class ModelNotFoundError(PipelineError):
    """Inference requested without a persisted model."""

    kind = "model_not_found"


class PipelineCancelled(PipelineError):
    """Run cancelled between partitions; nothing was published."""

    kind = "cancelled"
