"""
Pipeline orchestrator.

Sequences normalization, feature extraction, classification and trend
aggregation over one batch of reviews, then publishes predictions to the
document sink and trend summaries to the tabular sink.

Stages:
    parse -> (train: fit vocabulary, train, stage model) -> classify
    partitions -> merge counts -> publish -> (train: commit model)

Nothing is written to a sink until every stage has succeeded, and a newly
trained model replaces the previous one only after publishing.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Mapping

from tqdm import tqdm

from .aggregation import (
    GROUP_KEYS,
    SUMMARY_COLUMNS,
    GroupCounts,
    count_partition,
    merge_counts,
    summarize,
)
from .artifacts import ModelArtifact, commit_artifact, discard_staged, open_artifact, stage_artifact
from .config import RATING_THRESHOLD_POLICY, PipelineConfig
from .data_loader import get_data_statistics, parse_reviews
from .evaluate import compute_metrics
from .exceptions import (
    ConfigError,
    PipelineCancelled,
    PipelineError,
    RecordError,
    SinkError,
    TrainingError,
)
from .features import FeatureExtractor
from .inference import SentimentPredictor, predict_scores
from .preprocessing import TextNormalizer
from .records import LabeledExample, Prediction, Review, TrendSummary
from .sinks import (
    CsvTabularSink,
    DocumentSink,
    InMemoryDocumentSink,
    InMemoryTabularSink,
    JsonDocumentSink,
    TabularSink,
)
from .train import fit_classifier, validate_examples
from .utils import chunked

logger = logging.getLogger("review_analytics")


TRAIN_MODE = "train"
INFER_MODE = "infer"
MODES = (TRAIN_MODE, INFER_MODE)
TREND_TABLES = {"brand": "trend_by_brand", "category": "trend_by_category"}


@dataclass
class RunResult:
    """Outcome of one pipeline run."""

    mode: str
    predictions: list[Prediction]
    summaries: dict[str, list[TrendSummary]]
    record_errors: list[RecordError] = field(default_factory=list)
    metrics: dict[str, Any] = field(default_factory=dict)

    @property
    def all_summaries(self) -> list[TrendSummary]:
        return [s for key in GROUP_KEYS for s in self.summaries.get(key, [])]


@dataclass
class PartitionResult:
    predictions: list[Prediction]
    counts: dict[str, GroupCounts]


def build_sinks(
    predictions_path: str | None = None,
    trends_dir: str | None = None,
) -> tuple[DocumentSink, TabularSink]:
    """File-backed sinks where a location is given, in-memory otherwise."""
    document_sink = JsonDocumentSink(predictions_path) if predictions_path else InMemoryDocumentSink()
    tabular_sink = CsvTabularSink(trends_dir) if trends_dir else InMemoryTabularSink()
    return document_sink, tabular_sink


class PipelineOrchestrator:
    """
    Runs the batch pipeline in train or infer mode.

    Example:
        orchestrator = PipelineOrchestrator(config, JsonDocumentSink(path), CsvTabularSink(dir))
        result = orchestrator.run(rows, mode="infer")
    """

    def __init__(
        self,
        config: PipelineConfig | None = None,
        document_sink: DocumentSink | None = None,
        tabular_sink: TabularSink | None = None,
        model_dir: str | Path | None = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            config: Pipeline configuration; validated here
            document_sink: Destination for per-review predictions
            tabular_sink: Destination for trend summaries
            model_dir: Override config.model_dir
        """
        self.config = (config or PipelineConfig()).validate()
        self.document_sink = document_sink if document_sink is not None else InMemoryDocumentSink()
        self.tabular_sink = tabular_sink if tabular_sink is not None else InMemoryTabularSink()
        self.model_dir = Path(model_dir or self.config.model_dir)

        self.normalizer = TextNormalizer(self.config.stopwords)
        self.extractor = FeatureExtractor(
            max_vocab_size=self.config.max_vocabulary_size,
            min_document_frequency=self.config.min_document_frequency,
            use_idf=self.config.use_idf,
        )
        self._cancel_event = threading.Event()

    def cancel(self) -> None:
        """Request cancellation; honoured at the next partition boundary."""
        self._cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def _check_cancelled(self, stage: str) -> None:
        if self._cancel_event.is_set():
            raise PipelineCancelled("Pipeline run cancelled", stage=stage)

    def run(
        self,
        batch: Iterable[Mapping[str, Any] | Review],
        mode: str = INFER_MODE,
        model: ModelArtifact | None = None,
    ) -> RunResult:
        """
        Run the pipeline over one batch.

        Args:
            batch: Raw rows or parsed reviews
            mode: 'train' to fit and persist a new model, 'infer' to use an
                existing one
            model: Artifact to use in infer mode instead of loading
                config.model_dir

        Returns:
            RunResult with predictions, summaries and skipped records

        Raises:
            ConfigError: Unknown mode
            TrainingError: Degenerate training data (train mode)
            ModelNotFoundError: No persisted model (infer mode)
            SinkError: Publishing failed
            PipelineCancelled: cancel() was called during the run
        """
        if mode not in MODES:
            raise ConfigError(f"Unknown pipeline mode: {mode!r}", allowed=list(MODES))

        logger.info("=" * 60)
        logger.info(f"Starting pipeline run (mode={mode})")
        logger.info("=" * 60)

        staged_model: Path | None = None
        try:
            reviews, record_errors = self._parse(batch)
            metrics: dict[str, Any] = {}

            if mode == TRAIN_MODE:
                artifact, metrics, staged_model = self._train(reviews)
                predictions, summaries = self._classify(reviews, artifact)
            elif model is not None:
                predictions, summaries = self._classify(reviews, model)
            else:
                with open_artifact(self.model_dir) as artifact:
                    predictions, summaries = self._classify(reviews, artifact)

            self._check_cancelled("publish")
            self._publish(predictions, summaries)

            if staged_model is not None:
                self._commit_model(staged_model)
                staged_model = None
        except PipelineError as e:
            logger.error(f"Pipeline run failed: {e.kind}: {e}")
            raise
        finally:
            if staged_model is not None:
                discard_staged(staged_model)
            self._cancel_event.clear()

        logger.info(
            f"Pipeline run complete: {len(predictions)} predictions, "
            f"{sum(len(v) for v in summaries.values())} trend rows, "
            f"{len(record_errors)} skipped records"
        )

        return RunResult(
            mode=mode,
            predictions=predictions,
            summaries=summaries,
            record_errors=record_errors,
            metrics=metrics,
        )

    def _parse(self, batch) -> tuple[list[Review], list[RecordError]]:
        reviews, record_errors = parse_reviews(batch)
        if reviews and logger.isEnabledFor(logging.DEBUG):
            logger.debug(f"Batch statistics: {get_data_statistics(reviews)}")
        self._check_cancelled("parse")
        return reviews, record_errors

    def _train(self, reviews: list[Review]) -> tuple[ModelArtifact, dict[str, Any], Path]:
        """
        Fit vocabulary and classifier on the batch.

        The model is only staged here; run() commits it once the batch has
        been published.
        """
        label_policy = self.config.label_policy
        labeled = [(review, label_policy(review.rating, review.recommended)) for review in reviews]
        labeled = [(review, label) for review, label in labeled if label is not None]

        excluded = len(reviews) - len(labeled)
        if excluded:
            logger.info(f"{excluded} reviews have no derivable label and are not used for training")

        if not labeled:
            raise TrainingError("No labeled reviews available for training", reviews=len(reviews))

        token_sequences = self.normalizer.normalize_batch(review.text for review, _ in labeled)

        try:
            vocabulary = self.extractor.fit(token_sequences)
        except ValueError as e:
            raise TrainingError(f"Cannot build vocabulary: {e}") from e

        features = self.extractor.transform_batch(token_sequences, vocabulary)
        examples = [
            LabeledExample(vector=vector, label=label)
            for vector, (_, label) in zip(features, labeled)
        ]
        features, labels = validate_examples(examples)

        self._check_cancelled("train")
        model, history = fit_classifier(features, labels, self.config)
        params = model.to_parameters()

        metrics = compute_metrics(labels, predict_scores(features, params))
        metrics.update({
            "training_examples": len(examples),
            "vocabulary_size": vocabulary.size,
            "iterations": history.iterations,
            "converged": history.converged,
            "final_loss": history.final_loss,
        })
        logger.info(
            f"Training accuracy {metrics['accuracy']:.4f} on {len(examples)} examples "
            f"({history.iterations} iterations)"
        )

        metadata = {
            "metrics": metrics,
            "random_seed": self.config.random_seed,
            "label_policy": self.config.label_policy_name,
            "use_idf": self.config.use_idf,
        }
        if self.config.label_policy_name == RATING_THRESHOLD_POLICY:
            metadata["positive_rating_threshold"] = self.config.positive_rating_threshold

        artifact = ModelArtifact(
            vocabulary=vocabulary,
            params=params,
            stopwords=self.config.stopwords,
            metadata=metadata,
        )

        self._check_cancelled("save model")
        try:
            staged = stage_artifact(artifact, self.model_dir)
        except OSError as e:
            raise TrainingError(
                f"Cannot persist trained model: {e}",
                model_dir=str(self.model_dir),
            ) from e

        return artifact, metrics, staged

    def _commit_model(self, staged: Path) -> None:
        """Make the newly trained model the current one."""
        try:
            commit_artifact(staged, self.model_dir)
        except OSError as e:
            raise TrainingError(
                f"Cannot persist trained model: {e}",
                model_dir=str(self.model_dir),
            ) from e

    def _classify_partition(
        self,
        predictor: SentimentPredictor,
        partition: list[Review],
    ) -> PartitionResult:
        predictions = predictor.predict_reviews(partition)
        counts = {key: count_partition(predictions, key) for key in GROUP_KEYS}
        return PartitionResult(predictions=predictions, counts=counts)

    def _classify(
        self,
        reviews: list[Review],
        artifact: ModelArtifact,
    ) -> tuple[list[Prediction], dict[str, list[TrendSummary]]]:
        """
        Map stage over partitions, then merge per-partition counts.

        Partitions are independent; the predictor is shared read-only.
        """
        predictor = artifact.build_predictor()
        partitions = chunked(reviews, self.config.partition_size)
        results: list[PartitionResult] = []

        logger.info(
            f"Classifying {len(reviews)} reviews in {len(partitions)} partitions "
            f"({self.config.num_workers} workers)"
        )

        progress_bar = tqdm(total=len(partitions), desc="Classifying", leave=False)
        try:
            if self.config.num_workers == 1:
                for partition in partitions:
                    self._check_cancelled("classify")
                    results.append(self._classify_partition(predictor, partition))
                    progress_bar.update(1)
            else:
                with ThreadPoolExecutor(max_workers=self.config.num_workers) as executor:
                    futures = [
                        executor.submit(self._classify_partition, predictor, partition)
                        for partition in partitions
                    ]
                    for future in futures:
                        if self._cancel_event.is_set():
                            for pending in futures:
                                pending.cancel()
                        self._check_cancelled("classify")
                        results.append(future.result())
                        progress_bar.update(1)
        finally:
            progress_bar.close()

        predictions = [p for result in results for p in result.predictions]
        summaries = {
            key: summarize(merge_counts(result.counts[key] for result in results), key)
            for key in GROUP_KEYS
        }
        return predictions, summaries

    def _publish(
        self,
        predictions: list[Prediction],
        summaries: dict[str, list[TrendSummary]],
    ) -> None:
        """
        Write predictions, then trend tables.

        Prediction upserts are idempotent, so a failure writing the tables
        can be recovered by re-running the batch.
        """
        documents = [prediction.to_document() for prediction in predictions]
        tables = {
            TREND_TABLES[key]: [summary.to_row() for summary in summaries.get(key, [])]
            for key in GROUP_KEYS
        }

        try:
            written = self.document_sink.upsert(documents)
            self.tabular_sink.replace_tables(tables, columns={name: SUMMARY_COLUMNS for name in tables})
        except SinkError:
            raise
        except Exception as e:
            raise SinkError(f"Publishing results failed: {e}") from e

        logger.info(
            f"Published {written} predictions and "
            f"{sum(len(rows) for rows in tables.values())} trend rows"
        )
