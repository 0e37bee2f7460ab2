"""
Training for the sentiment classifier, and the training entry point.

Usage:
    python -m review_analytics.train --config configs/pipeline_config.yaml --input data/reviews.csv
    python -m review_analytics.train --config configs/pipeline_config.yaml --input data/reviews.csv --verbose
    python -m review_analytics.train --config configs/pipeline_config.yaml --input data/reviews.csv --max-iterations 1000 --lr 0.05
"""

import argparse
import logging
import math
import sys
import time
from dataclasses import dataclass, field
from typing import Sequence

import numpy as np
import torch
import torch.nn as nn
from torch.utils.data import DataLoader, TensorDataset
from tqdm import tqdm

from .config import PipelineConfig
from .exceptions import TrainingError
from .model import ModelParameters, SentimentClassifier
from .records import LabeledExample
from .utils import AverageMeter, ConvergenceMonitor, set_seed

logger = logging.getLogger("review_analytics")


@dataclass
class TrainingHistory:
    """Loss trajectory of a training run."""

    losses: list[float] = field(default_factory=list)
    converged: bool = False
    elapsed_seconds: float = 0.0

    @property
    def iterations(self) -> int:
        return len(self.losses)

    @property
    def final_loss(self) -> float | None:
        return self.losses[-1] if self.losses else None


def validate_examples(examples: Sequence[LabeledExample]) -> tuple[np.ndarray, np.ndarray]:
    """
    Check that examples can be trained on and stack them.

    Args:
        examples: Labeled feature vectors

    Returns:
        Tuple of (features [n, d], labels [n])

    Raises:
        TrainingError: On an empty set, mismatched dimensions, invalid labels
            or a single class
    """
    if len(examples) == 0:
        raise TrainingError("Cannot train on an empty example set")

    first = np.asarray(examples[0].vector)
    if first.ndim != 1 or first.shape[0] == 0:
        raise TrainingError(
            "Feature vectors must be non-empty 1-D arrays",
            shape=tuple(first.shape),
        )
    n_features = first.shape[0]

    for i, example in enumerate(examples):
        vector = np.asarray(example.vector)
        if vector.shape != (n_features,):
            raise TrainingError(
                "Feature vector dimension mismatch",
                index=i,
                expected=n_features,
                actual=tuple(vector.shape),
            )
        if example.label not in (0, 1):
            raise TrainingError("Labels must be 0 or 1", index=i, label=example.label)

    features = np.vstack([np.asarray(e.vector, dtype=np.float64) for e in examples])
    labels = np.array([e.label for e in examples], dtype=np.float64)

    n_positive = int(labels.sum())
    if n_positive == 0 or n_positive == len(labels):
        raise TrainingError(
            "Training data contains a single class",
            positive=n_positive,
            negative=len(labels) - n_positive,
        )

    if not np.all(np.isfinite(features)):
        raise TrainingError("Feature vectors contain non-finite values")

    return features, labels


def fit_classifier(
    features: np.ndarray,
    labels: np.ndarray,
    config: PipelineConfig,
    show_progress: bool = False,
) -> tuple[SentimentClassifier, TrainingHistory]:
    """
    Minimize L2-regularized cross-entropy with Adam.

    Training runs for at most `config.max_train_iterations` passes over the
    data and stops early once the epoch loss changes by less than
    `config.convergence_threshold`. With the same inputs and seed the
    resulting parameters are bit-identical.

    Args:
        features: Feature matrix [n, d]
        labels: Binary labels [n]
        config: Pipeline configuration
        show_progress: Display a progress bar

    Returns:
        Tuple of (trained model, training history)
    """
    set_seed(config.random_seed)
    generator = torch.Generator().manual_seed(config.random_seed)

    model = SentimentClassifier(features.shape[1])
    model.reset_parameters(generator=generator)

    x = torch.from_numpy(np.ascontiguousarray(features, dtype=np.float64))
    y = torch.from_numpy(np.ascontiguousarray(labels, dtype=np.float64))

    if config.batch_size is None or config.batch_size >= len(y):
        batches = None
    else:
        batches = DataLoader(
            TensorDataset(x, y),
            batch_size=config.batch_size,
            shuffle=True,
            generator=generator,
        )

    criterion = nn.BCEWithLogitsLoss()
    optimizer = torch.optim.Adam(model.parameters(), lr=config.learning_rate)
    monitor = ConvergenceMonitor(config.convergence_threshold)
    history = TrainingHistory()

    def step(batch_x: torch.Tensor, batch_y: torch.Tensor) -> float:
        optimizer.zero_grad()
        logits = model(batch_x)
        loss = criterion(logits, batch_y)
        if config.regularization_strength > 0:
            loss = loss + 0.5 * config.regularization_strength * model.linear.weight.pow(2).sum()
        loss.backward()
        optimizer.step()
        return loss.item()

    logger.info(
        f"Training logistic regression on {len(y)} examples x {features.shape[1]} features "
        f"(max_iterations={config.max_train_iterations}, lr={config.learning_rate}, "
        f"l2={config.regularization_strength})"
    )

    start_time = time.time()
    model.train()

    progress_bar = tqdm(
        range(1, config.max_train_iterations + 1),
        desc="Training",
        leave=False,
        disable=not show_progress,
    )

    for iteration in progress_bar:
        if batches is None:
            epoch_loss = step(x, y)
        else:
            loss_meter = AverageMeter("loss")
            for batch_x, batch_y in batches:
                loss_meter.update(step(batch_x, batch_y), len(batch_y))
            epoch_loss = loss_meter.avg

        if not math.isfinite(epoch_loss):
            raise TrainingError("Training loss is not finite", iteration=iteration)

        history.losses.append(epoch_loss)
        progress_bar.set_postfix({"loss": f"{epoch_loss:.6f}"})

        if monitor(epoch_loss):
            history.converged = True
            logger.info(
                f"Converged at iteration {iteration} "
                f"(loss delta {monitor.last_delta:.2e} < {config.convergence_threshold:.2e})"
            )
            break

    model.eval()
    history.elapsed_seconds = time.time() - start_time

    logger.info(
        f"Training finished after {history.iterations} iterations in "
        f"{history.elapsed_seconds:.2f}s, final loss {history.final_loss:.6f}"
    )

    return model, history


def train_classifier(
    examples: Sequence[LabeledExample],
    config: PipelineConfig,
) -> ModelParameters:
    """
    Train a classifier on labeled examples.

    Args:
        examples: Labeled feature vectors
        config: Pipeline configuration

    Returns:
        Trained ModelParameters

    Raises:
        TrainingError: On degenerate training data
    """
    features, labels = validate_examples(examples)
    model, _ = fit_classifier(features, labels, config)
    return model.to_parameters()


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Train review sentiment classifier",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    parser.add_argument(
        "--config",
        type=str,
        required=True,
        help="Path to configuration file",
    )
    parser.add_argument(
        "--input",
        type=str,
        required=True,
        help="CSV review table used for training",
    )
    parser.add_argument(
        "--model-dir",
        type=str,
        default=None,
        help="Override model output directory",
    )
    parser.add_argument(
        "--predictions-path",
        type=str,
        default=None,
        help="Write predictions for the training batch to this JSON collection",
    )
    parser.add_argument(
        "--trends-dir",
        type=str,
        default=None,
        help="Write trend tables for the training batch to this directory",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "--max-iterations",
        type=int,
        default=None,
        help="Override maximum training iterations",
    )
    parser.add_argument(
        "--lr",
        type=float,
        default=None,
        help="Override learning rate",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Override random seed",
    )

    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    """Main training function."""
    from .data_loader import load_review_table
    from .exceptions import PipelineError
    from .pipeline import PipelineOrchestrator, build_sinks
    from .utils import save_config, setup_logging

    args = parse_args(argv)

    try:
        config = PipelineConfig.from_yaml(args.config)
        if args.model_dir is not None:
            config.model_dir = args.model_dir
        if args.max_iterations is not None:
            config.max_train_iterations = args.max_iterations
        if args.lr is not None:
            config.learning_rate = args.lr
        if args.seed is not None:
            config.random_seed = args.seed
        config.validate()
    except PipelineError as e:
        setup_logging(log_level="INFO")
        logger.error(f"{e.kind}: {e}")
        return 1

    log_level = "DEBUG" if args.verbose else config.log_level
    setup_logging(log_level=log_level, log_file=config.log_file)

    logger.info("=" * 60)
    logger.info("Starting training...")
    logger.info("=" * 60)

    try:
        rows = load_review_table(args.input)
        document_sink, tabular_sink = build_sinks(args.predictions_path, args.trends_dir)
        orchestrator = PipelineOrchestrator(config, document_sink, tabular_sink)
        result = orchestrator.run(rows, mode="train")
    except PipelineError as e:
        logger.error(f"{e.kind}: {e}", extra={"error": e.to_dict()})
        return 1

    save_config(config.to_dict(), str(orchestrator.model_dir / "training_config.yaml"))

    logger.info("=" * 60)
    logger.info("Training Complete!")
    logger.info("=" * 60)
    for name, value in result.metrics.items():
        if isinstance(value, float):
            logger.info(f"Train {name}: {value:.4f}")
    logger.info(f"Skipped records: {len(result.record_errors)}")
    logger.info(f"Model saved to: {orchestrator.model_dir}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
