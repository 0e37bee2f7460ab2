"""
Evaluation of a persisted sentiment model on a labeled review table.

Usage:
    python -m review_analytics.evaluate --config configs/pipeline_config.yaml --input data/labeled.csv
    python -m review_analytics.evaluate --config configs/pipeline_config.yaml --input data/labeled.csv --output metrics.json
"""

import argparse
import json
import logging
import sys
from typing import Any, Sequence

import numpy as np
from sklearn.metrics import (
    accuracy_score,
    confusion_matrix,
    f1_score,
    precision_score,
    recall_score,
    roc_auc_score,
)

logger = logging.getLogger("review_analytics")


def compute_metrics(
    labels: Sequence[int],
    scores: Sequence[float],
    threshold: float = 0.5,
) -> dict[str, Any]:
    """
    Classification metrics from ground truth and positive-class scores.

    ROC-AUC is only defined when both classes are present; otherwise it is
    reported as None.

    Args:
        labels: Ground-truth labels (0 or 1)
        scores: Predicted positive-class probabilities
        threshold: Decision threshold

    Returns:
        Dictionary with evaluation metrics
    """
    labels = np.asarray(labels, dtype=np.int64)
    scores = np.asarray(scores, dtype=np.float64)
    if labels.shape != scores.shape:
        raise ValueError(
            f"labels ({labels.shape}) and scores ({scores.shape}) must have the same shape"
        )
    if labels.size == 0:
        return {"error": "No labeled examples"}

    preds = (scores >= threshold).astype(np.int64)

    metrics: dict[str, Any] = {
        "samples": int(labels.size),
        "accuracy": float(accuracy_score(labels, preds)),
        "f1_score": float(f1_score(labels, preds, average="weighted", zero_division=0)),
        "precision": float(precision_score(labels, preds, average="weighted", zero_division=0)),
        "recall": float(recall_score(labels, preds, average="weighted", zero_division=0)),
        "roc_auc": None,
        "confusion_matrix": confusion_matrix(labels, preds, labels=[0, 1]).tolist(),
    }

    if len(np.unique(labels)) == 2:
        metrics["roc_auc"] = float(roc_auc_score(labels, scores))

    return metrics


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Evaluate review sentiment classifier")
    parser.add_argument("--config", type=str, required=True, help="Config file")
    parser.add_argument("--input", type=str, required=True, help="Labeled CSV review table")
    parser.add_argument("--model-dir", type=str, default=None, help="Override model directory")
    parser.add_argument("--output", type=str, default="metrics.json", help="Output metrics file")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    from .artifacts import open_artifact
    from .config import PipelineConfig
    from .data_loader import load_review_table, parse_reviews
    from .exceptions import PipelineError
    from .utils import setup_logging

    args = parse_args(argv)
    setup_logging(log_level="INFO")

    try:
        config = PipelineConfig.from_yaml(args.config)
        model_dir = args.model_dir or config.model_dir
        reviews, errors = parse_reviews(load_review_table(args.input))

        labeled = [
            (review, config.label_policy(review.rating, review.recommended))
            for review in reviews
        ]
        labeled = [(review, label) for review, label in labeled if label is not None]

        with open_artifact(model_dir) as artifact:
            predictor = artifact.build_predictor()
            predictions = predictor.predict_reviews([review for review, _ in labeled])
    except PipelineError as e:
        logger.error(f"{e.kind}: {e}")
        return 1

    logger.info(f"Evaluating on {len(labeled)} labeled reviews ({len(errors)} skipped)")
    metrics = compute_metrics(
        [label for _, label in labeled],
        [p.score for p in predictions],
    )

    if "error" not in metrics:
        summary = f"Accuracy: {metrics['accuracy']:.4f}, F1: {metrics['f1_score']:.4f}"
        if metrics["roc_auc"] is not None:
            summary += f", ROC-AUC: {metrics['roc_auc']:.4f}"
        print(summary)

    with open(args.output, "w") as f:
        json.dump(metrics, f, indent=2)
    logger.info(f"Metrics saved to {args.output}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
