"""
Batch prediction script: classify a review table with a persisted model and
publish predictions and trend tables.

Usage:
    python -m review_analytics.predict --config configs/pipeline_config.yaml --input data/reviews.csv \
        --predictions-path output/predictions.json --trends-dir output/trends
"""

import argparse
import logging
import sys

from .aggregation import best_categories, brands_by_recommend_rate, summaries_to_frame
from .config import PipelineConfig
from .data_loader import load_review_table
from .exceptions import PipelineError
from .inference import get_confidence_level
from .pipeline import INFER_MODE, PipelineOrchestrator, build_sinks
from .utils import setup_logging

logger = logging.getLogger("review_analytics")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Batch review sentiment prediction")
    parser.add_argument("--config", type=str, required=True, help="Config file")
    parser.add_argument("--input", type=str, required=True, help="Input CSV review table")
    parser.add_argument("--model-dir", type=str, default=None, help="Override model directory")
    parser.add_argument(
        "--predictions-path",
        type=str,
        default="output/predictions.json",
        help="JSON document collection for predictions",
    )
    parser.add_argument(
        "--trends-dir",
        type=str,
        default="output/trends",
        help="Directory for trend tables",
    )
    parser.add_argument("--top", type=int, default=5, help="Rows shown per ranking")
    parser.add_argument("--min-reviews", type=int, default=1, help="Minimum reviews to be ranked")
    parser.add_argument("--num-workers", type=int, default=None, help="Override worker threads")
    parser.add_argument("--verbose", action="store_true", help="Enable verbose logging")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)

    try:
        config = PipelineConfig.from_yaml(args.config)
        if args.num_workers is not None:
            config.num_workers = args.num_workers
        config.validate()
    except PipelineError as e:
        setup_logging(log_level="INFO")
        logger.error(f"{e.kind}: {e}")
        return 1

    setup_logging(log_level="DEBUG" if args.verbose else config.log_level, log_file=config.log_file)

    try:
        rows = load_review_table(args.input)
        document_sink, tabular_sink = build_sinks(args.predictions_path, args.trends_dir)
        orchestrator = PipelineOrchestrator(
            config,
            document_sink,
            tabular_sink,
            model_dir=args.model_dir,
        )
        result = orchestrator.run(rows, mode=INFER_MODE)
    except PipelineError as e:
        logger.error(f"{e.kind}: {e}", extra={"error": e.to_dict()})
        return 1

    positive = sum(1 for p in result.predictions if p.is_positive)
    negative = len(result.predictions) - positive
    high_confidence = sum(1 for p in result.predictions if get_confidence_level(p.confidence) == "high")
    logger.info(
        f"Done! Positive: {positive}, Negative: {negative}, "
        f"High confidence: {high_confidence}, Skipped: {len(result.record_errors)}"
    )

    views = {
        "Best categories (positive %)": best_categories(
            result.summaries["category"], args.min_reviews, args.top
        ),
        "Brands by recommend rate": brands_by_recommend_rate(
            result.summaries["brand"], args.min_reviews, args.top
        ),
    }
    for title, ranked in views.items():
        print(f"\n{title}:")
        if ranked:
            print(summaries_to_frame(ranked).to_string(index=False))
        else:
            print("  (no groups)")

    logger.info(f"Predictions saved to {args.predictions_path}")
    logger.info(f"Trend tables saved to {args.trends_dir}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
