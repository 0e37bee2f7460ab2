"""
Review table loading and record validation.

Raw rows arrive with every field as text. They are parsed into Review
objects here; a row that cannot be parsed becomes a RecordError and is
skipped by the caller, never aborting the batch.
"""

import logging
import math
from collections import Counter
from pathlib import Path
from typing import Any, Iterable, Mapping

import numpy as np
import pandas as pd

from .exceptions import ConfigError, RecordError
from .preprocessing import get_text_statistics, validate_text
from .records import Review

logger = logging.getLogger("review_analytics")


# Review field -> accepted column names, first match wins
COLUMN_ALIASES = {
    "review_id": ("review_id", "reviews.id", "id"),
    "brand": ("brand", "brand_name"),
    "categories": ("categories", "category"),
    "text": ("text", "review_text", "reviews.text"),
    "recommended": ("recommended", "do_recommend", "reviews.doRecommend"),
    "rating": ("rating", "reviews.rating"),
    "date_added": ("date_added", "dateAdded"),
    "date_updated": ("date_updated", "dateUpdated"),
    "title": ("title", "reviews.title"),
    "product_name": ("product_name", "name"),
}

TRUE_VALUES = {"true", "t", "yes", "y", "1"}
FALSE_VALUES = {"false", "f", "no", "n", "0"}
NULL_VALUES = {"", "nan", "none", "null", "na", "n/a"}


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    return isinstance(value, str) and value.strip().lower() in NULL_VALUES


def get_field(row: Mapping[str, Any], field_name: str) -> Any:
    """Value of a Review field in a raw row, trying each column alias."""
    for column in COLUMN_ALIASES[field_name]:
        if column in row:
            return row[column]
    return None


def parse_bool(value: Any) -> bool | None:
    """
    Parse a recommend flag.

    Raises:
        ValueError: If the value is not a recognizable boolean
    """
    if _is_missing(value):
        return None
    if isinstance(value, (bool, np.bool_)):
        return bool(value)
    text = str(value).strip().lower()
    if text in TRUE_VALUES:
        return True
    if text in FALSE_VALUES:
        return False
    raise ValueError(f"Not a boolean: {value!r}")


def parse_rating(value: Any) -> float | None:
    """
    Parse a star rating.

    Raises:
        ValueError: If the value is not a finite, non-negative number
    """
    if _is_missing(value):
        return None
    rating = float(value)
    if not math.isfinite(rating) or rating < 0:
        raise ValueError(f"Invalid rating: {value!r}")
    return rating


def parse_timestamp(value: Any):
    """
    Parse a timestamp into a timezone-aware datetime.

    Raises:
        ValueError: If the value cannot be parsed
    """
    if _is_missing(value):
        return None
    timestamp = pd.to_datetime(value, utc=True)
    if pd.isna(timestamp):
        return None
    return timestamp.to_pydatetime()


def parse_categories(value: Any) -> tuple[str, ...]:
    """Split a comma-separated category list, dropping blanks and repeats."""
    if _is_missing(value):
        return ()
    if isinstance(value, str):
        parts = value.split(",")
    else:
        parts = [str(v) for v in value]
    seen: dict[str, None] = {}
    for part in parts:
        name = part.strip()
        if name:
            seen.setdefault(name, None)
    return tuple(seen)


def _text_field(row: Mapping[str, Any], field_name: str) -> str:
    value = get_field(row, field_name)
    return "" if _is_missing(value) else str(value).strip()


def parse_review(row: Mapping[str, Any] | Review) -> Review:
    """
    Parse one raw row into a Review.

    Args:
        row: Raw row (column -> text value) or an already parsed Review

    Returns:
        Parsed Review

    Raises:
        RecordError: If the row is malformed
    """
    if isinstance(row, Review):
        is_valid, error = validate_review(row)
        if not is_valid:
            raise RecordError(error, review_id=row.review_id or None)
        return row

    if not isinstance(row, Mapping):
        raise RecordError(f"Row must be a mapping, got {type(row).__name__}")

    review_id = _text_field(row, "review_id")
    if not review_id:
        raise RecordError("Missing review identifier")

    text = get_field(row, "text")
    is_valid, error = validate_text(text)
    if not is_valid:
        raise RecordError(error, review_id=review_id)

    try:
        recommended = parse_bool(get_field(row, "recommended"))
        rating = parse_rating(get_field(row, "rating"))
        date_added = parse_timestamp(get_field(row, "date_added"))
        date_updated = parse_timestamp(get_field(row, "date_updated"))
        categories = parse_categories(get_field(row, "categories"))
    except (TypeError, ValueError) as e:
        raise RecordError(f"Unparseable field: {e}", review_id=review_id) from e

    return Review(
        review_id=review_id,
        brand=_text_field(row, "brand"),
        categories=categories,
        text=text,
        recommended=recommended,
        rating=rating,
        date_added=date_added,
        date_updated=date_updated,
        title=_text_field(row, "title"),
        product_name=_text_field(row, "product_name"),
    )


def validate_review(review: Review) -> tuple[bool, str]:
    """
    Validate an already constructed Review.

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not review.review_id or not str(review.review_id).strip():
        return False, "Missing review identifier"
    is_valid, error = validate_text(review.text)
    if not is_valid:
        return False, error
    if not isinstance(review.brand, str):
        return False, f"Brand must be text, got {type(review.brand).__name__}"
    if not isinstance(review.categories, (tuple, list)) or not all(isinstance(c, str) for c in review.categories):
        return False, "Categories must be a sequence of names"
    if review.rating is not None:
        if isinstance(review.rating, bool) or not isinstance(review.rating, (int, float)):
            return False, f"Invalid rating: {review.rating!r}"
        if not math.isfinite(review.rating) or review.rating < 0:
            return False, f"Invalid rating: {review.rating!r}"
    return True, ""


def parse_reviews(
    rows: Iterable[Mapping[str, Any] | Review],
) -> tuple[list[Review], list[RecordError]]:
    """
    Parse a batch, collecting per-record errors instead of raising.

    Later rows repeating an identifier already seen are rejected.

    Returns:
        Tuple of (valid reviews, record errors)
    """
    reviews: list[Review] = []
    errors: list[RecordError] = []
    seen_ids: set[str] = set()

    for position, row in enumerate(rows):
        try:
            review = parse_review(row)
            if review.review_id in seen_ids:
                raise RecordError("Duplicate review identifier", review_id=review.review_id)
        except RecordError as e:
            e.context.setdefault("position", position)
            logger.warning(f"Skipping record: {e}")
            errors.append(e)
            continue
        seen_ids.add(review.review_id)
        reviews.append(review)

    logger.info(f"Parsed {len(reviews)} valid reviews, skipped {len(errors)}")
    return reviews, errors


def load_review_table(path: str | Path) -> list[dict[str, str]]:
    """
    Read a review table from CSV with every column kept as text.

    Args:
        path: CSV file path

    Returns:
        List of raw rows

    Raises:
        ConfigError: If the file does not exist or is not readable CSV
    """
    path = Path(path)
    if not path.exists():
        raise ConfigError("Input review table not found", path=str(path))

    try:
        df = pd.read_csv(path, dtype=str, keep_default_na=False)
    except pd.errors.EmptyDataError:
        logger.warning(f"Review table {path} is empty")
        return []
    except (pd.errors.ParserError, UnicodeDecodeError, OSError) as e:
        raise ConfigError(f"Cannot read review table: {e}", path=str(path)) from e
    logger.info(f"Loaded {len(df)} rows from {path}")
    return df.to_dict(orient="records")


def get_data_statistics(reviews: list[Review]) -> dict[str, Any]:
    """
    Compute statistics for a batch of parsed reviews.

    Args:
        reviews: Parsed reviews

    Returns:
        Dictionary with dataset statistics
    """
    if not reviews:
        return {"error": "Empty dataset"}

    ratings = [r.rating for r in reviews if r.rating is not None]
    flags = [r.recommended for r in reviews if r.recommended is not None]
    category_counts = Counter(c for r in reviews for c in r.categories)

    stats = {
        "total_reviews": len(reviews),
        "brands": len({r.brand for r in reviews if r.brand}),
        "categories": len(category_counts),
        "top_categories": category_counts.most_common(5),
        "rated_reviews": len(ratings),
        "rating_mean": float(np.mean(ratings)) if ratings else None,
        "recommend_ratio": (sum(flags) / len(flags)) if flags else None,
        "word_count": get_text_statistics([r.text for r in reviews]),
    }

    return stats
