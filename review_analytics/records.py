"""
Value objects passed between pipeline stages.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import numpy as np


SENTIMENT_LABELS = {0: "negative", 1: "positive"}


@dataclass(frozen=True)
class Review:
    """A single product review, parsed from the raw table."""

    review_id: str
    brand: str
    categories: tuple[str, ...]
    text: str
    recommended: bool | None = None
    rating: float | None = None
    date_added: datetime | None = None
    date_updated: datetime | None = None
    title: str = ""
    product_name: str = ""


@dataclass
class LabeledExample:
    """Feature vector with its ground-truth label (0 or 1)."""

    vector: np.ndarray
    label: int


@dataclass(frozen=True)
class Prediction:
    """Sentiment prediction for one review."""

    review_id: str
    brand: str
    categories: tuple[str, ...]
    label: str
    confidence: float
    score: float
    recommended: bool | None = None
    rating: float | None = None

    @property
    def is_positive(self) -> bool:
        return self.label == SENTIMENT_LABELS[1]

    def to_document(self) -> dict[str, Any]:
        """Convert to a document-store record keyed by review_id."""
        return {
            "review_id": self.review_id,
            "brand": self.brand,
            "categories": list(self.categories),
            "sentiment": self.label,
            "confidence": round(self.confidence, 6),
            "score": round(self.score, 6),
            "recommended": self.recommended,
            "rating": self.rating,
        }


@dataclass(frozen=True)
class TrendSummary:
    """Aggregated metrics for one brand or category."""

    group_key: str
    group: str
    total_reviews: int
    positive_percentage: float
    recommend_percentage: float
    average_rating: float | None = field(default=None)

    def to_row(self) -> dict[str, Any]:
        return {
            "group_key": self.group_key,
            "group": self.group,
            "total_reviews": self.total_reviews,
            "positive_percentage": round(self.positive_percentage, 4),
            "recommend_percentage": round(self.recommend_percentage, 4),
            "average_rating": (
                round(self.average_rating, 4) if self.average_rating is not None else None
            ),
        }
