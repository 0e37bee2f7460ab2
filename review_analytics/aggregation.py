"""
Trend aggregation over sentiment predictions.

Predictions are reduced to per-group counts (brand or category) and turned
into TrendSummary rows. Counting is a commutative merge, so partitions can
be counted independently and combined in any order.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Iterable, Sequence

import pandas as pd

from .exceptions import ConfigError
from .records import Prediction, TrendSummary

logger = logging.getLogger("review_analytics")


GROUP_KEYS = ("brand", "category")
RANKING_METRICS = ("positive_percentage", "recommend_percentage", "total_reviews", "average_rating")
SUMMARY_COLUMNS = [
    "group_key",
    "group",
    "total_reviews",
    "positive_percentage",
    "recommend_percentage",
    "average_rating",
]


@dataclass
class GroupStats:
    """Running counts for one group."""

    total: int = 0
    positive: int = 0
    recommended: int = 0
    ratings: list[float] = field(default_factory=list)

    def add(self, prediction: Prediction) -> None:
        self.total += 1
        if prediction.is_positive:
            self.positive += 1
        if prediction.recommended is True:
            self.recommended += 1
        if prediction.rating is not None:
            self.ratings.append(prediction.rating)

    def merge(self, other: "GroupStats") -> "GroupStats":
        return GroupStats(
            total=self.total + other.total,
            positive=self.positive + other.positive,
            recommended=self.recommended + other.recommended,
            ratings=self.ratings + other.ratings,
        )

    def to_summary(self, group_key: str, group: str) -> TrendSummary:
        # fsum is exactly rounded, so the average does not depend on merge order
        average_rating = math.fsum(self.ratings) / len(self.ratings) if self.ratings else None
        return TrendSummary(
            group_key=group_key,
            group=group,
            total_reviews=self.total,
            positive_percentage=100.0 * self.positive / self.total,
            recommend_percentage=100.0 * self.recommended / self.total,
            average_rating=average_rating,
        )


GroupCounts = dict[str, GroupStats]


def validate_group_key(group_key: str) -> str:
    if group_key not in GROUP_KEYS:
        raise ConfigError(
            f"Unknown grouping key: {group_key!r}",
            allowed=list(GROUP_KEYS),
        )
    return group_key


def groups_for(prediction: Prediction, group_key: str) -> list[str]:
    """
    Group names a prediction contributes to.

    A review listed under several categories counts once in each.
    """
    if group_key == "brand":
        brand = prediction.brand.strip() if prediction.brand else ""
        return [brand] if brand else []
    names = {c.strip() for c in prediction.categories if c and c.strip()}
    return sorted(names)


def count_partition(predictions: Iterable[Prediction], group_key: str) -> GroupCounts:
    """
    Count one partition of predictions.

    Args:
        predictions: Predictions of one partition
        group_key: 'brand' or 'category'

    Returns:
        Mapping of group name to GroupStats
    """
    validate_group_key(group_key)
    counts: GroupCounts = {}
    for prediction in predictions:
        for group in groups_for(prediction, group_key):
            counts.setdefault(group, GroupStats()).add(prediction)
    return counts


def merge_counts(partials: Iterable[GroupCounts]) -> GroupCounts:
    """Combine per-partition counts."""
    merged: GroupCounts = {}
    for partial in partials:
        for group, stats in partial.items():
            merged[group] = merged[group].merge(stats) if group in merged else stats.merge(GroupStats())
    return merged


def summarize(counts: GroupCounts, group_key: str) -> list[TrendSummary]:
    """
    Turn merged counts into summaries, sorted by group name.

    Groups without reviews are never emitted.
    """
    validate_group_key(group_key)
    return [
        counts[group].to_summary(group_key, group)
        for group in sorted(counts)
        if counts[group].total > 0
    ]


class TrendAggregator:
    """
    Computes per-brand and per-category trend summaries.

    Example:
        aggregator = TrendAggregator()
        by_category = aggregator.aggregate(predictions, "category")
        top = best_categories(by_category, limit=5)
    """

    def __init__(self, group_keys: Sequence[str] = GROUP_KEYS):
        self.group_keys = tuple(validate_group_key(key) for key in group_keys)

    def aggregate(self, predictions: Iterable[Prediction], group_key: str) -> list[TrendSummary]:
        """
        Aggregate predictions by brand or category.

        The result does not depend on the order of `predictions`.

        Args:
            predictions: Sentiment predictions
            group_key: 'brand' or 'category'

        Returns:
            TrendSummary per non-empty group, sorted by group name
        """
        counts = count_partition(predictions, group_key)
        summaries = summarize(counts, group_key)
        logger.info(f"Aggregated {len(summaries)} {group_key} groups")
        return summaries

    def aggregate_all(self, predictions: Sequence[Prediction]) -> dict[str, list[TrendSummary]]:
        return {key: self.aggregate(predictions, key) for key in self.group_keys}


def rank_groups(
    summaries: Iterable[TrendSummary],
    by: str = "positive_percentage",
    descending: bool = True,
    min_reviews: int = 1,
    limit: int | None = None,
    group_key: str | None = None,
) -> list[TrendSummary]:
    """
    Rank summaries by one metric.

    Ties are broken by review volume (larger first) and then group name.
    Groups without the metric (average_rating of None) are left out.

    Args:
        summaries: Aggregation output
        by: Metric to rank on
        descending: Highest first
        min_reviews: Minimum total_reviews for a group to be ranked
        limit: Maximum number of rows returned
        group_key: Only rank summaries for this grouping key

    Returns:
        Ranked summaries
    """
    if by not in RANKING_METRICS:
        raise ConfigError(f"Unknown ranking metric: {by!r}", allowed=list(RANKING_METRICS))

    candidates = [
        s for s in summaries
        if s.total_reviews >= min_reviews
        and (group_key is None or s.group_key == group_key)
        and getattr(s, by) is not None
    ]
    sign = -1 if descending else 1
    ranked = sorted(
        candidates,
        key=lambda s: (sign * getattr(s, by), -s.total_reviews, s.group),
    )
    return ranked[:limit] if limit is not None else ranked


def best_categories(
    summaries: Iterable[TrendSummary],
    min_reviews: int = 1,
    limit: int | None = 10,
) -> list[TrendSummary]:
    """Categories with the highest share of positive reviews."""
    return rank_groups(
        summaries,
        by="positive_percentage",
        min_reviews=min_reviews,
        limit=limit,
        group_key="category",
    )


def brands_by_recommend_rate(
    summaries: Iterable[TrendSummary],
    min_reviews: int = 1,
    limit: int | None = 10,
) -> list[TrendSummary]:
    """Brands ordered by the share of reviewers who recommend them."""
    return rank_groups(
        summaries,
        by="recommend_percentage",
        min_reviews=min_reviews,
        limit=limit,
        group_key="brand",
    )


def summaries_to_frame(summaries: Iterable[TrendSummary]) -> pd.DataFrame:
    """Tabular view of summaries for reporting."""
    rows = [s.to_row() for s in summaries]
    if not rows:
        return pd.DataFrame(columns=SUMMARY_COLUMNS)
    return pd.DataFrame(rows, columns=SUMMARY_COLUMNS)
