"""Exponential memory-retention model.

Estimates the probability that a learner still recalls an item:

    R = e^(-t / S)

where t is the number of days since the last review and S is the stability
factor derived from the item's easiness factor. Items that were never
reviewed get a fixed baseline so they are not starved from review queues.
"""

import math
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol

BASELINE_RETENTION = 0.3
STABILITY_MULTIPLIER = 1.5
# Used as-is when the easiness factor is missing (not scaled by the multiplier).
FALLBACK_STABILITY = 2.5

SECONDS_PER_DAY = 86400


class Reviewable(Protocol):
    easiness_factor: float | None
    last_reviewed_at: datetime | None


def stability_factor(easiness_factor: float | None) -> float:
    """Return the decay-rate denominator for an easiness factor."""
    if easiness_factor is not None:
        return easiness_factor * STABILITY_MULTIPLIER
    return FALLBACK_STABILITY


def retention(item: Reviewable, now: datetime) -> float:
    """Return the modeled recall probability of ``item`` at ``now``, in [0, 1].

    Args:
        item: Anything carrying ``easiness_factor`` and ``last_reviewed_at``.
        now: The moment to evaluate retention at.

    Returns:
        ``BASELINE_RETENTION`` for never-reviewed items, otherwise the
        clamped exponential decay.
    """
    if item.last_reviewed_at is None:
        return BASELINE_RETENTION

    elapsed_days = (now - item.last_reviewed_at).total_seconds() / SECONDS_PER_DAY
    value = math.exp(-elapsed_days / stability_factor(item.easiness_factor))
    # Clock skew gives negative elapsed time and a value above 1.
    return max(0.0, min(1.0, value))


@dataclass
class RetentionSummary:
    """Aggregate retention over a set of items."""

    average: float = 0.0
    lowest: float = 0.0
    by_topic: dict[str, float] = field(default_factory=dict)
    item_count: int = 0


def summarize_retention(items: Iterable[Reviewable], now: datetime) -> RetentionSummary:
    """Compute average, lowest and per-topic retention for ``items``.

    Items without a ``topic_id`` count towards the average and the lowest
    value but not towards ``by_topic``.
    """
    total = 0.0
    lowest = 1.0
    count = 0
    topic_sums: dict[str, float] = {}
    topic_counts: dict[str, int] = {}

    for item in items:
        value = retention(item, now)
        total += value
        lowest = min(lowest, value)
        count += 1

        topic_id = getattr(item, "topic_id", None)
        if topic_id:
            topic_sums[topic_id] = topic_sums.get(topic_id, 0.0) + value
            topic_counts[topic_id] = topic_counts.get(topic_id, 0) + 1

    if count == 0:
        return RetentionSummary()

    return RetentionSummary(
        average=total / count,
        lowest=lowest,
        by_topic={topic: topic_sums[topic] / topic_counts[topic] for topic in topic_sums},
        item_count=count,
    )
