"""Recommendation ranking for learning-path items.

Score = clamp(100 - progress + 5 * related_items, 0, 100): items with the
most remaining progress come first, boosted by how many related items they
connect to.
"""

from collections.abc import Iterable
from dataclasses import dataclass

MAX_SCORE = 100.0
MIN_SCORE = 0.0
RELATED_ITEM_BONUS = 5.0


@dataclass
class CandidateItem:
    """A learning-path item offered for ranking."""

    item_id: str
    progress_percent: float
    related_item_count: int | None = None


@dataclass
class LearningPathItem:
    """A ranked item. Derived; never persisted by the engine."""

    item_id: str
    progress_percent: float
    recommendation_score: float
    related_item_count: int = 0


def recommendation_score(progress_percent: float, related_item_count: int | None = None) -> float:
    """Return the item's recommendation score in [0, 100]."""
    related = related_item_count or 0
    raw = MAX_SCORE - progress_percent + RELATED_ITEM_BONUS * related
    return max(MIN_SCORE, min(MAX_SCORE, raw))


def rank(candidates: Iterable[CandidateItem], limit: int | None = None) -> list[LearningPathItem]:
    """Score ``candidates`` and order them by score, highest first.

    The sort is stable, so equal scores keep their input order. ``limit``
    keeps only the top entries.
    """
    scored = [
        LearningPathItem(
            item_id=candidate.item_id,
            progress_percent=candidate.progress_percent,
            recommendation_score=recommendation_score(candidate.progress_percent, candidate.related_item_count),
            related_item_count=candidate.related_item_count or 0,
        )
        for candidate in candidates
    ]
    scored.sort(key=lambda item: item.recommendation_score, reverse=True)
    if limit is not None:
        return scored[: max(0, limit)]
    return scored
