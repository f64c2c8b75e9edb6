"""Derive cognitive-profile fragments from learning history.

All reductions are pure and independent of input order, except that ties
between equally frequent content types are broken by first appearance.
"""

from collections.abc import Sequence
from datetime import datetime

from engine.config import utcnow
from engine.profiles.types import (
    DEFAULT_CONTENT_FORMATS,
    MAX_CONTENT_FORMATS,
    MAX_LEARNING_SPEED,
    MIN_LEARNING_SPEED,
    CognitiveProfile,
    HistoryRecord,
)

DEFAULT_CONTENT_TYPE = "text"
UNKNOWN_MODULE = "unknown"


def preferred_content_formats(history: Sequence[HistoryRecord]) -> list[str]:
    """Return the one or two most frequent content types in ``history``."""
    if not history:
        return list(DEFAULT_CONTENT_FORMATS)

    # dict preserves first-seen order, and sorted() is stable
    counts: dict[str, int] = {}
    for record in history:
        content_type = record.content_type or DEFAULT_CONTENT_TYPE
        counts[content_type] = counts.get(content_type, 0) + 1

    ranked = sorted(counts, key=lambda content_type: counts[content_type], reverse=True)
    return ranked[:MAX_CONTENT_FORMATS]


def estimate_learning_speed(history: Sequence[HistoryRecord]) -> dict[str, float]:
    """Return the mean progress ratio per module, clamped to [0.1, 1.0].

    Records without a module land in the ``"unknown"`` bucket.
    """
    totals: dict[str, float] = {}
    counts: dict[str, int] = {}
    for record in history:
        module_id = record.module_id or UNKNOWN_MODULE
        totals[module_id] = totals.get(module_id, 0.0) + (record.progress_percent or 0.0) / 100
        counts[module_id] = counts.get(module_id, 0) + 1

    return {
        module_id: min(max(totals[module_id] / counts[module_id], MIN_LEARNING_SPEED), MAX_LEARNING_SPEED)
        for module_id in totals
    }


def build_knowledge_graph(history: Sequence[HistoryRecord]) -> dict[str, set[str]]:
    """Return, per module, the set of topics with a completed record."""
    graph: dict[str, set[str]] = {}
    for record in history:
        if not (record.completed and record.module_id and record.topic_id):
            continue
        graph.setdefault(record.module_id, set()).add(record.topic_id)
    return graph


def derive_profile(
    user_id: str,
    history: Sequence[HistoryRecord],
    now: datetime | None = None,
) -> CognitiveProfile:
    """Build an initial profile for ``user_id`` from their learning history."""
    return CognitiveProfile(
        user_id=user_id,
        learning_speed=estimate_learning_speed(history),
        preferred_content_formats=preferred_content_formats(history),
        knowledge_graph=build_knowledge_graph(history),
        last_updated=now or utcnow(),
    )
