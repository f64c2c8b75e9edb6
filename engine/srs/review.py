"""Review submission flow.

Coordinates the scheduler with the storage collaborator: load the item,
apply the graded review, then persist the new scheduling state together with
its review event in one atomic store call.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from engine.config import utcnow
from engine.errors import NotFoundError
from engine.srs.scheduler import ItemState, ReviewResult, SM2Scheduler, validate_grade

if TYPE_CHECKING:
    from engine.storage import LearningStore

logger = logging.getLogger(__name__)


async def record_review(
    store: LearningStore,
    item_id: int,
    grade: int,
    now: datetime | None = None,
    scheduler: SM2Scheduler | None = None,
) -> ReviewResult:
    """Grade a learning item and persist its updated schedule.

    Args:
        store: Storage collaborator.
        item_id: The item being reviewed.
        grade: Review grade (0-5).
        now: Review time (defaults to utcnow).
        scheduler: Scheduler to use (defaults to a standard SM-2 scheduler).

    Returns:
        The ReviewResult, whose ``new_state`` is what was persisted.

    Raises:
        InvalidInputError: If the grade is outside 0-5. Nothing is loaded or written.
        NotFoundError: If the item does not exist.
        TransientStorageError: If the store fails.
    """
    validate_grade(grade)
    scheduler = scheduler or SM2Scheduler()
    now = now or utcnow()

    item = await store.fetch_learning_item(item_id)
    if item is None:
        raise NotFoundError(f"Learning item {item_id} not found")

    result = scheduler.review(item, grade, review_time=now)
    await store.persist_review(result.new_state, result.event)

    logger.info(
        "Recorded review for item %d (user %s): grade %d, next review in %d days",
        item_id,
        item.user_id,
        grade,
        result.interval_days,
    )
    return result


async def due_items(
    store: LearningStore,
    user_id: str,
    now: datetime | None = None,
    threshold: float | None = None,
    scheduler: SM2Scheduler | None = None,
) -> list[ItemState]:
    """Return the user's items whose retention fell below ``threshold``.

    The threshold defaults to the scheduler's library default (0.7).
    """
    scheduler = scheduler or SM2Scheduler()
    now = now or utcnow()
    items = await store.fetch_learning_items(user_id)
    if threshold is None:
        return [item for item in items if scheduler.is_due(item, now)]
    return [item for item in items if scheduler.is_due(item, now, threshold)]
