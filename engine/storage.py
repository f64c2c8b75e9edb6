"""Storage collaborator contract and its async SQLAlchemy implementation.

The engine only reaches persistent state through ``LearningStore``. Every
backend failure is raised as ``TransientStorageError``; the engine never
retries.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from engine.errors import TransientStorageError
from engine.models.cognitive_profile import CognitiveProfileRow
from engine.models.history_record import LearningHistoryRow
from engine.models.learning_item import LearningItem
from engine.models.review_log import ReviewLog
from engine.profiles.types import CognitiveProfile, HistoryRecord
from engine.srs.scheduler import ItemState, ReviewEvent

logger = logging.getLogger(__name__)


class LearningStore(ABC):
    """Narrow contract the engine consumes from persistent storage."""

    @abstractmethod
    async def fetch_profile(self, user_id: str) -> CognitiveProfile | None:
        """Return the stored profile, or None if the user has none."""

    @abstractmethod
    async def persist_profile(self, profile: CognitiveProfile) -> None:
        """Insert or replace the profile keyed by ``profile.user_id``."""

    @abstractmethod
    async def fetch_learning_history(self, user_id: str) -> list[HistoryRecord]:
        """Return the user's history records in insertion order."""

    @abstractmethod
    async def fetch_learning_item(self, item_id: int) -> ItemState | None: ...

    @abstractmethod
    async def fetch_learning_items(self, user_id: str) -> list[ItemState]: ...

    @abstractmethod
    async def persist_learning_item(self, item: ItemState) -> ItemState:
        """Insert (``item_id`` None) or update an item and return the stored state."""

    @abstractmethod
    async def persist_review(self, item: ItemState, event: ReviewEvent) -> ItemState:
        """Update a reviewed item and append its review event atomically.

        Either both writes land or neither does.
        """


def _item_state(row: LearningItem) -> ItemState:
    return ItemState(
        item_id=row.id,
        user_id=row.user_id,
        topic_id=row.topic_id,
        easiness_factor=row.easiness_factor,
        interval_days=row.interval_days,
        repetition_count=row.repetition_count,
        last_reviewed_at=row.last_reviewed_at,
        next_review_at=row.next_review_at,
        mastery_level=row.mastery_level,
    )


def _profile(row: CognitiveProfileRow) -> CognitiveProfile:
    return CognitiveProfile(
        user_id=row.user_id,
        learning_speed=dict(row.learning_speed or {}),
        preferred_content_formats=list(row.preferred_content_formats or []),
        knowledge_graph={domain: set(topics) for domain, topics in (row.knowledge_graph or {}).items()},
        attention_span=row.attention_span,
        retention_rates=dict(row.retention_rates or {}),
        last_updated=row.last_updated,
    )


class SqlLearningStore(LearningStore):
    """``LearningStore`` backed by an async SQLAlchemy session factory.

    Each call runs in its own session so the store can be shared across
    requests and tasks.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def fetch_profile(self, user_id: str) -> CognitiveProfile | None:
        try:
            async with self.session_factory() as db:
                row = await db.get(CognitiveProfileRow, user_id)
                return _profile(row) if row is not None else None
        except SQLAlchemyError as e:
            logger.warning("Failed to fetch profile for %s: %s", user_id, e)
            raise TransientStorageError(f"Failed to fetch profile for {user_id}", e) from e

    async def persist_profile(self, profile: CognitiveProfile) -> None:
        knowledge_graph = {domain: sorted(topics) for domain, topics in profile.knowledge_graph.items()}
        try:
            async with self.session_factory() as db:
                row = await db.get(CognitiveProfileRow, profile.user_id)
                if row is None:
                    row = CognitiveProfileRow(user_id=profile.user_id)
                    db.add(row)
                row.learning_speed = dict(profile.learning_speed)
                row.preferred_content_formats = list(profile.preferred_content_formats)
                row.knowledge_graph = knowledge_graph
                row.attention_span = profile.attention_span
                row.retention_rates = dict(profile.retention_rates)
                row.last_updated = profile.last_updated
                await db.commit()
        except SQLAlchemyError as e:
            logger.warning("Failed to persist profile for %s: %s", profile.user_id, e)
            raise TransientStorageError(f"Failed to persist profile for {profile.user_id}", e) from e

    async def fetch_learning_history(self, user_id: str) -> list[HistoryRecord]:
        stmt = (
            select(LearningHistoryRow)
            .where(LearningHistoryRow.user_id == user_id)
            .order_by(LearningHistoryRow.id.asc())
        )
        try:
            async with self.session_factory() as db:
                rows = (await db.execute(stmt)).scalars().all()
        except SQLAlchemyError as e:
            raise TransientStorageError(f"Failed to fetch learning history for {user_id}", e) from e

        return [
            HistoryRecord(
                module_id=row.module_id,
                topic_id=row.topic_id,
                content_type=row.content_type,
                progress_percent=row.progress_percent,
                completed=row.completed,
            )
            for row in rows
        ]

    async def fetch_learning_item(self, item_id: int) -> ItemState | None:
        try:
            async with self.session_factory() as db:
                row = await db.get(LearningItem, item_id)
                return _item_state(row) if row is not None else None
        except SQLAlchemyError as e:
            raise TransientStorageError(f"Failed to fetch learning item {item_id}", e) from e

    async def fetch_learning_items(self, user_id: str) -> list[ItemState]:
        stmt = (
            select(LearningItem)
            .where(LearningItem.user_id == user_id)
            .order_by(LearningItem.next_review_at.asc(), LearningItem.id.asc())
        )
        try:
            async with self.session_factory() as db:
                rows = (await db.execute(stmt)).scalars().all()
        except SQLAlchemyError as e:
            raise TransientStorageError(f"Failed to fetch learning items for {user_id}", e) from e
        return [_item_state(row) for row in rows]

    async def _stage_item(self, db: AsyncSession, item: ItemState) -> LearningItem:
        row = await db.get(LearningItem, item.item_id) if item.item_id is not None else None
        if row is None:
            row = LearningItem(user_id=item.user_id)
            db.add(row)
        row.topic_id = item.topic_id
        row.easiness_factor = item.easiness_factor
        row.interval_days = item.interval_days
        row.repetition_count = item.repetition_count
        row.last_reviewed_at = item.last_reviewed_at
        if item.next_review_at is not None:
            row.next_review_at = item.next_review_at
        row.mastery_level = item.mastery_level
        return row

    async def persist_learning_item(self, item: ItemState) -> ItemState:
        try:
            async with self.session_factory() as db:
                row = await self._stage_item(db, item)
                await db.commit()
                await db.refresh(row)
                return _item_state(row)
        except SQLAlchemyError as e:
            logger.warning("Failed to persist learning item %s: %s", item.item_id, e)
            raise TransientStorageError(f"Failed to persist learning item {item.item_id}", e) from e

    async def persist_review(self, item: ItemState, event: ReviewEvent) -> ItemState:
        try:
            async with self.session_factory() as db:
                row = await self._stage_item(db, item)
                await db.flush()
                db.add(
                    ReviewLog(
                        item_id=row.id,
                        user_id=event.user_id,
                        grade=event.grade,
                        retention_before=event.retention_before,
                        easiness_before=event.easiness_before,
                        easiness_after=event.easiness_after,
                        interval_days=event.interval_days,
                        reviewed_at=event.reviewed_at,
                    )
                )
                # One commit; an exception before it rolls back both writes.
                await db.commit()
                await db.refresh(row)
                return _item_state(row)
        except SQLAlchemyError as e:
            logger.warning("Failed to record review for item %s: %s", item.item_id, e)
            raise TransientStorageError(f"Failed to record review for item {item.item_id}", e) from e

    async def add_history_record(self, user_id: str, record: HistoryRecord) -> None:
        """Store one history record. Used for seeding; not part of the engine contract."""
        try:
            async with self.session_factory() as db:
                db.add(
                    LearningHistoryRow(
                        user_id=user_id,
                        module_id=record.module_id,
                        topic_id=record.topic_id,
                        content_type=record.content_type,
                        progress_percent=record.progress_percent,
                        completed=record.completed,
                    )
                )
                await db.commit()
        except SQLAlchemyError as e:
            raise TransientStorageError(f"Failed to add history record for {user_id}", e) from e
