import asyncio
import copy

import pytest

from engine.errors import TransientStorageError
from engine.profiles.types import CognitiveProfile, HistoryRecord
from engine.srs.scheduler import ItemState, ReviewEvent
from engine.storage import LearningStore


class FakeLearningStore(LearningStore):
    """In-memory LearningStore that counts calls and can be told to fail."""

    def __init__(self) -> None:
        self.profiles: dict[str, CognitiveProfile] = {}
        self.history: dict[str, list[HistoryRecord]] = {}
        self.items: dict[int, ItemState] = {}
        self.events: list[ReviewEvent] = []
        self.fetch_profile_calls = 0
        self.persist_profile_calls = 0
        self.fetch_history_calls = 0
        self.fetch_item_calls = 0
        self.fail_fetch = False
        self.fail_persist = False
        self.fail_review = False
        self._next_item_id = 1

    async def fetch_profile(self, user_id: str) -> CognitiveProfile | None:
        self.fetch_profile_calls += 1
        await asyncio.sleep(0)
        if self.fail_fetch:
            raise TransientStorageError("profile backend unavailable")
        profile = self.profiles.get(user_id)
        return copy.deepcopy(profile) if profile is not None else None

    async def persist_profile(self, profile: CognitiveProfile) -> None:
        self.persist_profile_calls += 1
        await asyncio.sleep(0)
        if self.fail_persist:
            raise TransientStorageError("profile backend unavailable")
        self.profiles[profile.user_id] = copy.deepcopy(profile)

    async def fetch_learning_history(self, user_id: str) -> list[HistoryRecord]:
        self.fetch_history_calls += 1
        return list(self.history.get(user_id, []))

    async def fetch_learning_item(self, item_id: int) -> ItemState | None:
        self.fetch_item_calls += 1
        item = self.items.get(item_id)
        return copy.deepcopy(item) if item is not None else None

    async def fetch_learning_items(self, user_id: str) -> list[ItemState]:
        return [copy.deepcopy(item) for item in self.items.values() if item.user_id == user_id]

    async def persist_learning_item(self, item: ItemState) -> ItemState:
        if item.item_id is None:
            item = copy.deepcopy(item)
            item.item_id = self._next_item_id
            self._next_item_id += 1
        self.items[item.item_id] = copy.deepcopy(item)
        return copy.deepcopy(item)

    async def persist_review(self, item: ItemState, event: ReviewEvent) -> ItemState:
        if self.fail_review:
            raise TransientStorageError("review log unavailable")
        stored = await self.persist_learning_item(item)
        self.events.append(event)
        return stored


@pytest.fixture
def fake_store() -> FakeLearningStore:
    return FakeLearningStore()
