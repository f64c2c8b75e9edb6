"""Tests for profile derivation, merging, caching and the profile repository."""

import asyncio
import gc
from datetime import datetime, timedelta

import pytest

from engine.config import Settings
from engine.errors import ErrorKind
from engine.profiles.cache import InMemoryProfileCache, TTLProfileCache, cache_from_settings
from engine.profiles.deriver import (
    build_knowledge_graph,
    derive_profile,
    estimate_learning_speed,
    preferred_content_formats,
)
from engine.profiles.repository import ProfileRepository, merge_knowledge_graph, merge_profile
from engine.profiles.types import CognitiveProfile, HistoryRecord, ProfileUpdateOptions
from tests.conftest import FakeLearningStore

NOW = datetime(2025, 3, 1, 12, 0, 0)

HISTORY = [
    HistoryRecord("algebra", "linear", "video", 80, completed=True),
    HistoryRecord("algebra", "quadratics", "text", 40),
    HistoryRecord("algebra", "linear", "video", 100, completed=True),
    HistoryRecord("geometry", "angles", "quiz", 5, completed=True),
    HistoryRecord(),
]


class GatedStore(FakeLearningStore):
    """Reads the stored profile, then holds the result until ``release`` is set."""

    def __init__(self) -> None:
        super().__init__()
        self.read_done = asyncio.Event()
        self.release = asyncio.Event()

    async def fetch_profile(self, user_id: str) -> CognitiveProfile | None:
        profile = await super().fetch_profile(user_id)
        self.read_done.set()
        await self.release.wait()
        return profile


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


# --- Derivation ---


class TestDeriver:
    def test_preferred_formats(self) -> None:
        # video x2, text x2 (missing type counts as text); video seen first
        assert preferred_content_formats(HISTORY) == ["video", "text"]

    def test_preferred_formats_empty_history(self) -> None:
        assert preferred_content_formats([]) == ["text", "video"]

    def test_single_format(self) -> None:
        assert preferred_content_formats([HistoryRecord(content_type="quiz")]) == ["quiz"]

    def test_learning_speed(self) -> None:
        speeds = estimate_learning_speed(HISTORY)
        assert speeds["algebra"] == pytest.approx(220 / 300)
        assert speeds["geometry"] == pytest.approx(0.1)
        assert speeds["unknown"] == pytest.approx(0.1)
        assert all(0.1 <= v <= 1.0 for v in speeds.values())

    def test_learning_speed_upper_clamp(self) -> None:
        speeds = estimate_learning_speed([HistoryRecord("m", progress_percent=150)])
        assert speeds == {"m": 1.0}

    def test_knowledge_graph(self) -> None:
        assert build_knowledge_graph(HISTORY) == {"algebra": {"linear"}, "geometry": {"angles"}}

    def test_knowledge_graph_ignores_incomplete(self) -> None:
        history = [HistoryRecord("m", "t", completed=False), HistoryRecord(None, "t", completed=True)]
        assert build_knowledge_graph(history) == {}

    def test_derive_is_order_independent_for_speed_and_graph(self) -> None:
        forward = derive_profile("u1", HISTORY, now=NOW)
        backward = derive_profile("u1", list(reversed(HISTORY)), now=NOW)
        assert forward.learning_speed == pytest.approx(backward.learning_speed)
        assert forward.knowledge_graph == backward.knowledge_graph

    def test_derive_profile_defaults(self) -> None:
        profile = derive_profile("u1", [], now=NOW)
        assert profile.user_id == "u1"
        assert profile.learning_speed == {}
        assert profile.preferred_content_formats == ["text", "video"]
        assert profile.knowledge_graph == {}
        assert profile.attention_span == 25.0
        assert profile.last_updated == NOW


# --- Merging ---


class TestMerge:
    def setup_method(self) -> None:
        self.current = CognitiveProfile(
            user_id="u1",
            learning_speed={"algebra": 0.5},
            preferred_content_formats=["text"],
            knowledge_graph={"algebra": {"linear"}, "physics": {"motion"}},
            last_updated=NOW,
        )

    def test_knowledge_graph_union(self) -> None:
        merged = merge_knowledge_graph(self.current.knowledge_graph, {"algebra": ["quadratics"], "art": ["color"]})
        assert merged == {
            "algebra": {"linear", "quadratics"},
            "physics": {"motion"},
            "art": {"color"},
        }

    def test_knowledge_graph_merge_is_idempotent(self) -> None:
        update = {"algebra": {"quadratics"}}
        once = merge_knowledge_graph(self.current.knowledge_graph, update)
        twice = merge_knowledge_graph(once, update)
        assert once == twice

    def test_replace_knowledge_graph(self) -> None:
        options = ProfileUpdateOptions(merge_knowledge_graph=False)
        merged = merge_profile(self.current, {"knowledge_graph": {"art": ["color"]}}, options, now=NOW)
        assert merged.knowledge_graph == {"art": {"color"}}

    def test_content_preferences_need_overwrite_flag(self) -> None:
        updates = {"preferred_content_formats": ["video"]}
        kept = merge_profile(self.current, updates, ProfileUpdateOptions(), now=NOW)
        assert kept.preferred_content_formats == ["text"]

        replaced = merge_profile(
            self.current, updates, ProfileUpdateOptions(overwrite_content_preferences=True), now=NOW
        )
        assert replaced.preferred_content_formats == ["video"]

    def test_other_fields_are_replaced(self) -> None:
        merged = merge_profile(self.current, {"learning_speed": {"art": 0.9}}, ProfileUpdateOptions(), now=NOW)
        assert merged.learning_speed == {"art": 0.9}

    def test_timestamp(self) -> None:
        later = NOW + timedelta(hours=1)
        bumped = merge_profile(self.current, {}, ProfileUpdateOptions(), now=later)
        assert bumped.last_updated == later

        kept = merge_profile(self.current, {}, ProfileUpdateOptions(update_timestamp=False), now=later)
        assert kept.last_updated == NOW

    def test_current_is_not_mutated(self) -> None:
        merge_profile(self.current, {"knowledge_graph": {"algebra": ["quadratics"]}}, ProfileUpdateOptions())
        assert self.current.knowledge_graph["algebra"] == {"linear"}


# --- Caches ---


class TestInMemoryProfileCache:
    def test_returns_copies(self) -> None:
        cache = InMemoryProfileCache()
        profile = CognitiveProfile(user_id="u1", knowledge_graph={"m": {"t"}})
        cache.set("u1", profile)
        profile.knowledge_graph["m"].add("mutated")

        cached = cache.get("u1")
        assert cached.knowledge_graph == {"m": {"t"}}
        cached.knowledge_graph["m"].add("mutated")
        assert cache.get("u1").knowledge_graph == {"m": {"t"}}

    def test_evict_and_clear(self) -> None:
        cache = InMemoryProfileCache()
        cache.set("u1", CognitiveProfile(user_id="u1"))
        cache.set("u2", CognitiveProfile(user_id="u2"))
        cache.evict("u1")
        cache.evict("missing")
        assert "u1" not in cache
        assert len(cache) == 1
        cache.clear()
        assert len(cache) == 0


class TestTTLProfileCache:
    def setup_method(self) -> None:
        self.clock = FakeClock()

    def test_entries_expire(self) -> None:
        cache = TTLProfileCache(ttl_seconds=10, clock=self.clock)
        cache.set("u1", CognitiveProfile(user_id="u1"))
        self.clock.now = 9.9
        assert cache.get("u1") is not None
        self.clock.now = 10.0
        assert cache.get("u1") is None
        assert len(cache) == 0

    def test_oldest_entry_dropped_when_full(self) -> None:
        cache = TTLProfileCache(ttl_seconds=60, max_entries=2, clock=self.clock)
        for user_id in ("u1", "u2", "u3"):
            cache.set(user_id, CognitiveProfile(user_id=user_id))
        assert "u1" not in cache
        assert "u2" in cache
        assert "u3" in cache

    def test_resetting_refreshes_position(self) -> None:
        cache = TTLProfileCache(ttl_seconds=60, max_entries=2, clock=self.clock)
        cache.set("u1", CognitiveProfile(user_id="u1"))
        cache.set("u2", CognitiveProfile(user_id="u2"))
        cache.set("u1", CognitiveProfile(user_id="u1"))
        cache.set("u3", CognitiveProfile(user_id="u3"))
        assert "u1" in cache
        assert "u2" not in cache

    @pytest.mark.parametrize("ttl,max_entries", [(0, 10), (-1, 10), (10, 0)])
    def test_invalid_parameters(self, ttl: float, max_entries: int) -> None:
        with pytest.raises(ValueError):
            TTLProfileCache(ttl_seconds=ttl, max_entries=max_entries)

    def test_cache_from_settings(self) -> None:
        assert isinstance(cache_from_settings(Settings(profile_cache_ttl_seconds=0)), InMemoryProfileCache)
        cache = cache_from_settings(Settings(profile_cache_ttl_seconds=30, profile_cache_max_entries=5))
        assert isinstance(cache, TTLProfileCache)
        assert cache.max_entries == 5


# --- Repository ---


class TestProfileRepository:
    @pytest.mark.asyncio
    async def test_save_then_get_hits_cache(self, fake_store) -> None:
        repo = ProfileRepository(fake_store)
        profile = CognitiveProfile(user_id="u1", learning_speed={"algebra": 0.5}, last_updated=NOW)

        saved = await repo.save_profile("u1", profile)
        assert saved.ok

        result = await repo.get_profile("u1")
        assert result.ok
        assert result.profile == profile
        assert fake_store.fetch_profile_calls == 0

    @pytest.mark.asyncio
    async def test_get_falls_back_to_store_and_caches(self, fake_store) -> None:
        fake_store.profiles["u1"] = CognitiveProfile(user_id="u1", last_updated=NOW)
        repo = ProfileRepository(fake_store)

        first = await repo.get_profile("u1")
        second = await repo.get_profile("u1")
        assert first.ok and second.ok
        assert fake_store.fetch_profile_calls == 1
        assert "u1" in repo.cache

    @pytest.mark.asyncio
    async def test_not_found_is_not_cached(self, fake_store) -> None:
        repo = ProfileRepository(fake_store)

        result = await repo.get_profile("ghost")
        assert not result.ok
        assert result.error_kind == ErrorKind.NOT_FOUND

        await repo.get_profile("ghost")
        assert fake_store.fetch_profile_calls == 2
        assert "ghost" not in repo.cache

    @pytest.mark.asyncio
    async def test_fetch_failure_is_transient(self, fake_store) -> None:
        fake_store.fail_fetch = True
        result = await ProfileRepository(fake_store).get_profile("u1")
        assert result.error_kind == ErrorKind.TRANSIENT_STORAGE

    @pytest.mark.asyncio
    async def test_save_rejects_mismatched_user(self, fake_store) -> None:
        result = await ProfileRepository(fake_store).save_profile("u1", CognitiveProfile(user_id="u2"))
        assert result.error_kind == ErrorKind.INVALID_INPUT
        assert fake_store.persist_profile_calls == 0

    @pytest.mark.asyncio
    async def test_save_rejects_invalid_profile(self, fake_store) -> None:
        profile = CognitiveProfile(user_id="u1", preferred_content_formats=["text", "video", "quiz"])
        result = await ProfileRepository(fake_store).save_profile("u1", profile)
        assert result.error_kind == ErrorKind.INVALID_INPUT
        assert fake_store.profiles == {}

    @pytest.mark.asyncio
    async def test_persist_failure_leaves_cache_unchanged(self, fake_store) -> None:
        repo = ProfileRepository(fake_store)
        original = CognitiveProfile(user_id="u1", learning_speed={"algebra": 0.5}, last_updated=NOW)
        await repo.save_profile("u1", original)

        fake_store.fail_persist = True
        result = await repo.update_profile("u1", {"learning_speed": {"algebra": 0.9}}, now=NOW)
        assert result.error_kind == ErrorKind.TRANSIENT_STORAGE

        cached = await repo.get_profile("u1")
        assert cached.profile == original
        assert fake_store.profiles["u1"] == original

    @pytest.mark.asyncio
    async def test_update_missing_profile(self, fake_store) -> None:
        repo = ProfileRepository(fake_store)
        result = await repo.update_profile("ghost", {"attention_span": 30.0})
        assert result.error_kind == ErrorKind.NOT_FOUND
        assert len(repo.cache) == 0
        assert fake_store.persist_profile_calls == 0

    @pytest.mark.asyncio
    async def test_update_rejects_unknown_fields(self, fake_store) -> None:
        repo = ProfileRepository(fake_store)
        await repo.save_profile("u1", CognitiveProfile(user_id="u1"))
        result = await repo.update_profile("u1", {"favourite_colour": "blue"})
        assert result.error_kind == ErrorKind.INVALID_INPUT

    @pytest.mark.asyncio
    async def test_update_rejects_user_id_change(self, fake_store) -> None:
        repo = ProfileRepository(fake_store)
        await repo.save_profile("u1", CognitiveProfile(user_id="u1"))
        result = await repo.update_profile("u1", {"user_id": "u2"})
        assert result.error_kind == ErrorKind.INVALID_INPUT

    @pytest.mark.asyncio
    async def test_update_merges_and_persists(self, fake_store) -> None:
        repo = ProfileRepository(fake_store)
        await repo.save_profile(
            "u1", CognitiveProfile(user_id="u1", knowledge_graph={"algebra": {"linear"}}, last_updated=NOW)
        )
        later = NOW + timedelta(days=1)

        result = await repo.update_profile("u1", {"knowledge_graph": {"algebra": ["quadratics"]}}, now=later)
        assert result.ok
        assert result.profile.knowledge_graph == {"algebra": {"linear", "quadratics"}}
        assert result.profile.last_updated == later
        assert fake_store.profiles["u1"].knowledge_graph == {"algebra": {"linear", "quadratics"}}
        assert (await repo.get_profile("u1")).profile == result.profile

    @pytest.mark.asyncio
    async def test_concurrent_updates_keep_every_topic(self, fake_store) -> None:
        repo = ProfileRepository(fake_store)
        await repo.save_profile("u1", CognitiveProfile(user_id="u1"))

        topics = [f"topic-{i}" for i in range(10)]
        results = await asyncio.gather(
            *(repo.update_profile("u1", {"knowledge_graph": {"algebra": [t]}}) for t in topics)
        )
        assert all(r.ok for r in results)
        assert fake_store.profiles["u1"].knowledge_graph == {"algebra": set(topics)}

    @pytest.mark.asyncio
    async def test_slow_read_does_not_cache_over_a_save(self) -> None:
        store = GatedStore()
        store.profiles["u1"] = CognitiveProfile(user_id="u1", attention_span=10.0, last_updated=NOW)
        repo = ProfileRepository(store)

        reader = asyncio.create_task(repo.get_profile("u1"))
        await store.read_done.wait()
        writer = asyncio.create_task(
            repo.save_profile("u1", CognitiveProfile(user_id="u1", attention_span=99.0, last_updated=NOW))
        )
        for _ in range(5):
            await asyncio.sleep(0)
        store.release.set()

        read, saved = await asyncio.gather(reader, writer)
        assert read.profile.attention_span == 10.0
        assert saved.ok

        latest = await repo.get_profile("u1")
        assert store.profiles["u1"].attention_span == 99.0
        assert latest.profile.attention_span == 99.0

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "updates",
        [
            {"attention_span": "long"},
            {"attention_span": True},
            {"knowledge_graph": {"math": "algebra"}},
            {"knowledge_graph": ["math"]},
            {"knowledge_graph": {"math": [1, 2]}},
            {"learning_speed": {"algebra": "fast"}},
            {"retention_rates": [0.5]},
            {"preferred_content_formats": "video"},
            {"last_updated": "yesterday"},
        ],
    )
    async def test_badly_typed_update_is_a_failure(self, fake_store, updates: dict) -> None:
        repo = ProfileRepository(fake_store)
        original = CognitiveProfile(user_id="u1", knowledge_graph={"math": {"geometry"}}, last_updated=NOW)
        await repo.save_profile("u1", original)

        result = await repo.update_profile("u1", updates)
        assert result.error_kind == ErrorKind.INVALID_INPUT
        assert fake_store.profiles["u1"] == original
        assert (await repo.get_profile("u1")).profile == original

    @pytest.mark.asyncio
    async def test_badly_typed_save_is_a_failure(self, fake_store) -> None:
        profile = CognitiveProfile(user_id="u1", attention_span="long")  # type: ignore[arg-type]
        result = await ProfileRepository(fake_store).save_profile("u1", profile)
        assert result.error_kind == ErrorKind.INVALID_INPUT
        assert fake_store.persist_profile_calls == 0

    @pytest.mark.asyncio
    async def test_idle_user_locks_are_released(self, fake_store) -> None:
        repo = ProfileRepository(fake_store)
        for i in range(20):
            await repo.get_or_create_profile(f"user-{i}", now=NOW)
            await repo.update_profile(f"ghost-{i}", {"attention_span": 5.0})
        gc.collect()
        assert len(repo._locks) == 0

    @pytest.mark.asyncio
    async def test_clear_cache(self, fake_store) -> None:
        repo = ProfileRepository(fake_store)
        await repo.save_profile("u1", CognitiveProfile(user_id="u1"))
        await repo.save_profile("u2", CognitiveProfile(user_id="u2"))

        repo.clear_cache("u1")
        assert "u1" not in repo.cache
        assert "u2" in repo.cache

        await repo.get_profile("u1")
        assert fake_store.fetch_profile_calls == 1

        repo.clear_cache()
        assert len(repo.cache) == 0
        assert set(fake_store.profiles) == {"u1", "u2"}

    @pytest.mark.asyncio
    async def test_get_or_create_derives_from_history(self, fake_store) -> None:
        fake_store.history["u1"] = list(HISTORY)
        repo = ProfileRepository(fake_store)

        result = await repo.get_or_create_profile("u1", now=NOW)
        assert result.ok
        assert result.profile.preferred_content_formats == ["video", "text"]
        assert result.profile.knowledge_graph == {"algebra": {"linear"}, "geometry": {"angles"}}
        assert "u1" in fake_store.profiles

        again = await repo.get_or_create_profile("u1", now=NOW)
        assert again.profile == result.profile
        assert fake_store.fetch_history_calls == 1

    @pytest.mark.asyncio
    async def test_get_or_create_concurrently_derives_once(self, fake_store) -> None:
        repo = ProfileRepository(fake_store)
        results = await asyncio.gather(*(repo.get_or_create_profile("u1", now=NOW) for _ in range(5)))
        assert all(r.ok for r in results)
        assert fake_store.fetch_history_calls == 1
        assert fake_store.persist_profile_calls == 1

    @pytest.mark.asyncio
    async def test_get_or_create_passes_through_transient_errors(self, fake_store) -> None:
        fake_store.fail_fetch = True
        result = await ProfileRepository(fake_store).get_or_create_profile("u1")
        assert result.error_kind == ErrorKind.TRANSIENT_STORAGE
        assert fake_store.fetch_history_calls == 0
