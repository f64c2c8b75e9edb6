"""Cache-fronted repository for cognitive profiles.

The repository is the only writer of profiles. It persists first and
touches the cache only after the store confirms the write, so cache and
store never disagree after a successful save or update. Writes for the
same user are serialized with a per-user lock, which makes the
read-modify-write in ``update_profile`` safe against lost updates.

Public methods never raise engine errors across the cache/store boundary;
they return a ``RepositoryResult`` carrying either the profile or the error.
"""

from __future__ import annotations

import asyncio
import copy
import logging
import weakref
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from engine.config import utcnow
from engine.errors import EngineError, ErrorKind, InvalidInputError, NotFoundError
from engine.profiles.cache import InMemoryProfileCache, ProfileCache
from engine.profiles.deriver import derive_profile
from engine.profiles.types import (
    PROFILE_FIELDS,
    CognitiveProfile,
    ProfileUpdateOptions,
    validate_profile,
    validate_updates,
)
from engine.storage import LearningStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RepositoryResult:
    """Outcome of a repository call: a profile on success, an error otherwise."""

    profile: CognitiveProfile | None = None
    error: EngineError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def error_kind(self) -> ErrorKind | None:
        return self.error.kind if self.error is not None else None

    @classmethod
    def success(cls, profile: CognitiveProfile) -> RepositoryResult:
        return cls(profile=profile)

    @classmethod
    def failure(cls, error: EngineError) -> RepositoryResult:
        return cls(error=error)


def merge_knowledge_graph(
    existing: Mapping[str, set[str]],
    update: Mapping[str, Any],
) -> dict[str, set[str]]:
    """Union each updated domain's topics into ``existing``.

    Domains only present in ``existing`` are kept as they are; new domains
    are created. Merging the same update twice gives the same graph.
    """
    merged = {domain: set(topics) for domain, topics in existing.items()}
    for domain, topics in update.items():
        merged.setdefault(domain, set()).update(topics)
    return merged


def merge_profile(
    current: CognitiveProfile,
    updates: Mapping[str, Any],
    options: ProfileUpdateOptions,
    now: datetime | None = None,
) -> CognitiveProfile:
    """Apply ``updates`` to a copy of ``current`` following ``options``.

    - ``knowledge_graph`` is merged or replaced per ``merge_knowledge_graph``.
    - ``preferred_content_formats`` is only replaced with
      ``overwrite_content_preferences``; otherwise the update is ignored.
    - Every other field is replaced.
    - ``last_updated`` is bumped to ``now`` unless ``update_timestamp`` is off.
    """
    merged = copy.deepcopy(current)

    for name, value in updates.items():
        if name == "user_id":
            continue
        if name == "knowledge_graph":
            if options.merge_knowledge_graph:
                merged.knowledge_graph = merge_knowledge_graph(merged.knowledge_graph, value)
            else:
                merged.knowledge_graph = {domain: set(topics) for domain, topics in value.items()}
        elif name == "preferred_content_formats":
            if options.overwrite_content_preferences:
                merged.preferred_content_formats = list(value)
        else:
            setattr(merged, name, copy.deepcopy(value))

    if options.update_timestamp:
        merged.last_updated = now or utcnow()
    return merged


class ProfileRepository:
    """Single source of truth for reading and writing cognitive profiles.

    Args:
        store: Storage collaborator used for persistence.
        cache: Profile cache (defaults to an unbounded in-memory cache).
    """

    def __init__(self, store: LearningStore, cache: ProfileCache | None = None) -> None:
        self.store = store
        self.cache = cache if cache is not None else InMemoryProfileCache()
        # Holders and waiters keep a lock alive; idle locks are collected.
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def _lock_for(self, user_id: str) -> asyncio.Lock:
        lock = self._locks.get(user_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[user_id] = lock
        return lock

    async def get_profile(self, user_id: str) -> RepositoryResult:
        """Return the user's profile from the cache, falling back to the store.

        A cache miss is loaded under the user's lock, so a slow read can never
        cache a profile older than one a concurrent writer just saved. A "not
        found" outcome is not cached, so the next lookup queries the store
        again.
        """
        cached = self.cache.get(user_id)
        if cached is not None:
            logger.debug("Profile cache hit for %s", user_id)
            return RepositoryResult.success(cached)

        async with self._lock_for(user_id):
            return await self._load(user_id)

    async def _load(self, user_id: str) -> RepositoryResult:
        """Cache-then-store lookup. Caller holds the user lock."""
        cached = self.cache.get(user_id)
        if cached is not None:
            logger.debug("Profile cache hit for %s", user_id)
            return RepositoryResult.success(cached)

        logger.debug("Profile cache miss for %s", user_id)
        try:
            profile = await self.store.fetch_profile(user_id)
        except EngineError as e:
            logger.warning("Could not load profile for %s: %s", user_id, e)
            return RepositoryResult.failure(e)

        if profile is None:
            return RepositoryResult.failure(NotFoundError(f"No cognitive profile for user {user_id}"))

        self.cache.set(user_id, profile)
        return RepositoryResult.success(profile)

    async def save_profile(self, user_id: str, profile: CognitiveProfile) -> RepositoryResult:
        """Persist ``profile`` and, once the write succeeds, cache it."""
        if profile.user_id != user_id:
            return RepositoryResult.failure(
                InvalidInputError(f"Profile belongs to {profile.user_id!r}, not {user_id!r}")
            )
        try:
            validate_profile(profile)
        except InvalidInputError as e:
            return RepositoryResult.failure(e)

        async with self._lock_for(user_id):
            return await self._persist(profile)

    async def update_profile(
        self,
        user_id: str,
        updates: Mapping[str, Any],
        options: ProfileUpdateOptions | None = None,
        now: datetime | None = None,
    ) -> RepositoryResult:
        """Merge ``updates`` into the stored profile and persist the result.

        Args:
            user_id: Whose profile to update.
            updates: Field name to new value. Unknown fields are rejected.
            options: Merge switches (defaults to ``ProfileUpdateOptions()``).
            now: Timestamp to stamp on the profile (defaults to utcnow).

        Returns:
            The updated profile, or a failure. A missing profile yields a
            ``NotFoundError`` and leaves the cache untouched.
        """
        options = options or ProfileUpdateOptions()

        unknown = sorted(set(updates) - PROFILE_FIELDS)
        if unknown:
            return RepositoryResult.failure(InvalidInputError(f"Unknown profile fields: {', '.join(unknown)}"))
        if updates.get("user_id", user_id) != user_id:
            return RepositoryResult.failure(InvalidInputError("user_id cannot be changed by an update"))

        try:
            validate_updates(updates)
        except InvalidInputError as e:
            return RepositoryResult.failure(e)

        async with self._lock_for(user_id):
            current = await self._load(user_id)
            if not current.ok:
                return current

            merged = merge_profile(current.profile, updates, options, now)
            try:
                validate_profile(merged)
            except InvalidInputError as e:
                return RepositoryResult.failure(e)
            return await self._persist(merged)

    async def get_or_create_profile(self, user_id: str, now: datetime | None = None) -> RepositoryResult:
        """Return the user's profile, deriving and saving one from history if absent."""
        result = await self.get_profile(user_id)
        if result.ok or result.error_kind != ErrorKind.NOT_FOUND:
            return result

        async with self._lock_for(user_id):
            # Another task may have created it while we waited for the lock.
            result = await self._load(user_id)
            if result.ok or result.error_kind != ErrorKind.NOT_FOUND:
                return result

            try:
                history = await self.store.fetch_learning_history(user_id)
            except EngineError as e:
                return RepositoryResult.failure(e)

            profile = derive_profile(user_id, history, now)
            logger.info("Derived initial profile for %s from %d history records", user_id, len(history))
            return await self._persist(profile)

    def clear_cache(self, user_id: str | None = None) -> None:
        """Evict one user's cached profile, or the whole cache. Storage is untouched."""
        if user_id is None:
            self.cache.clear()
            logger.info("Cleared profile cache")
        else:
            self.cache.evict(user_id)
            logger.info("Evicted cached profile for %s", user_id)

    async def _persist(self, profile: CognitiveProfile) -> RepositoryResult:
        """Write-through: store first, cache only on success. Caller holds the user lock."""
        try:
            await self.store.persist_profile(copy.deepcopy(profile))
        except EngineError as e:
            logger.warning("Could not persist profile for %s: %s", profile.user_id, e)
            return RepositoryResult.failure(e)

        self.cache.set(profile.user_id, profile)
        logger.info("Saved profile for %s", profile.user_id)
        return RepositoryResult.success(copy.deepcopy(profile))
