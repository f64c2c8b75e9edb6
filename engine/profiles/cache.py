"""In-process profile caches keyed by user id."""

from __future__ import annotations

import copy
import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from collections.abc import Callable

from engine.config import Settings
from engine.profiles.types import CognitiveProfile


class ProfileCache(ABC):
    """Storage-agnostic cache interface used by the profile repository.

    Implementations store and return copies so callers can never mutate a
    cached profile in place.
    """

    @abstractmethod
    def get(self, user_id: str) -> CognitiveProfile | None: ...

    @abstractmethod
    def set(self, user_id: str, profile: CognitiveProfile) -> None: ...

    @abstractmethod
    def evict(self, user_id: str) -> None: ...

    @abstractmethod
    def clear(self) -> None: ...

    @abstractmethod
    def __contains__(self, user_id: str) -> bool: ...

    @abstractmethod
    def __len__(self) -> int: ...


class InMemoryProfileCache(ProfileCache):
    """Unbounded dict cache. Entries live until evicted or the process exits."""

    def __init__(self) -> None:
        self._entries: dict[str, CognitiveProfile] = {}

    def get(self, user_id: str) -> CognitiveProfile | None:
        profile = self._entries.get(user_id)
        return copy.deepcopy(profile) if profile is not None else None

    def set(self, user_id: str, profile: CognitiveProfile) -> None:
        self._entries[user_id] = copy.deepcopy(profile)

    def evict(self, user_id: str) -> None:
        self._entries.pop(user_id, None)

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, user_id: str) -> bool:
        return user_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)


class TTLProfileCache(ProfileCache):
    """Bounded cache whose entries expire ``ttl_seconds`` after being set.

    When full, the least recently set entry is dropped.
    """

    def __init__(
        self,
        ttl_seconds: float,
        max_entries: int = 1024,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be positive, got {ttl_seconds}")
        if max_entries < 1:
            raise ValueError(f"max_entries must be at least 1, got {max_entries}")
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[str, tuple[float, CognitiveProfile]] = OrderedDict()

    def _purge_expired(self) -> None:
        now = self._clock()
        expired = [user_id for user_id, (expires_at, _) in self._entries.items() if expires_at <= now]
        for user_id in expired:
            del self._entries[user_id]

    def get(self, user_id: str) -> CognitiveProfile | None:
        self._purge_expired()
        entry = self._entries.get(user_id)
        return copy.deepcopy(entry[1]) if entry is not None else None

    def set(self, user_id: str, profile: CognitiveProfile) -> None:
        self._purge_expired()
        self._entries.pop(user_id, None)
        while len(self._entries) >= self.max_entries:
            self._entries.popitem(last=False)
        self._entries[user_id] = (self._clock() + self.ttl_seconds, copy.deepcopy(profile))

    def evict(self, user_id: str) -> None:
        self._entries.pop(user_id, None)

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, user_id: str) -> bool:
        self._purge_expired()
        return user_id in self._entries

    def __len__(self) -> int:
        self._purge_expired()
        return len(self._entries)


def cache_from_settings(settings: Settings) -> ProfileCache:
    """Build the cache configured by ``settings``."""
    if settings.profile_cache_ttl_seconds > 0:
        return TTLProfileCache(
            ttl_seconds=settings.profile_cache_ttl_seconds,
            max_entries=settings.profile_cache_max_entries,
        )
    return InMemoryProfileCache()
