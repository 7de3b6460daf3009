"""Simple cache abstractions."""

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol


class Cache(Protocol):
    """Cache interface for simple key-value data."""

    def get(self, key: str) -> object | None:
        """Return a cached value if present and not expired."""

    def set(self, key: str, value: object) -> None:
        """Store a cached value, replacing any previous entry."""


@dataclass
class _CacheEntry:
    value: object
    stored_at: float


class InMemoryCache(Cache):
    """Process-local cache with lazy time-based expiry.

    Entries are never swept in the background; an expired entry is dropped
    the next time it is read. Capacity is unbounded, so the key space must
    stay small (single images and listing pages).
    """

    def __init__(
        self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, _CacheEntry] = {}

    def get(self, key: str) -> object | None:
        """Return a cached value if it hasn't expired."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() - entry.stored_at >= self.ttl_seconds:
            self._entries.pop(key, None)
            return None
        return entry.value

    def set(self, key: str, value: object) -> None:
        """Store a cached value stamped with the current time."""
        self._entries[key] = _CacheEntry(value=value, stored_at=self._clock())

    def __len__(self) -> int:
        return len(self._entries)
