"""
In-Memory TTL Cache

Process-wide key/value store with a per-entry time-to-live. Used by the
validation service for verdicts and by the sync job for dashboard snapshots.

Expiration is lazy: an expired entry is discarded the first time it is read.
There is no background sweeper.

Usage:
    from dashsync.cache import MemoryCache

    cache = MemoryCache()
    cache.set("dashboard:sprints:Product", sprints, ttl_seconds=1800)
    sprints = cache.get("dashboard:sprints:Product")  # None once expired
"""

import time
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from typing import Any

from dashsync.core.errors import ContractViolationError
from dashsync.core.logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class CacheEntry:
    """
    A cached value.

    Attributes:
        key: Cache key
        value: Opaque cached value
        inserted_at: Clock reading when the entry was written
        ttl_seconds: Lifetime; the entry is not served once `now - inserted_at >= ttl_seconds`
    """

    key: str
    value: Any
    inserted_at: float
    ttl_seconds: float

    def is_expired(self, now: float) -> bool:
        return now - self.inserted_at >= self.ttl_seconds


class MemoryCache:
    """
    Mapping from string key to value with per-entry TTL.

    Guarantees read-your-writes within the process and last-writer-wins for
    the same key. Reads never raise; only invalid arguments to `set` do.

    Args:
        clock: Monotonic clock in seconds (injectable for tests)
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._stats = {"hits": 0, "misses": 0, "sets": 0, "deletes": 0, "expired": 0}

    def get(self, key: str) -> Any | None:
        """
        Return the cached value, or None if absent or expired.

        Expired entries are removed as a side effect. A non-string key is
        treated as absent.
        """
        entry = self._live_entry(key) if isinstance(key, str) else None
        if entry is None:
            self._stats["misses"] += 1
            return None
        self._stats["hits"] += 1
        return entry.value

    def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        """
        Store `value` under `key`, replacing any prior entry.

        Raises:
            ContractViolationError: If ttl_seconds is not positive or key is empty
        """
        if not isinstance(key, str) or not key:
            raise ContractViolationError("Cache key must be a non-empty string")
        if isinstance(ttl_seconds, bool) or not isinstance(ttl_seconds, int | float) or ttl_seconds <= 0:
            raise ContractViolationError(f"ttl_seconds must be positive, got {ttl_seconds!r}")

        self._entries[key] = CacheEntry(key=key, value=value, inserted_at=self._clock(), ttl_seconds=ttl_seconds)
        self._stats["sets"] += 1
        logger.debug("Cache set", extra={"key": key, "ttl_seconds": ttl_seconds})

    def delete(self, key: str) -> None:
        """Remove `key`. Deleting a missing or non-string key is a no-op."""
        if isinstance(key, str) and self._entries.pop(key, None) is not None:
            self._stats["deletes"] += 1

    def clear(self) -> None:
        self._entries.clear()

    def keys(self) -> Iterator[str]:
        """Live keys (expired entries are discarded while iterating)."""
        for key in list(self._entries):
            if self._live_entry(key) is not None:
                yield key

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self._live_entry(key) is not None

    def __len__(self) -> int:
        return sum(1 for _ in self.keys())

    def get_stats(self) -> dict[str, int]:
        """Hit/miss/set/delete counters plus the current entry count."""
        return {**self._stats, "entries": len(self)}

    def _live_entry(self, key: str) -> CacheEntry | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.is_expired(self._clock()):
            del self._entries[key]
            self._stats["expired"] += 1
            return None
        return entry
