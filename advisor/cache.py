"""Time-to-live caches used by the retrieval layer."""

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    """A cached value with the wall-clock time it was stored and its lifetime."""

    value: T
    timestamp: float
    ttl: float

    def is_expired(self, now: float) -> bool:
        """Check expiry against ``now`` (seconds)."""  # noqa: DOC201
        return now - self.timestamp >= self.ttl


class TTLCache(Generic[T]):
    """Dictionary cache whose entries expire after a fixed lifetime.

    Expiry is evaluated lazily on read. Expired entries stay in place until
    ``cleanup`` runs so callers can still fall back to them with
    ``get_stale`` when a live fetch fails.
    """

    def __init__(
        self,
        ttl: float,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Create an empty cache.

        Args:
            ttl: Lifetime of new entries in seconds.
            clock: Source of the current time in seconds.
        """
        self.ttl = ttl
        self.clock = clock
        self._entries: dict[str, CacheEntry[T]] = {}
        self.hits = 0
        self.misses = 0

    def get(self, key: str) -> T | None:
        """Return a live value, or None when missing or expired."""  # noqa: DOC201
        entry = self._entries.get(key)
        if entry is None or entry.is_expired(self.clock()):
            self.misses += 1
            return None
        self.hits += 1
        return entry.value

    def get_stale(self, key: str) -> T | None:
        """Return a value regardless of expiry, or None when missing."""  # noqa: DOC201
        entry = self._entries.get(key)
        return entry.value if entry is not None else None

    def set(self, key: str, value: T, ttl: float | None = None) -> None:
        """Store ``value`` under ``key`` starting its lifetime now."""
        self._entries[key] = CacheEntry(
            value=value,
            timestamp=self.clock(),
            ttl=self.ttl if ttl is None else ttl,
        )

    def cleanup(self) -> int:
        """Evict every expired entry.

        Returns:
            Number of entries removed.
        """
        now = self.clock()
        expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def clear(self) -> None:
        """Remove every entry and reset hit counters."""
        self._entries.clear()
        self.hits = 0
        self.misses = 0

    @property
    def hit_rate(self) -> float | None:
        """Share of ``get`` calls served from the cache, if any were made."""
        lookups = self.hits + self.misses
        return self.hits / lookups if lookups else None

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)
