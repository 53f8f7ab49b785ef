"""In-process query cache with per-entry TTL."""
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from loguru import logger

from ..models import InventoryType

DEFAULT_TTL_MS = 60_000


@dataclass
class CacheEntry:
    """A cached value and the clock reading after which it is stale."""
    value: Any
    expires_at: float

    def is_expired(self, now: float) -> bool:
        """Check whether the entry has outlived its TTL."""
        return now > self.expires_at


class QueryCache:
    """Key/value cache for query results, invalidated by TTL or explicitly."""

    def __init__(
        self,
        default_ttl_ms: int = DEFAULT_TTL_MS,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize query cache.

        Args:
            default_ttl_ms: TTL used when `set` is called without one
            clock: Monotonic clock returning seconds
        """
        self.default_ttl_ms = default_ttl_ms
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self.hits = 0
        self.misses = 0

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get value from cache.

        Args:
            key: Cache key
            default: Returned when the key is absent or expired

        Returns:
            Cached value or `default`
        """
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return default

        if entry.is_expired(self._clock()):
            # lazy eviction
            del self._entries[key]
            self.misses += 1
            return default

        self.hits += 1
        return entry.value

    def set(self, key: str, value: Any, ttl_ms: Optional[int] = None):
        """
        Set value in cache, replacing any existing entry.

        Args:
            key: Cache key
            value: Value to cache
            ttl_ms: Time to live in milliseconds
        """
        if ttl_ms is None:
            ttl_ms = self.default_ttl_ms

        self._entries[key] = CacheEntry(
            value=value,
            expires_at=self._clock() + ttl_ms / 1000,
        )

    def invalidate(self, key: str) -> bool:
        """Delete one key; returns whether it was present."""
        return self._entries.pop(key, None) is not None

    def invalidate_by_prefix(self, namespace: str) -> int:
        """
        Delete every key in a namespace.

        Args:
            namespace: Namespace part of `namespace:identifier` keys

        Returns:
            Number of keys deleted
        """
        prefix = namespace.rstrip(":") + ":"
        keys = [key for key in self._entries if key.startswith(prefix)]
        for key in keys:
            del self._entries[key]

        if keys:
            logger.debug(f"Invalidated {len(keys)} cache entries under '{prefix}'")
        return len(keys)

    def invalidate_all(self) -> int:
        """Flush all cache data."""
        count = len(self._entries)
        self._entries.clear()
        logger.warning(f"Query cache flushed ({count} entries)")
        return count

    def __contains__(self, key: str) -> bool:
        entry = self._entries.get(key)
        return entry is not None and not entry.is_expired(self._clock())

    def __len__(self) -> int:
        return len(self._entries)

    def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        return {
            'entries': len(self._entries),
            'default_ttl_ms': self.default_ttl_ms,
            'hits': self.hits,
            'misses': self.misses,
            'hit_rate': self._calculate_hit_rate(),
        }

    def _calculate_hit_rate(self) -> float:
        """Calculate cache hit rate."""
        total = self.hits + self.misses
        if total == 0:
            return 0.0

        return self.hits / total


class CacheKeys:
    """Standard cache key patterns."""

    @staticmethod
    def inventory(inventory_type: InventoryType, hospital_id: int) -> str:
        """Grouped inventory of one type for one hospital."""
        return f"{inventory_type.value}:{hospital_id}"

    @staticmethod
    def hospital(hospital_id: int) -> str:
        """Single hospital record cache key."""
        return f"hospital:{hospital_id}"

    @staticmethod
    def all_hospitals() -> str:
        """Hospital list cache key."""
        return "hospitals:all"
