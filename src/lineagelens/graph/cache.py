"""TTL cache for impact analysis results.

Entries are keyed by ``(node_id, change_type)``. Expiry is lazy: a
stale entry is treated as absent on read. The periodic sweep only
reclaims memory and correctness never depends on it running.
"""

import time
from dataclasses import dataclass
from typing import Any, Callable, Generic, TypeVar

from lineagelens.common.logging import get_logger
from lineagelens.common.metrics import IMPACT_CACHE_EVICTIONS, IMPACT_CACHE_SIZE

logger = get_logger(__name__)

T = TypeVar("T")

CacheKey = tuple[str, str]


@dataclass
class CacheEntry(Generic[T]):
    """A cached value with the time it was stored and its TTL."""

    value: T
    cached_at: float
    ttl: float

    def is_expired(self, now: float) -> bool:
        """Check if entry has outlived its TTL."""
        return now - self.cached_at >= self.ttl


class ImpactCache(Generic[T]):
    """Simple TTL-based in-memory cache.

    Usage:
        cache = ImpactCache(default_ttl=3600)

        if (cached := cache.get(("node_a", "data_change"))) is not None:
            return cached

        cache.set(("node_a", "data_change"), analysis)
    """

    def __init__(
        self,
        default_ttl: float = 3600,
        max_entries: int = 10000,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize cache.

        Args:
            default_ttl: Default TTL in seconds.
            max_entries: Maximum entries before eviction.
            clock: Wall clock returning epoch seconds.
        """
        self.default_ttl = default_ttl
        self.max_entries = max_entries
        self._clock = clock
        self._cache: dict[CacheKey, CacheEntry[T]] = {}

        # Statistics
        self._hits = 0
        self._misses = 0

    def now(self) -> float:
        """Current time according to the cache clock."""
        return self._clock()

    def get(self, key: CacheKey) -> T | None:
        """Get value from cache if not expired.

        Args:
            key: Cache key.

        Returns:
            Cached value or None if not found/expired.
        """
        entry = self._cache.get(key)

        if entry is None:
            self._misses += 1
            return None

        if entry.is_expired(self.now()):
            self._cache.pop(key, None)
            self._misses += 1
            IMPACT_CACHE_EVICTIONS.labels(reason="expired").inc()
            IMPACT_CACHE_SIZE.set(len(self._cache))
            return None

        self._hits += 1
        return entry.value

    def set(
        self,
        key: CacheKey,
        value: T,
        cached_at: float | None = None,
        ttl: float | None = None,
    ) -> CacheEntry[T]:
        """Set value in cache with TTL.

        Args:
            key: Cache key.
            value: Value to cache.
            cached_at: Store time. Defaults to now.
            ttl: TTL in seconds. Uses default if not specified.

        Returns:
            The stored entry.
        """
        if key not in self._cache and len(self._cache) >= self.max_entries:
            self._evict_oldest()

        entry = CacheEntry(
            value=value,
            cached_at=self.now() if cached_at is None else cached_at,
            ttl=self.default_ttl if ttl is None else ttl,
        )
        self._cache[key] = entry
        IMPACT_CACHE_SIZE.set(len(self._cache))
        return entry

    def delete(self, key: CacheKey) -> bool:
        """Delete a key from cache.

        Returns:
            True if key existed, False otherwise.
        """
        existed = self._cache.pop(key, None) is not None
        IMPACT_CACHE_SIZE.set(len(self._cache))
        return existed

    def invalidate_node(self, node_id: str) -> int:
        """Invalidate every entry of a node, whatever its change type.

        Returns:
            Number of entries invalidated.
        """
        keys = [key for key in self._cache if key[0] == node_id]
        for key in keys:
            del self._cache[key]
        if keys:
            IMPACT_CACHE_EVICTIONS.labels(reason="invalidated").inc(len(keys))
            IMPACT_CACHE_SIZE.set(len(self._cache))
        return len(keys)

    def clear(self) -> int:
        """Clear all entries from cache.

        Returns:
            Number of entries cleared.
        """
        count = len(self._cache)
        self._cache.clear()
        IMPACT_CACHE_SIZE.set(0)
        return count

    def sweep_expired(self) -> int:
        """Remove all expired entries.

        Returns:
            Number of entries removed.
        """
        now = self.now()
        expired_keys = [
            key for key, entry in self._cache.items()
            if entry.is_expired(now)
        ]

        for key in expired_keys:
            del self._cache[key]

        if expired_keys:
            IMPACT_CACHE_EVICTIONS.labels(reason="expired").inc(len(expired_keys))
            logger.debug(
                "Impact cache sweep completed",
                expired_count=len(expired_keys),
                remaining_count=len(self._cache),
            )

        IMPACT_CACHE_SIZE.set(len(self._cache))
        return len(expired_keys)

    def __len__(self) -> int:
        return len(self._cache)

    def __contains__(self, key: object) -> bool:
        return key in self._cache

    @property
    def stats(self) -> dict[str, Any]:
        """Get cache statistics."""
        total = self._hits + self._misses
        hit_rate = (self._hits / total * 100) if total > 0 else 0

        return {
            "entries": len(self._cache),
            "max_entries": self.max_entries,
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate_percent": round(hit_rate, 2),
            "default_ttl": self.default_ttl,
        }

    def _evict_oldest(self) -> None:
        """Evict oldest entries when at capacity."""
        # Oldest 10% of entries
        evict_count = max(1, self.max_entries // 10)

        sorted_entries = sorted(
            self._cache.items(),
            key=lambda x: x[1].cached_at,
        )

        for key, _ in sorted_entries[:evict_count]:
            del self._cache[key]

        IMPACT_CACHE_EVICTIONS.labels(reason="capacity").inc(evict_count)
        logger.debug(
            "Impact cache eviction completed",
            evicted_count=evict_count,
            remaining_count=len(self._cache),
        )
