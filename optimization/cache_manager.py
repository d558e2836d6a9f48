"""
Response Cache - In-Memory Result Caching
==========================================

Fingerprint-keyed cache for generated results and query payloads:
- Per-entry TTL, checked on read and by a recurring sweep
- LRU eviction at a fixed capacity
- Hit/miss/error statistics for cost reporting
- Failures never surface: a broken cache is a miss

Design Philosophy: Cache everything safely, invalidate intelligently.
The cache is never a source of truth and is rebuilt from empty on restart.
"""

import fnmatch
import hashlib
import json
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from loguru import logger

from core.models import GenerationRequest


def _normalize_text(value: Optional[str]) -> str:
    if not value:
        return ""
    return " ".join(value.split()).casefold()


def fingerprint(request: GenerationRequest) -> str:
    """
    Stable digest over the semantically relevant request fields.

    Text fields are case-folded and whitespace-collapsed; keywords are
    de-duplicated and sorted so their input order does not matter.
    """
    payload = {
        "kind": request.kind.value,
        "topic": _normalize_text(request.topic),
        "keywords": sorted({_normalize_text(k) for k in request.keywords if k.strip()}),
        "audience": _normalize_text(request.audience),
        "length": request.length,
    }
    if request.content:
        # Rewrites of different source texts must not collide
        payload["content"] = hashlib.sha256(_normalize_text(request.content).encode()).hexdigest()

    encoded = json.dumps(payload, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()


@dataclass
class CacheStats:
    """Cache statistics for monitoring."""

    hits: int = 0
    misses: int = 0
    sets: int = 0
    invalidations: int = 0
    evictions: int = 0
    expirations: int = 0
    errors: int = 0

    @property
    def hit_rate(self) -> float:
        """Calculate hit rate percentage."""
        total = self.hits + self.misses
        return (self.hits / total * 100) if total > 0 else 0.0

    @property
    def total_operations(self) -> int:
        return self.hits + self.misses + self.sets


@dataclass
class CacheEntry:
    """Cache entry with metadata. Times are clock seconds, not wall time."""

    key: str
    value: Any
    created_at: float
    ttl_seconds: float
    access_count: int = 0

    def is_expired(self, now: float) -> bool:
        return now - self.created_at >= self.ttl_seconds


class ResponseCache:
    """
    Bounded TTL cache with LRU eviction.

    One instance backs the generation path; the query cache keeps its own.
    `clock` is injectable so expiry can be tested without sleeping.
    """

    def __init__(
        self,
        name: str = "response",
        max_entries: int = 1000,
        default_ttl: float = 1800.0,
        clock: Callable[[], float] = time.monotonic,
        metrics_collector: Optional[Any] = None,
    ):
        if max_entries < 1:
            raise ValueError("max_entries must be positive")

        self.name = name
        self.max_entries = max_entries
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self.stats = CacheStats()
        self.metrics_collector = metrics_collector

        logger.info(f"Cache '{name}' initialized (max entries: {max_entries})")

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def size(self) -> int:
        return len(self._entries)

    # =========================================================================
    # GET / PUT
    # =========================================================================

    async def get(self, key: str) -> Optional[Any]:
        """
        Return the cached payload, or None on miss or expiry.

        Every call counts exactly one hit or one miss.
        """
        try:
            entry = self._entries.get(key)
            if entry is None:
                self._record_miss()
                return None

            if entry.is_expired(self._clock()):
                del self._entries[key]
                self.stats.expirations += 1
                self._record_miss()
                return None

            entry.access_count += 1
            self._entries.move_to_end(key)
            self._record_hit()
            return entry.value

        except Exception as e:
            logger.warning(f"Cache '{self.name}' get failed for key {key[:16]}: {e}")
            self.stats.errors += 1
            self.stats.misses += 1
            return None

    async def put(self, key: str, value: Any, ttl: Optional[float] = None) -> bool:
        """
        Store a payload for `ttl` seconds.

        Returns False (never raises) when the write could not be made.
        """
        if value is None:
            return False

        try:
            ttl = self.default_ttl if ttl is None else ttl
            if ttl <= 0:
                return False

            if key in self._entries:
                del self._entries[key]
            elif len(self._entries) >= self.max_entries:
                self._evict_lru()

            self._entries[key] = CacheEntry(
                key=key, value=value, created_at=self._clock(), ttl_seconds=ttl
            )
            self.stats.sets += 1
            self._update_size_metric()
            return True

        except Exception as e:
            logger.warning(f"Cache '{self.name}' put failed for key {key[:16]}: {e}")
            self.stats.errors += 1
            return False

    # =========================================================================
    # INVALIDATION
    # =========================================================================

    async def invalidate(self, key: str) -> bool:
        if self._entries.pop(key, None) is None:
            return False
        self.stats.invalidations += 1
        self._update_size_metric()
        return True

    async def invalidate_pattern(self, pattern: str) -> int:
        """
        Invalidate all keys matching a glob pattern.

        Args:
            pattern: Key pattern (e.g., "content_stats:*")

        Returns:
            Number of keys invalidated
        """
        matching_keys = [k for k in self._entries if fnmatch.fnmatch(k, pattern)]
        for key in matching_keys:
            del self._entries[key]

        self.stats.invalidations += len(matching_keys)
        self._update_size_metric()

        if matching_keys:
            logger.info(f"Invalidated {len(matching_keys)} keys matching pattern: {pattern}")
        return len(matching_keys)

    async def clear(self) -> int:
        count = len(self._entries)
        self._entries.clear()
        self.stats.invalidations += count
        self._update_size_metric()
        logger.info(f"Cache '{self.name}' cleared ({count} entries)")
        return count

    async def sweep(self) -> int:
        """Remove every expired entry. Runs on a timer independent of get/put."""
        now = self._clock()
        expired = [k for k, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            del self._entries[key]

        self.stats.expirations += len(expired)
        self._update_size_metric()

        if expired:
            logger.debug(f"Cache '{self.name}' sweep removed {len(expired)} expired entries")
        return len(expired)

    def _evict_lru(self) -> None:
        """Evict least recently used entry."""
        if not self._entries:
            return
        lru_key, _ = self._entries.popitem(last=False)
        self.stats.evictions += 1
        logger.debug(f"Evicted LRU entry: {lru_key[:16]}")

    # =========================================================================
    # STATISTICS
    # =========================================================================

    def _record_hit(self) -> None:
        self.stats.hits += 1
        if self.metrics_collector:
            self.metrics_collector.record_cache_hit(self.name)

    def _record_miss(self) -> None:
        self.stats.misses += 1
        if self.metrics_collector:
            self.metrics_collector.record_cache_miss(self.name)

    def _update_size_metric(self) -> None:
        if self.metrics_collector:
            self.metrics_collector.update_cache_size(self.name, len(self._entries))

    def get_statistics(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "entries": len(self._entries),
            "max_entries": self.max_entries,
            "hits": self.stats.hits,
            "misses": self.stats.misses,
            "sets": self.stats.sets,
            "invalidations": self.stats.invalidations,
            "evictions": self.stats.evictions,
            "expirations": self.stats.expirations,
            "errors": self.stats.errors,
            "hit_rate": round(self.stats.hit_rate, 2),
        }


__all__ = ["fingerprint", "CacheStats", "CacheEntry", "ResponseCache"]
