"""
Query Result Caching

Provides a TTL cache and a decorator for read-heavy aggregation queries,
with a lifetime per query type (long for slowly changing statistics,
short for live listings).
"""

import functools
import hashlib
import json
from typing import Any, Awaitable, Callable, Dict, Optional

from loguru import logger

from optimization.cache_manager import ResponseCache


def cache_key_builder(*args, **kwargs) -> str:
    """
    Build cache key suffix from call arguments.

    Returns:
        MD5 hash of serialized arguments
    """
    key_data = {
        "args": [str(arg) for arg in args],
        "kwargs": {k: str(v) for k, v in sorted(kwargs.items()) if not callable(v)},
    }
    key_string = json.dumps(key_data, sort_keys=True)
    return hashlib.md5(key_string.encode()).hexdigest()


class QueryCache:
    """
    Fingerprint + TTL cache in front of the relational store.

    Loader errors propagate because the store is the source of truth;
    cache errors never do.
    """

    def __init__(
        self,
        cache: ResponseCache,
        ttls: Optional[Dict[str, int]] = None,
        default_ttl: int = 300,
    ):
        self.cache = cache
        self.ttls = dict(ttls or {})
        self.default_ttl = default_ttl

    def ttl_for(self, query_type: str) -> int:
        return self.ttls.get(query_type, self.default_ttl)

    @staticmethod
    def build_key(query_type: str, params: Optional[Dict[str, Any]] = None) -> str:
        return f"{query_type}:{cache_key_builder(**(params or {}))}"

    async def get_or_load(
        self,
        query_type: str,
        params: Optional[Dict[str, Any]],
        loader: Callable[[], Awaitable[Any]],
    ) -> Any:
        """
        Return the cached result for (query_type, params), loading on miss.

        Example:
            stats = await query_cache.get_or_load(
                "content_stats", {"days": 30}, lambda: repo.load_stats(30)
            )
        """
        key = self.build_key(query_type, params)

        cached_value = await self.cache.get(key)
        if cached_value is not None:
            return cached_value

        result = await loader()

        if result is not None:
            await self.cache.put(key, result, ttl=self.ttl_for(query_type))

        return result

    async def invalidate(self, query_type: str) -> int:
        """Drop every cached result of one query type."""
        count = await self.cache.invalidate_pattern(f"{query_type}:*")
        logger.debug(f"Invalidated {count} cached '{query_type}' results")
        return count

    async def sweep(self) -> int:
        """Remove expired query results; returns the number removed."""
        return await self.cache.sweep()

    def get_statistics(self) -> Dict[str, Any]:
        stats = self.cache.get_statistics()
        stats["ttls"] = dict(self.ttls)
        return stats


def cached_query(query_type: str):
    """
    Decorator for caching repository query results.

    The decorated method's instance must expose a `query_cache` attribute;
    when it is None the query runs uncached.

    Example:
        @cached_query("content_stats")
        async def get_content_stats(self, days: int = 30):
            return await self.db.fetch_one(...)
    """

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def wrapper(self, *args, **kwargs):
            query_cache: Optional[QueryCache] = getattr(self, "query_cache", None)

            if query_cache is None:
                return await func(self, *args, **kwargs)

            params = {"args": args, **kwargs}
            return await query_cache.get_or_load(
                query_type, params, lambda: func(self, *args, **kwargs)
            )

        return wrapper

    return decorator


__all__ = ["cache_key_builder", "QueryCache", "cached_query"]
