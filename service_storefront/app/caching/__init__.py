"""
Storefront response caching package.

Holds the in-process response store, the HTTP adapter that fronts read
routes with it, the write-route invalidation map, and the stats/sweep
helpers. Only idempotent GETs are cached; every successful write
invalidates the families it touches before responding.
"""

from .response_cache import CacheEntry, CacheStats, ResponseCache
from .invalidation import InvalidationMap
from .middleware import CacheRule, ResponseCacheAdapter, ResponseCacheMiddleware, build_cache_key
from .stats import CacheStatsReporter, CacheStatsResponse
from .sweeper import CacheSweeper

__all__ = [
    "CacheEntry",
    "CacheRule",
    "CacheStats",
    "CacheStatsReporter",
    "CacheStatsResponse",
    "CacheSweeper",
    "InvalidationMap",
    "ResponseCache",
    "ResponseCacheAdapter",
    "ResponseCacheMiddleware",
    "build_cache_key",
]
