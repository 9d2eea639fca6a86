"""Caching layer for backend data-access functions.

Pieces, leaves first:

- :class:`CacheStore`: bounded TTL store with LRU eviction
- :func:`memoize`: cached, request-coalescing wrapper for async fetches
- :class:`InvalidationRouter`: operation name to pattern invalidation
- :class:`CacheContext`: owns one store per :class:`Volatility` class
"""

from .context import CacheContext, Volatility
from .invalidation import (
    CACHE_INVALIDATION_PATTERNS,
    REFRESH_GROUPS,
    CacheOperation,
    InvalidationRouter,
)
from .keys import CacheKeyError, function_name_of, make_cache_key, stable_serialize
from .memoize import InFlightRegistry, memoize
from .metrics import CacheMetrics
from .models import CacheEntry, CacheEntryStats, CacheStats, MetricsSnapshot
from .store import CacheStore

__all__ = [
    "CACHE_INVALIDATION_PATTERNS",
    "REFRESH_GROUPS",
    "CacheContext",
    "CacheEntry",
    "CacheEntryStats",
    "CacheKeyError",
    "CacheMetrics",
    "CacheOperation",
    "CacheStats",
    "CacheStore",
    "InFlightRegistry",
    "InvalidationRouter",
    "MetricsSnapshot",
    "Volatility",
    "function_name_of",
    "make_cache_key",
    "memoize",
    "stable_serialize",
]
