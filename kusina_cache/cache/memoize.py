"""Memoizing wrapper for async data-fetch functions.

:func:`memoize` turns ``async def fetch(*args)`` into a cached version that

- answers from the store while the entry is fresh,
- coalesces concurrent calls with the same key into one backend call,
- caches successful results only; exceptions propagate to every waiter and
  leave the store untouched.

Results are cached whatever they contain. A result object that reports an
application-level failure (``success=False``) is still a normal value here.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

from .keys import KEY_SEPARATOR, make_cache_key
from .metrics import CacheMetrics
from .store import CacheStore

logger = logging.getLogger(__name__)

R = TypeVar("R")

_MISSING = object()


class InFlightRegistry:
    """Pending fetch tasks keyed by cache key.

    An entry lives only while its task runs; it is dropped as soon as the
    task settles, whether or not the result was cached.
    """

    def __init__(self) -> None:
        self._pending: Dict[str, asyncio.Task] = {}

    def __len__(self) -> int:
        return len(self._pending)

    def __contains__(self, key: object) -> bool:
        return key in self._pending

    def get(self, key: str) -> Optional[asyncio.Task]:
        return self._pending.get(key)

    def register(self, key: str, task: asyncio.Task) -> None:
        self._pending[key] = task

    def discard(self, key: str, task: asyncio.Task) -> None:
        """Remove ``key`` if it still points at ``task``."""
        if self._pending.get(key) is task:
            del self._pending[key]


def memoize(
    store: CacheStore,
    function_name: str,
    fn: Callable[..., Awaitable[R]],
    ttl_ms: Optional[int] = None,
    *,
    metrics: Optional[CacheMetrics] = None,
    in_flight: Optional[InFlightRegistry] = None,
) -> Callable[..., Awaitable[R]]:
    """Wrap ``fn`` with caching and request coalescing.

    Parameters
    ----------
    store: CacheStore
        Store holding the results.
    function_name: str
        Key namespace. Invalidation patterns match against it, so it must be
        non-empty and free of ``:``.
    fn: Callable[..., Awaitable[R]]
        The real fetch.
    ttl_ms: Optional[int]
        Entry TTL; the store default when ``None``.
    metrics: Optional[CacheMetrics]
        Counters to update on hits, joins, misses and failures.
    in_flight: Optional[InFlightRegistry]
        Registry to coalesce through. A private one is created when omitted.

    Returns
    -------
    Callable[..., Awaitable[R]]
        Async function with ``fn``'s signature.

    Raises
    ------
    ValueError
        If ``function_name`` is empty or contains ``:``.
    """
    if not function_name or KEY_SEPARATOR in function_name:
        raise ValueError(f"invalid cache function name: {function_name!r}")
    pending = in_flight if in_flight is not None else InFlightRegistry()

    def _settle(key: str, started: float, task: asyncio.Task) -> None:
        # Runs before any waiter resumes: registered ahead of their shields.
        pending.discard(key, task)
        if task.cancelled():
            logger.debug("cache.fetch_cancelled", extra={"key": key})
            return
        exc = task.exception()
        if exc is not None:
            if metrics is not None:
                metrics.record_failure()
            logger.debug(
                "cache.fetch_failed",
                extra={"key": key, "error_type": type(exc).__name__},
            )
            return
        elapsed_ms = (time.perf_counter() - started) * 1000.0
        store.set(key, task.result(), ttl_ms)
        if metrics is not None:
            metrics.record_miss(elapsed_ms)
        logger.debug(
            "cache.stored",
            extra={"store": store.name, "key": key, "duration_ms": int(elapsed_ms)},
        )

    @functools.wraps(fn)
    async def wrapper(*args: Any, **kwargs: Any) -> R:
        key = make_cache_key(function_name, args, kwargs)
        cached = store.get(key, _MISSING)
        if cached is not _MISSING:
            if metrics is not None:
                metrics.record_hit()
            logger.debug("cache.hit", extra={"store": store.name, "key": key})
            return cached

        task = pending.get(key)
        if task is None:
            logger.debug("cache.miss", extra={"store": store.name, "key": key})
            task = asyncio.ensure_future(fn(*args, **kwargs))
            pending.register(key, task)
            task.add_done_callback(
                functools.partial(_settle, key, time.perf_counter())
            )
        else:
            if metrics is not None:
                metrics.record_coalesced()
            logger.debug("cache.coalesced", extra={"store": store.name, "key": key})
        # A cancelled caller must not cancel the fetch other callers share.
        return await asyncio.shield(task)

    setattr(wrapper, "cache_store", store)
    setattr(wrapper, "cache_function_name", function_name)
    return wrapper
