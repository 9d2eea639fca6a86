"""Application-lifetime cache context.

One :class:`CacheContext` owns the stores for every volatility class, the
invalidation router over them, and the shared metrics. Build one per process
(or per test) and pass it to whatever needs caching.
"""

from __future__ import annotations

import logging
import time
from enum import Enum
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, TypeVar

from ..config.models import CacheConfig
from .invalidation import InvalidationRouter, OperationName
from .memoize import InFlightRegistry, memoize
from .metrics import CacheMetrics
from .models import MetricsSnapshot, StatsByStore
from .store import CacheStore, Timer

logger = logging.getLogger(__name__)

R = TypeVar("R")


class Volatility(str, Enum):
    """How often the cached data changes; one store per class."""

    STATIC = "static"
    DYNAMIC = "dynamic"
    USER = "user"


class CacheContext:
    """Stores, router and metrics for one application.

    Parameters
    ----------
    config: Optional[CacheConfig]
        Store sizes and TTLs; defaults when omitted.
    timer: Callable[[], float]
        Monotonic clock in seconds handed to every store.
    metrics: Optional[CacheMetrics]
        Counters to share; a new recorder is created when omitted.
    """

    def __init__(
        self,
        config: Optional[CacheConfig] = None,
        *,
        timer: Timer = time.monotonic,
        metrics: Optional[CacheMetrics] = None,
    ) -> None:
        cfg = config or CacheConfig()
        self._stores: Dict[Volatility, CacheStore] = {
            Volatility.STATIC: CacheStore.from_config(
                "static", cfg.static, timer=timer
            ),
            Volatility.DYNAMIC: CacheStore.from_config(
                "dynamic", cfg.dynamic, timer=timer
            ),
            Volatility.USER: CacheStore.from_config("user", cfg.user, timer=timer),
        }
        self.metrics = metrics or CacheMetrics(history_size=cfg.metrics_history_size)
        self.router = InvalidationRouter(self._stores.values())
        self._in_flight = InFlightRegistry()
        self._function_names: List[str] = []

    @property
    def static(self) -> CacheStore:
        return self._stores[Volatility.STATIC]

    @property
    def dynamic(self) -> CacheStore:
        return self._stores[Volatility.DYNAMIC]

    @property
    def user(self) -> CacheStore:
        return self._stores[Volatility.USER]

    @property
    def stores(self) -> Dict[str, CacheStore]:
        return {v.value: store for v, store in self._stores.items()}

    @property
    def function_names(self) -> List[str]:
        """Names of every function memoized through this context."""
        return list(self._function_names)

    def store(self, volatility: Volatility | str) -> CacheStore:
        return self._stores[Volatility(volatility)]

    def memoize(
        self,
        volatility: Volatility | str,
        function_name: str,
        fn: Callable[..., Awaitable[R]],
        ttl_ms: Optional[int] = None,
    ) -> Callable[..., Awaitable[R]]:
        """Memoize ``fn`` in the store for ``volatility``.

        All functions of a context share one in-flight registry and the
        context metrics.

        Raises
        ------
        ValueError
            If ``function_name`` is already memoized in this context.
        """
        if function_name in self._function_names:
            raise ValueError(f"function name already memoized: {function_name!r}")
        wrapped = memoize(
            self.store(volatility),
            function_name,
            fn,
            ttl_ms,
            metrics=self.metrics,
            in_flight=self._in_flight,
        )
        self._function_names.append(function_name)
        return wrapped

    def invalidate_cache(self, operation: OperationName) -> int:
        return self.router.invalidate_cache(operation)

    def force_refresh(self, patterns: Iterable[str]) -> int:
        return self.router.force_refresh(patterns)

    def clear_all(self) -> None:
        for store in self._stores.values():
            store.clear()
        logger.info("cache.cleared", extra={"stores": [v.value for v in self._stores]})

    def purge_expired(self) -> Dict[str, int]:
        return {v.value: store.purge_expired() for v, store in self._stores.items()}

    def get_stats(self) -> StatsByStore:
        return {v.value: store.get_stats() for v, store in self._stores.items()}

    def get_metrics(self) -> MetricsSnapshot:
        return self.metrics.snapshot()

    def unmatched_patterns(self) -> List[str]:
        """Invalidation patterns that match no memoized function name."""
        return self.router.unmatched_patterns(self._function_names)
