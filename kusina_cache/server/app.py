"""Application runtime that owns the cache context and backend client.

:class:`DashboardServer` is the application-lifetime object: it builds the
:class:`CacheContext` from configuration, connects the backend client when
one is configured, and wires the cached query layer on top. The HTTP surface
and the CLI both drive it through :meth:`start` / :meth:`stop`.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from ..backend import RestBackend
from ..backend.supabase import SupabaseRestClient
from ..cache import CacheContext
from ..config.models import AppConfig
from ..domain.queries import MealCurationQueries
from ..utils.events import RefreshNotifier

logger = logging.getLogger(__name__)


class DashboardServer:
    """Owner of the caches, backend client and query layer.

    Parameters
    ----------
    config: Optional[AppConfig]
        Application config; defaults when omitted.
    context: Optional[CacheContext]
        Pre-built cache context (tests pass one with a manual clock).
    backend: Optional[RestBackend]
        Pre-built backend; otherwise one is created from ``config.backend``.
    """

    def __init__(
        self,
        config: Optional[AppConfig] = None,
        *,
        context: Optional[CacheContext] = None,
        backend: Optional[RestBackend] = None,
    ) -> None:
        self.config = config or AppConfig()
        self.context = context or CacheContext(self.config.cache)
        self.notifier = RefreshNotifier()
        if backend is None and self.config.backend is not None:
            backend = SupabaseRestClient.from_config(self.config.backend)
        self.backend = backend
        self.queries: Optional[MealCurationQueries] = (
            MealCurationQueries(backend, self.context, self.notifier)
            if backend is not None
            else None
        )
        self._started: bool = False

    @property
    def started(self) -> bool:
        return self._started

    def check_invalidation_map(self) -> List[str]:
        """Log and return invalidation patterns with no memoized reader."""
        unmatched = self.context.unmatched_patterns()
        if unmatched and self.queries is not None:
            logger.warning(
                "cache.invalidation_map.unmatched_patterns",
                extra={"patterns": unmatched},
            )
        return unmatched

    async def start(self) -> None:
        """Start the runtime. Idempotent."""
        if self._started:
            logger.debug("server.start no-op: already started")
            return
        self.check_invalidation_map()
        self._started = True
        logger.info(
            "server.started",
            extra={
                "backend": type(self.backend).__name__ if self.backend else None,
                "stores": {
                    name: store.max_size for name, store in self.context.stores.items()
                },
            },
        )

    async def stop(self) -> None:
        """Close the backend client and drop cached data. Idempotent."""
        if not self._started:
            logger.debug("server.stop no-op: not started")
            return
        self._started = False
        if self.backend is not None:
            await self.backend.aclose()
        self.context.clear_all()
        logger.info("server.stopped")
