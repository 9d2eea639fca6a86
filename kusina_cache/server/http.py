"""Admin HTTP surface for cache diagnostics.

A thin FastAPI app over a :class:`DashboardServer`: operators read store
stats and hit-rate metrics, clear caches, and force refreshes by pattern,
refresh group, or operation name. ``/cache/*`` endpoints require a bearer
token when ``KUSINA_HTTP_TOKEN`` is set.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, Callable, Optional

import psutil
from fastapi import Depends, FastAPI, Header, HTTPException, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .. import __version__
from ..cache import REFRESH_GROUPS
from ..cache.models import MetricsSnapshot
from ..config.models import EnvSettings
from ..observability import setup_logging
from .app import DashboardServer
from .models import (
    CacheStatsResponse,
    ErrorResponse,
    HealthResponse,
    InvalidationResponse,
    PurgeResponse,
    RefreshRequest,
)

logger = logging.getLogger(__name__)


def _make_auth_dependency(expected: Optional[str]) -> Callable[..., None]:
    """Return a dependency function that enforces optional bearer token."""

    def _auth_dependency(authorization: str | None = Header(default=None)) -> None:
        if expected is None:
            return
        if not authorization or not authorization.startswith("Bearer "):
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)
        token = authorization.split(" ", 1)[1]
        if token != expected:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN)

    return _auth_dependency


def _not_found(detail: str, options: list[str]) -> HTTPException:
    err = ErrorResponse(
        detail=detail, error_type="not_found", available_options=options
    )
    return HTTPException(status_code=404, detail=err.model_dump())


def _register_health(app: FastAPI, server: DashboardServer) -> None:
    """Register liveness and readiness endpoints."""

    @app.get("/health", response_model=HealthResponse, summary="Liveness probe")
    async def health() -> HealthResponse:
        return HealthResponse(status="ok")

    @app.get("/ready", response_model=HealthResponse, summary="Readiness probe")
    async def ready() -> HealthResponse:
        return HealthResponse(status="ready" if server.started else "starting")


def _register_cache(app: FastAPI, server: DashboardServer, auth_dep: Any) -> None:
    """Register cache inspection and control endpoints."""
    ctx = server.context
    guard = [Depends(auth_dep)]

    @app.get("/cache/stats", response_model=CacheStatsResponse, dependencies=guard)
    async def cache_stats() -> CacheStatsResponse:
        return CacheStatsResponse(stores=ctx.get_stats())

    @app.get("/cache/metrics", response_model=MetricsSnapshot, dependencies=guard)
    async def cache_metrics() -> MetricsSnapshot:
        return ctx.get_metrics()

    @app.post(
        "/cache/metrics/reset", response_model=MetricsSnapshot, dependencies=guard
    )
    async def reset_metrics() -> MetricsSnapshot:
        ctx.metrics.reset()
        return ctx.get_metrics()

    @app.post("/cache/clear", response_model=CacheStatsResponse, dependencies=guard)
    async def clear_caches() -> CacheStatsResponse:
        ctx.clear_all()
        return CacheStatsResponse(stores=ctx.get_stats())

    @app.post("/cache/refresh", response_model=InvalidationResponse, dependencies=guard)
    async def force_refresh(req: RefreshRequest) -> InvalidationResponse:
        if req.group is not None:
            if req.group not in REFRESH_GROUPS:
                raise _not_found(
                    f"Unknown refresh group: {req.group}", sorted(REFRESH_GROUPS)
                )
            patterns = list(REFRESH_GROUPS[req.group])
        else:
            patterns = req.patterns
        removed = ctx.force_refresh(patterns)
        logger.info(
            "http.cache.refresh", extra={"patterns": patterns, "removed": removed}
        )
        return InvalidationResponse(removed=removed, patterns=patterns)

    @app.post(
        "/cache/invalidate/{operation}",
        response_model=InvalidationResponse,
        dependencies=guard,
    )
    async def invalidate_operation(operation: str) -> InvalidationResponse:
        router = ctx.router
        if not router.is_known(operation):
            raise _not_found(
                f"Unknown cache operation: {operation}", sorted(router.operations)
            )
        removed = ctx.invalidate_cache(operation)
        return InvalidationResponse(
            removed=removed, patterns=list(router.patterns_for(operation))
        )

    @app.post("/cache/purge-expired", response_model=PurgeResponse, dependencies=guard)
    async def purge_expired() -> PurgeResponse:
        return PurgeResponse(removed=ctx.purge_expired())


def _register_error_handlers(app: FastAPI) -> None:
    """Ensure every error response carries an :class:`ErrorResponse`."""

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(_request: Any, exc: Exception):  # noqa: D401
        err = ErrorResponse(detail=str(exc), error_type="validation_error")
        return JSONResponse(status_code=400, content={"detail": err.model_dump()})

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(_request: Any, exc: Any):  # noqa: D401
        detail = getattr(exc, "detail", "")
        if isinstance(detail, dict) and {"detail", "error_type"} <= detail.keys():
            payload = detail
        else:
            payload = ErrorResponse(
                detail=str(detail) or "HTTP error", error_type="http_error"
            ).model_dump()
        return JSONResponse(status_code=exc.status_code, content={"detail": payload})

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(_request: Any, exc: Exception):  # noqa: D401
        logger.error("http.unhandled_exception", exc_info=exc)
        err = ErrorResponse(
            detail="Internal error. See server logs.",
            error_type="internal_server_error",
        )
        return JSONResponse(status_code=500, content={"detail": err.model_dump()})


def create_app(
    server: Optional[DashboardServer] = None,
    settings: Optional[EnvSettings] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Parameters
    ----------
    server: Optional[DashboardServer]
        Runtime to expose; built from ``settings`` when omitted.
    settings: Optional[EnvSettings]
        Environment settings; read from the environment when omitted.
    """
    settings = settings or EnvSettings()
    # Respect prior logging configuration from CLI; otherwise use env setting
    if not logging.getLogger().hasHandlers():
        setup_logging(settings.log_level)
    if server is None:
        server = DashboardServer(settings.load_app_config())

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        logger.info("http.startup")
        mem_info = psutil.Process().memory_info()
        logger.info(
            "http.startup.memory",
            extra={
                "rss_mb": round(mem_info.rss / 1024 / 1024, 1),
                "vms_mb": round(mem_info.vms / 1024 / 1024, 1),
            },
        )
        await server.start()
        try:
            yield
        finally:
            logger.info("http.shutdown")
            await server.stop()

    app = FastAPI(title="Kusina Cache Admin", version=__version__, lifespan=lifespan)
    app.state.server = server
    _register_error_handlers(app)

    origins = settings.cors_origin_list()
    if origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    _register_health(app, server)
    _register_cache(app, server, _make_auth_dependency(settings.http_token or None))
    return app
