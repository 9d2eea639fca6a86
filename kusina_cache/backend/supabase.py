"""PostgREST client for the hosted backend.

This client turns table operations into HTTP requests against a Supabase
project's REST endpoint (``<url>/rest/v1/<table>``). It owns transport
concerns (base URL, API-key headers, timeouts, retries) and returns decoded
JSON rows.

Notes
-----
- Transport errors and 429 or 5xx responses are retried with exponential
  backoff up to ``max_retries`` times. Other HTTP errors are raised
  immediately.
- Errors are raised as ``httpx.HTTPError`` subclasses; callers decide whether
  to surface or convert them.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

import httpx

from .. import __version__
from ..config.models import BackendConfig
from . import Row

logger = logging.getLogger(__name__)

_RETRY_STATUSES = frozenset({429, 500, 502, 503, 504})


class SupabaseRestClient:
    """Table-level client for a Supabase REST API.

    Parameters
    ----------
    url: str
        Project base URL (e.g., "https://xyz.supabase.co").
    api_key: str
        Project API key.
    timeout: int
        Request timeout in seconds for all HTTP operations.

    Attributes
    ----------
    _client: httpx.AsyncClient
        Shared async client configured with base URL, timeout, and headers.
    """

    def __init__(
        self,
        url: str,
        api_key: str,
        timeout: int = 30,
        *,
        max_retries: int = 1,
        backoff_initial_ms: int = 200,
        backoff_multiplier: float = 2.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=url.rstrip("/") + "/rest/v1",
            timeout=timeout,
            headers=self._headers(api_key),
            transport=transport,
        )
        self._max_retries = max(0, int(max_retries))
        self._backoff_initial_ms = max(0, int(backoff_initial_ms))
        self._backoff_multiplier = max(1.0, float(backoff_multiplier))
        self._timeout_seconds = timeout
        logger.info(
            "backend.client.init", extra={"url": url, "timeout_seconds": timeout}
        )

    @classmethod
    def from_config(
        cls,
        config: BackendConfig,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "SupabaseRestClient":
        return cls(
            config.url,
            config.api_key,
            config.timeout_seconds,
            max_retries=config.max_retries,
            backoff_initial_ms=config.backoff_initial_ms,
            backoff_multiplier=config.backoff_multiplier,
            transport=transport,
        )

    @staticmethod
    def _headers(api_key: str) -> Dict[str, str]:
        """Build default headers for JSON requests that echo written rows."""
        return {
            "apikey": api_key,
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
            "Prefer": "return=representation",
            "X-Client-Info": f"kusina-cache/{__version__}",
        }

    def _backoff_seconds(self, attempt: int) -> float:
        return (self._backoff_initial_ms / 1000.0) * (self._backoff_multiplier**attempt)

    async def _request(
        self,
        method: str,
        table: str,
        *,
        params: Optional[Mapping[str, str]] = None,
        json: Any = None,
    ) -> List[Row]:
        """Send one request with retries and return the decoded rows.

        Raises
        ------
        httpx.HTTPError
            On transport errors after retries, or non-2xx responses.
        ValueError
            If the response body is not valid JSON.
        """
        path = f"/{table}"
        logger.debug(
            "backend.http.request",
            extra={"method": method, "path": path, "params": dict(params or {})},
        )
        attempt = 0
        while True:
            try:
                resp = await self._client.request(
                    method, path, params=dict(params or {}), json=json
                )
                resp.raise_for_status()
                break
            except httpx.TransportError as exc:
                if attempt >= self._max_retries:
                    logger.error(
                        "backend.http.unreachable",
                        extra={
                            "path": path,
                            "attempts": attempt + 1,
                            "timeout_seconds": self._timeout_seconds,
                            "error": str(exc),
                        },
                    )
                    raise
            except httpx.HTTPStatusError as exc:
                status = exc.response.status_code
                if status not in _RETRY_STATUSES or attempt >= self._max_retries:
                    text = exc.response.text or ""
                    logger.error(
                        "backend.http.status_error",
                        extra={
                            "path": path,
                            "status": status,
                            "body_preview": text[:500],
                        },
                    )
                    raise
            delay = self._backoff_seconds(attempt)
            logger.warning(
                "backend.http.retry",
                extra={"path": path, "attempt": attempt + 1, "delay_s": delay},
            )
            await asyncio.sleep(delay)
            attempt += 1

        if resp.status_code == 204 or not resp.content:
            return []
        data = resp.json()
        return data if isinstance(data, list) else [data]

    async def select(
        self, table: str, params: Optional[Mapping[str, str]] = None
    ) -> List[Row]:
        query = {"select": "*"}
        query.update(params or {})
        return await self._request("GET", table, params=query)

    async def insert(self, table: str, rows: Sequence[Mapping[str, Any]]) -> List[Row]:
        return await self._request("POST", table, json=[dict(r) for r in rows])

    async def update(
        self, table: str, filters: Mapping[str, str], values: Mapping[str, Any]
    ) -> List[Row]:
        if not filters:
            raise ValueError(f"refusing to update every row of {table!r}")
        return await self._request("PATCH", table, params=filters, json=dict(values))

    async def delete(self, table: str, filters: Mapping[str, str]) -> List[Row]:
        if not filters:
            raise ValueError(f"refusing to delete every row of {table!r}")
        return await self._request("DELETE", table, params=filters)

    async def aclose(self) -> None:
        await self._client.aclose()
