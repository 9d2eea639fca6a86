"""Backend client interface.

The query layer only needs table-level select/insert/update/delete. Anything
implementing :class:`RestBackend` can stand behind it; tests use in-memory
fakes, production uses :class:`~kusina_cache.backend.supabase.SupabaseRestClient`.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence

Row = Dict[str, Any]


class RestBackend(Protocol):
    """Protocol for table-oriented backend clients.

    ``params`` and ``filters`` use PostgREST query syntax, e.g.
    ``{"is_disabled": "eq.false", "order": "name.asc"}``.
    """

    async def select(
        self, table: str, params: Optional[Mapping[str, str]] = None
    ) -> List[Row]:
        """Return rows of ``table`` matching ``params``."""
        raise NotImplementedError

    async def insert(self, table: str, rows: Sequence[Mapping[str, Any]]) -> List[Row]:
        """Insert ``rows`` and return them as stored."""
        raise NotImplementedError

    async def update(
        self, table: str, filters: Mapping[str, str], values: Mapping[str, Any]
    ) -> List[Row]:
        """Apply ``values`` to rows matching ``filters``; return updated rows."""
        raise NotImplementedError

    async def delete(self, table: str, filters: Mapping[str, str]) -> List[Row]:
        """Delete rows matching ``filters``; return the deleted rows."""
        raise NotImplementedError

    async def aclose(self) -> None:
        """Release network resources."""
        raise NotImplementedError
