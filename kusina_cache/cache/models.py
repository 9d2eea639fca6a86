"""Cache entry and diagnostics models."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List

from pydantic import BaseModel, Field


@dataclass(frozen=True)
class CacheEntry:
    """One memoized result.

    Timestamps are seconds on the owning store's timer, so they are only
    comparable with that store's clock.
    """

    key: str
    value: Any
    created_at: float
    expires_at: float

    @property
    def ttl_ms(self) -> int:
        return int(round((self.expires_at - self.created_at) * 1000))

    def is_expired(self, now: float) -> bool:
        """Return True once ``now`` is past the expiry instant."""
        return now > self.expires_at


class CacheEntryStats(BaseModel):
    """Diagnostic view of a single entry."""

    key: str
    is_expired: bool
    age_ms: int = Field(ge=0)
    ttl_ms: int


class CacheStats(BaseModel):
    """Read-only snapshot of a cache store."""

    name: str
    size: int
    max_size: int
    default_ttl_ms: int
    entries: List[CacheEntryStats] = Field(default_factory=list)

    @property
    def expired_count(self) -> int:
        return sum(1 for entry in self.entries if entry.is_expired)


class MetricsSnapshot(BaseModel):
    """Point-in-time view of cache effectiveness counters."""

    cache_hits: int = 0
    cache_misses: int = 0
    coalesced_requests: int = 0
    failed_requests: int = 0
    api_calls_saved: int = 0
    total_api_calls: int = 0
    average_response_time_ms: float = 0.0
    cache_hit_rate: float = Field(
        0.0, description="Percentage of requests served without a backend call"
    )
    total_requests: int = 0
    estimated_time_saved_ms: float = 0.0
    last_updated: datetime


StatsByStore = Dict[str, CacheStats]
