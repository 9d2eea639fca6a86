"""Request/response models for the admin HTTP surface."""

from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, Field, model_validator

from ..cache.models import CacheStats


class HealthResponse(BaseModel):
    status: str


class ErrorResponse(BaseModel):
    """Structured error payload returned by every failing endpoint."""

    detail: str
    error_type: str
    available_options: Optional[List[str]] = None


class CacheStatsResponse(BaseModel):
    stores: Dict[str, CacheStats]


class RefreshRequest(BaseModel):
    """Invalidate explicit patterns or a named refresh group.

    Exactly one of ``patterns`` or ``group`` must be provided.
    """

    patterns: List[str] = Field(default_factory=list)
    group: Optional[str] = None

    @model_validator(mode="after")
    def _one_selector(self) -> "RefreshRequest":
        if bool(self.patterns) == bool(self.group):
            raise ValueError("provide either 'patterns' or 'group'")
        return self


class InvalidationResponse(BaseModel):
    removed: int = Field(ge=0)
    patterns: List[str] = Field(default_factory=list)


class PurgeResponse(BaseModel):
    removed: Dict[str, int]
