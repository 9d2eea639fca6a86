"""Config models and loader.

This module defines Pydantic models for file- and environment-based
configuration: the cache stores (one per volatility class), the backend
connection, and process-level settings read from ``KUSINA_*`` variables.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class CacheStoreConfig(BaseModel):
    """Size bound and default TTL for one cache store.

    Attributes
    ----------
    max_size: int
        Maximum number of entries before LRU eviction.
    default_ttl_ms: int
        TTL in milliseconds used when a caller does not pass one.
    """

    max_size: int = Field(100, ge=1)
    default_ttl_ms: int = Field(5 * 60 * 1000, gt=0)


class CacheConfig(BaseModel):
    """Configuration for the three volatility classes.

    Attributes
    ----------
    static: CacheStoreConfig
        Reference data that rarely changes (meals, ingredients, tags).
    dynamic: CacheStoreConfig
        Aggregates and activity feeds.
    user: CacheStoreConfig
        Per-session and user-directory data.
    metrics_history_size: int
        Number of backend response times kept for averages.
    """

    static: CacheStoreConfig = Field(
        default_factory=lambda: CacheStoreConfig(
            max_size=50, default_ttl_ms=30 * 60 * 1000
        )
    )
    dynamic: CacheStoreConfig = Field(
        default_factory=lambda: CacheStoreConfig(
            max_size=100, default_ttl_ms=2 * 60 * 1000
        )
    )
    user: CacheStoreConfig = Field(
        default_factory=lambda: CacheStoreConfig(
            max_size=30, default_ttl_ms=10 * 60 * 1000
        )
    )
    metrics_history_size: int = Field(100, ge=1)


class BackendConfig(BaseModel):
    """Connection settings for the hosted PostgREST backend.

    Attributes
    ----------
    url: str
        Project base URL (e.g. "https://xyz.supabase.co").
    api_key: str
        Project API key, sent as ``apikey`` and bearer token.
    timeout_seconds: int
        HTTP request timeout in seconds.
    """

    url: str = Field(..., description="Backend project base URL")
    api_key: str = Field(..., description="Backend API key")
    timeout_seconds: int = Field(30, ge=1)
    max_retries: int = Field(1, ge=0, description="Number of retry attempts")
    backoff_initial_ms: int = Field(
        200, ge=0, description="Initial backoff in milliseconds"
    )
    backoff_multiplier: float = Field(
        2.0, ge=1.0, description="Backoff multiplier per attempt"
    )


class AppConfig(BaseModel):
    """Top-level application configuration.

    Attributes
    ----------
    cache: CacheConfig
        Store sizes and TTLs.
    backend: Optional[BackendConfig]
        Backend connection; the admin surface runs without one.
    """

    cache: CacheConfig = Field(default_factory=CacheConfig)
    backend: Optional[BackendConfig] = None

    @staticmethod
    def load(path: Path) -> "AppConfig":
        """Load application config from a JSON file."""
        return AppConfig.model_validate_json(path.read_bytes())


class EnvSettings(BaseSettings):
    """Environment-driven settings and .env support.

    Attributes
    ----------
    log_level: str
        Logging level name (e.g., "DEBUG", "INFO"). Defaults to "INFO".
    config_path: Optional[str]
        Path to a JSON :class:`AppConfig` file.
    backend_url: Optional[str]
        Backend URL; overrides the config file when set together with
        ``backend_api_key``.
    backend_api_key: Optional[str]
        Backend API key.
    http_token: Optional[str]
        Bearer token required on ``/cache/*`` admin endpoints when set.
    cors_origins: str
        Comma-separated origins allowed to call the admin API.
    """

    model_config = SettingsConfigDict(env_file=".env", env_prefix="KUSINA_")

    log_level: str = Field("INFO")
    config_path: Optional[str] = None
    backend_url: Optional[str] = None
    backend_api_key: Optional[str] = None
    http_token: Optional[str] = None
    cors_origins: str = ""

    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    def load_app_config(self) -> AppConfig:
        """Build the effective :class:`AppConfig`.

        Reads ``config_path`` when set, then lets ``backend_url`` and
        ``backend_api_key`` replace the backend section.
        """
        cfg = AppConfig()
        if self.config_path:
            cfg = AppConfig.load(Path(self.config_path))
        if self.backend_url and self.backend_api_key:
            base = cfg.backend.model_dump() if cfg.backend else {}
            base.update(url=self.backend_url, api_key=self.backend_api_key)
            cfg = cfg.model_copy(update={"backend": BackendConfig.model_validate(base)})
        return cfg
