"""Tests for file and environment configuration."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from kusina_cache.config.models import AppConfig, CacheStoreConfig, EnvSettings


def test_defaults_have_no_backend():
    cfg = AppConfig()
    assert cfg.backend is None
    assert cfg.cache.static.max_size == 50
    assert cfg.cache.metrics_history_size == 100


def test_load_json_config(tmp_path: Path):
    path = tmp_path / "config.json"
    path.write_text(
        json.dumps(
            {
                "cache": {"dynamic": {"max_size": 10, "default_ttl_ms": 5000}},
                "backend": {"url": "https://proj.supabase.co", "api_key": "k"},
            }
        )
    )
    cfg = AppConfig.load(path)
    assert cfg.cache.dynamic.max_size == 10
    assert cfg.cache.static.max_size == 50
    assert cfg.backend is not None
    assert cfg.backend.max_retries == 1


def test_invalid_store_bounds_rejected():
    with pytest.raises(ValidationError):
        CacheStoreConfig(max_size=0)
    with pytest.raises(ValidationError):
        CacheStoreConfig(default_ttl_ms=0)


def test_env_backend_overrides_file(tmp_path: Path):
    path = tmp_path / "config.json"
    path.write_text(
        json.dumps(
            {
                "backend": {
                    "url": "https://file.supabase.co",
                    "api_key": "file-key",
                    "timeout_seconds": 7,
                }
            }
        )
    )
    env = {
        "KUSINA_CONFIG_PATH": str(path),
        "KUSINA_BACKEND_URL": "https://env.supabase.co",
        "KUSINA_BACKEND_API_KEY": "env-key",
    }
    with patch.dict("os.environ", env):
        cfg = EnvSettings().load_app_config()
    assert cfg.backend.url == "https://env.supabase.co"
    assert cfg.backend.api_key == "env-key"
    assert cfg.backend.timeout_seconds == 7


def test_cors_origin_list():
    settings = EnvSettings(cors_origins=" http://a.test ,,http://b.test")
    assert settings.cors_origin_list() == ["http://a.test", "http://b.test"]
