"""Tests for cache effectiveness counters."""

from __future__ import annotations

import json

import pytest

from kusina_cache.cache import CacheMetrics


def test_empty_snapshot_has_zero_rates():
    snap = CacheMetrics(clock=lambda: 0.0).snapshot()
    assert snap.total_requests == 0
    assert snap.cache_hit_rate == 0.0
    assert snap.average_response_time_ms == 0.0


def test_hit_rate_counts_hits_and_coalesced_as_saved():
    m = CacheMetrics(clock=lambda: 0.0)
    for _ in range(6):
        m.record_hit()
    m.record_coalesced()
    m.record_coalesced()
    m.record_miss(100.0)
    m.record_miss(300.0)

    snap = m.snapshot()
    assert snap.api_calls_saved == 8
    assert snap.total_api_calls == 2
    assert snap.total_requests == 10
    assert snap.cache_hit_rate == pytest.approx(80.0)
    assert snap.average_response_time_ms == pytest.approx(200.0)
    assert snap.estimated_time_saved_ms == pytest.approx(1600.0)


def test_failures_count_as_misses():
    m = CacheMetrics(clock=lambda: 0.0)
    m.record_failure()
    snap = m.snapshot()
    assert snap.cache_misses == 1
    assert snap.failed_requests == 1
    assert snap.average_response_time_ms == 0.0


def test_response_time_history_is_bounded():
    m = CacheMetrics(history_size=2, clock=lambda: 0.0)
    m.record_miss(1000.0)
    m.record_miss(10.0)
    m.record_miss(30.0)
    assert m.snapshot().average_response_time_ms == pytest.approx(20.0)
    assert m.snapshot().cache_misses == 3


def test_reset_and_export():
    now = [1_700_000_000.0]
    m = CacheMetrics(clock=lambda: now[0])
    m.record_hit()
    now[0] += 5
    m.reset()
    assert m.snapshot().cache_hits == 0

    payload = json.loads(m.export_json())
    assert payload["cache_hits"] == 0
    assert "exported_at" in payload
    assert payload["last_updated"].startswith("2023-11-14T22:13:25")


def test_rejects_empty_history():
    with pytest.raises(ValueError):
        CacheMetrics(history_size=0)
