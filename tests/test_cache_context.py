"""Tests for the application-lifetime cache context."""

from __future__ import annotations

import pytest

from kusina_cache.cache import CacheContext, Volatility
from kusina_cache.config.models import CacheConfig, CacheStoreConfig


def test_default_store_configuration():
    ctx = CacheContext()
    assert (ctx.static.max_size, ctx.static.default_ttl_ms) == (50, 30 * 60 * 1000)
    assert (ctx.dynamic.max_size, ctx.dynamic.default_ttl_ms) == (100, 2 * 60 * 1000)
    assert (ctx.user.max_size, ctx.user.default_ttl_ms) == (30, 10 * 60 * 1000)
    assert set(ctx.stores) == {"static", "dynamic", "user"}
    assert ctx.store("dynamic") is ctx.dynamic


def test_configured_sizes_are_applied(clock):
    cfg = CacheConfig(static=CacheStoreConfig(max_size=2, default_ttl_ms=10))
    ctx = CacheContext(cfg, timer=clock)
    assert ctx.static.max_size == 2
    assert ctx.static.default_ttl_ms == 10


@pytest.mark.asyncio
async def test_memoize_and_invalidate_across_stores(clock):
    ctx = CacheContext(timer=clock)
    calls = {"meals": 0, "stats": 0}

    async def meals():
        calls["meals"] += 1
        return ["adobo"]

    async def stats():
        calls["stats"] += 1
        return {"total_meals": 1}

    get_meals = ctx.memoize(Volatility.STATIC, "getAllMeals", meals)
    get_stats = ctx.memoize("dynamic", "getDashboardStats", stats)
    await get_meals()
    await get_stats()
    await get_meals()
    assert calls == {"meals": 1, "stats": 1}
    assert ctx.get_metrics().cache_hits == 1

    assert ctx.invalidate_cache("mealCreated") == 2
    await get_meals()
    await get_stats()
    assert calls == {"meals": 2, "stats": 2}


@pytest.mark.asyncio
async def test_stats_purge_and_clear(clock):
    ctx = CacheContext(timer=clock)

    async def activities():
        return []

    get_recent = ctx.memoize(Volatility.DYNAMIC, "getRecentActivities", activities)
    await get_recent()
    stats = ctx.get_stats()
    assert stats["dynamic"].size == 1
    assert stats["static"].size == 0

    clock.advance_ms(2 * 60 * 1000 + 1)
    assert ctx.purge_expired() == {"static": 0, "dynamic": 1, "user": 0}

    await get_recent()
    ctx.clear_all()
    assert all(s.size == 0 for s in ctx.get_stats().values())


def test_unmatched_patterns_reflect_memoized_names(clock):
    ctx = CacheContext(timer=clock)

    async def fetch():
        return None

    ctx.memoize(Volatility.STATIC, "getAllMeals", fetch)
    unmatched = ctx.unmatched_patterns()
    assert "getAllMeals" not in unmatched
    assert "getDashboardStats" in unmatched
    assert ctx.function_names == ["getAllMeals"]


def test_same_function_name_cannot_be_memoized_twice(clock):
    ctx = CacheContext(timer=clock)

    async def meals():
        return ["adobo"]

    async def archived():
        return []

    ctx.memoize(Volatility.STATIC, "getAllMeals", meals)
    with pytest.raises(ValueError, match="getAllMeals"):
        ctx.memoize(Volatility.DYNAMIC, "getAllMeals", archived)
    assert ctx.function_names == ["getAllMeals"]
