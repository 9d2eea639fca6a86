"""Tests for the memoizing, request-coalescing wrapper."""

from __future__ import annotations

import asyncio

import pytest

from kusina_cache.cache import CacheMetrics, CacheStore, InFlightRegistry, memoize
from kusina_cache.domain.models import QueryResult


class _Backend:
    """Counts calls and lets a test hold the response until released."""

    def __init__(self, result=None, error: Exception | None = None) -> None:
        self.calls = 0
        self.result = result
        self.error = error
        self.release = asyncio.Event()
        self.release.set()

    async def fetch(self, *args, **kwargs):
        self.calls += 1
        await self.release.wait()
        if self.error is not None:
            raise self.error
        if self.result is not None:
            return self.result
        return {"args": list(args), "kwargs": kwargs}


@pytest.mark.asyncio
async def test_second_call_is_served_from_cache(clock):
    store = CacheStore("t", timer=clock)
    backend = _Backend()
    cached = memoize(store, "getAllMeals", backend.fetch)

    first = await cached({"category": "Go"})
    second = await cached({"category": "Go"})

    assert first == second
    assert backend.calls == 1
    assert 'getAllMeals:[{"category":"Go"}]' in store


@pytest.mark.asyncio
async def test_different_arguments_use_different_entries(clock):
    store = CacheStore("t", timer=clock)
    backend = _Backend()
    cached = memoize(store, "getMealById", backend.fetch)

    await cached(1)
    await cached(2)
    await cached(limit=5)

    assert backend.calls == 3
    assert len(store) == 3


@pytest.mark.asyncio
async def test_concurrent_identical_calls_share_one_fetch(clock):
    store = CacheStore("t", timer=clock)
    metrics = CacheMetrics()
    backend = _Backend(result=["adobo"])
    backend.release.clear()
    cached = memoize(store, "getAllMeals", backend.fetch, metrics=metrics)

    callers = [asyncio.ensure_future(cached()) for _ in range(10)]
    await asyncio.sleep(0)
    backend.release.set()
    results = await asyncio.gather(*callers)

    assert backend.calls == 1
    assert results == [["adobo"]] * 10
    assert metrics.cache_misses == 1
    assert metrics.coalesced_requests == 9


@pytest.mark.asyncio
async def test_failure_propagates_to_all_waiters_and_is_not_cached(clock):
    store = CacheStore("t", timer=clock)
    metrics = CacheMetrics()
    registry = InFlightRegistry()
    backend = _Backend(error=RuntimeError("backend down"))
    backend.release.clear()
    cached = memoize(
        store, "getAllMeals", backend.fetch, metrics=metrics, in_flight=registry
    )

    callers = [asyncio.ensure_future(cached()) for _ in range(3)]
    await asyncio.sleep(0)
    assert "getAllMeals:[]" in registry
    backend.release.set()
    results = await asyncio.gather(*callers, return_exceptions=True)

    assert backend.calls == 1
    assert all(isinstance(r, RuntimeError) for r in results)
    assert len(store) == 0
    assert len(registry) == 0
    assert metrics.failed_requests == 1

    # Next call retries the backend
    backend.error = None
    backend.result = ["sinigang"]
    assert await cached() == ["sinigang"]
    assert backend.calls == 2


@pytest.mark.asyncio
async def test_application_failure_results_are_cached(clock):
    store = CacheStore("t", timer=clock)
    backend = _Backend(result=QueryResult.failure("no rows"))
    cached = memoize(store, "getAllMeals", backend.fetch)

    first = await cached()
    second = await cached()

    assert first.success is False
    assert second is first
    assert backend.calls == 1


@pytest.mark.asyncio
async def test_entry_refetched_after_ttl(clock):
    store = CacheStore("t", default_ttl_ms=1000, timer=clock)
    backend = _Backend()
    cached = memoize(store, "getDashboardStats", backend.fetch, ttl_ms=100)

    await cached()
    clock.advance_ms(50)
    await cached()
    assert backend.calls == 1

    clock.advance_ms(100)
    await cached()
    assert backend.calls == 2


@pytest.mark.asyncio
async def test_invalidated_entry_is_refetched(clock):
    store = CacheStore("t", timer=clock)
    backend = _Backend()
    cached = memoize(store, "getAllMeals", backend.fetch)

    await cached()
    store.invalidate(["getAllMeals"])
    await cached()

    assert backend.calls == 2


@pytest.mark.asyncio
async def test_cancelled_waiter_does_not_cancel_shared_fetch(clock):
    store = CacheStore("t", timer=clock)
    backend = _Backend(result="ok")
    backend.release.clear()
    cached = memoize(store, "getAllMeals", backend.fetch)

    leader = asyncio.ensure_future(cached())
    follower = asyncio.ensure_future(cached())
    await asyncio.sleep(0)
    leader.cancel()
    await asyncio.sleep(0)
    backend.release.set()

    assert await follower == "ok"
    with pytest.raises(asyncio.CancelledError):
        await leader
    assert backend.calls == 1
    assert store.get("getAllMeals:[]") == "ok"


@pytest.mark.asyncio
async def test_shared_registry_coalesces_across_wrappers(clock):
    store = CacheStore("t", timer=clock)
    registry = InFlightRegistry()
    backend = _Backend(result=1)
    backend.release.clear()
    a = memoize(store, "getAllMeals", backend.fetch, in_flight=registry)
    b = memoize(store, "getAllMeals", backend.fetch, in_flight=registry)

    calls = [asyncio.ensure_future(a()), asyncio.ensure_future(b())]
    await asyncio.sleep(0)
    backend.release.set()
    assert await asyncio.gather(*calls) == [1, 1]
    assert backend.calls == 1


def test_wrapper_exposes_metadata(clock):
    store = CacheStore("t", timer=clock)

    async def get_all_meals():
        """Fetch meals."""
        return []

    cached = memoize(store, "getAllMeals", get_all_meals)
    assert cached.__name__ == "get_all_meals"
    assert cached.__doc__ == "Fetch meals."
    assert cached.cache_store is store
    assert cached.cache_function_name == "getAllMeals"


@pytest.mark.parametrize("name", ["", "get:meals"])
def test_rejects_invalid_function_names(clock, name):
    async def fetch():
        return None

    with pytest.raises(ValueError):
        memoize(CacheStore("t", timer=clock), name, fetch)
