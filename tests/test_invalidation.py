"""Tests for operation-based cache invalidation."""

from __future__ import annotations

import pytest

from kusina_cache.cache import (
    CACHE_INVALIDATION_PATTERNS,
    REFRESH_GROUPS,
    CacheOperation,
    CacheStore,
    InvalidationRouter,
)


@pytest.fixture
def stores(clock):
    static = CacheStore("static", timer=clock)
    dynamic = CacheStore("dynamic", timer=clock)
    static.set('getAllMeals:[{"category":"Best for Lunch"}]', ["adobo"])
    static.set("getAllMeals:[]", ["adobo", "tinola"])
    static.set("getArchivedMeals:[]", [])
    static.set("getMealById:[1]", "adobo")
    static.set("getAllIngredients:[]", ["bigas"])
    dynamic.set("getDashboardStats:[]", {"total_meals": 2})
    dynamic.set("getRecentActivities:[]", [])
    return static, dynamic


def test_meal_created_purges_listing_and_dashboard(stores):
    static, dynamic = stores
    router = InvalidationRouter([static, dynamic])

    removed = router.invalidate_cache("mealCreated")

    assert removed == 3
    assert static.get("getAllMeals:[]") is None
    assert static.get('getAllMeals:[{"category":"Best for Lunch"}]') is None
    assert dynamic.get("getDashboardStats:[]") is None
    # Unrelated reads survive
    assert static.get("getArchivedMeals:[]") == []
    assert static.get("getMealById:[1]") == "adobo"
    assert static.get("getAllIngredients:[]") == ["bigas"]
    assert dynamic.get("getRecentActivities:[]") == []


def test_enum_and_string_operations_are_equivalent(stores):
    static, dynamic = stores
    router = InvalidationRouter([static, dynamic])
    assert router.invalidate_cache(CacheOperation.MEAL_UPDATED) == 5
    assert router.patterns_for(CacheOperation.MEAL_UPDATED) == router.patterns_for(
        "mealUpdated"
    )


def test_unknown_operation_is_noop(stores):
    static, dynamic = stores
    router = InvalidationRouter([static, dynamic])
    before = len(static) + len(dynamic)

    assert router.invalidate_cache("mealTeleported") == 0
    assert len(static) + len(dynamic) == before
    assert router.is_known("mealTeleported") is False
    assert router.patterns_for("mealTeleported") == ()


def test_every_operation_enum_member_is_mapped():
    assert {op.value for op in CacheOperation} == set(CACHE_INVALIDATION_PATTERNS)


def test_meal_created_patterns():
    assert CACHE_INVALIDATION_PATTERNS["mealCreated"] == (
        "getAllMeals",
        "getDashboardStats",
    )


def test_map_is_read_only():
    with pytest.raises(TypeError):
        CACHE_INVALIDATION_PATTERNS["mealCreated"] = ()  # type: ignore[index]


def test_custom_map_is_copied(clock):
    store = CacheStore("t", timer=clock)
    patterns = {"thingChanged": ["getThing"]}
    router = InvalidationRouter([store], patterns)
    patterns["thingChanged"].append("getOther")
    assert router.patterns_for("thingChanged") == ("getThing",)


def test_force_refresh_spans_stores(stores):
    static, dynamic = stores
    router = InvalidationRouter([static, dynamic])
    assert router.force_refresh(["getAllMeals", "getDashboardStats"]) == 3
    assert router.force_refresh([]) == 0


def test_refresh_group(stores):
    static, dynamic = stores
    router = InvalidationRouter([static, dynamic])
    assert router.refresh_group("dashboard") == 2
    assert len(dynamic) == 0
    with pytest.raises(KeyError):
        router.refresh_group("nope")
    assert set(REFRESH_GROUPS) == {"meals", "ingredients", "dashboard", "users"}


def test_unmatched_patterns_flags_misspellings(clock):
    router = InvalidationRouter(
        [CacheStore("t", timer=clock)],
        {"a": ["getAllMeals", "getAllMaels"], "b": ["getDashboard"]},
    )
    names = ["getAllMeals", "getDashboardStats"]
    assert router.unmatched_patterns(names) == ["getAllMaels"]


def test_meal_created_keeps_activity_feed(clock):
    store = CacheStore("dynamic", timer=clock)
    store.set("getAllMeals:[]", [])
    store.set("getRecentActivities:[]", [])
    InvalidationRouter([store]).invalidate_cache("mealCreated")
    assert [e.key for e in store.get_stats().entries] == ["getRecentActivities:[]"]
