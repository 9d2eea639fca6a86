"""Tests for deterministic cache-key derivation."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from kusina_cache.cache import (
    CacheKeyError,
    function_name_of,
    make_cache_key,
    stable_serialize,
)
from kusina_cache.domain.models import IngredientCategory, MealFilters


def test_record_field_order_does_not_matter():
    assert make_cache_key("fn", ({"a": 1, "b": 2},)) == make_cache_key(
        "fn", ({"b": 2, "a": 1},)
    )


def test_nested_records_are_order_independent():
    left = {"outer": {"x": [1, 2], "y": "s"}, "z": True}
    right = {"z": True, "outer": {"y": "s", "x": [1, 2]}}
    assert stable_serialize(left) == stable_serialize(right)


def test_list_order_matters():
    assert make_cache_key("fn", ([1, 2],)) != make_cache_key("fn", ([2, 1],))


def test_key_format():
    assert make_cache_key("getAllMeals", ({"category": "Go"},)) == (
        'getAllMeals:[{"category":"Go"}]'
    )
    assert make_cache_key("getAllMeals") == "getAllMeals:[]"
    assert make_cache_key("getMealById", (42,)) == "getMealById:[42]"


def test_none_record_fields_are_dropped():
    assert make_cache_key("fn", ({"category": "Go", "search": None},)) == (
        make_cache_key("fn", ({"category": "Go"},))
    )


def test_none_positional_and_list_items_are_kept():
    assert make_cache_key("fn", (None,)) == "fn:[null]"
    assert make_cache_key("fn", (None,)) != make_cache_key("fn")
    assert stable_serialize([1, None]) == "[1,null]"


def test_bool_is_not_confused_with_int():
    assert make_cache_key("fn", (True,)) != make_cache_key("fn", (1,))


def test_kwargs_are_appended_sorted():
    key = make_cache_key("getRecentActivities", (), {"limit": 5})
    assert key == 'getRecentActivities:[]:{"limit":5}'
    assert make_cache_key("fn", (), {"b": 1, "a": 2}) == make_cache_key(
        "fn", (), {"a": 2, "b": 1}
    )
    assert make_cache_key("fn", (5,)) != make_cache_key("fn", (), {"limit": 5})


def test_enums_datetimes_and_sets():
    when = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
    assert stable_serialize(IngredientCategory.GO) == '"Go"'
    assert stable_serialize(when) == '"2024-05-01T12:00:00+00:00"'
    assert stable_serialize({3, 1, 2}) == stable_serialize({2, 3, 1}) == "[1,2,3]"


def test_pydantic_models_match_equivalent_dicts():
    model_key = make_cache_key("getAllMeals", (MealFilters(search="adobo"),))
    dict_key = make_cache_key("getAllMeals", ({"search": "adobo"},))
    assert model_key == dict_key


def test_unicode_is_kept_verbatim():
    assert stable_serialize("sinigang na baboy ñ") == '"sinigang na baboy ñ"'


def test_unsupported_types_raise():
    with pytest.raises(CacheKeyError):
        make_cache_key("fn", (object(),))
    with pytest.raises(CacheKeyError):
        stable_serialize({1: "non-str field"})
    # CacheKeyError is a TypeError
    with pytest.raises(TypeError):
        stable_serialize(lambda: None)


def test_function_name_of():
    assert function_name_of('getAllMeals:[{"a":"x:y"}]') == "getAllMeals"
    assert function_name_of("bare") == "bare"
