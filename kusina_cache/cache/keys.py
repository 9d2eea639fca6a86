"""Deterministic cache-key derivation.

A cache key is ``<function name>:<serialized positional args>``, with
``:<serialized keyword args>`` appended only when keyword arguments are
present. Serialization is compact JSON over a closed set of argument shapes:

- ``None``, ``bool``, ``int``, ``float`` and ``str`` as themselves
- ``Enum`` members as their value
- ``datetime`` / ``date`` as ISO 8601 strings
- lists and tuples in order
- sets and frozensets sorted by the serialized form of each member
- mappings with ``str`` keys, keys sorted, ``None``-valued fields omitted
- pydantic models, dumped in JSON mode and then treated as mappings

``None`` is kept as ``null`` when it is a positional argument or a list
element; only record fields that are ``None`` are dropped, so
``{"category": "Go", "search": None}`` and ``{"category": "Go"}`` share a key.
Anything else raises :class:`CacheKeyError`.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Optional, Sequence

from pydantic import BaseModel

KEY_SEPARATOR = ":"


class CacheKeyError(TypeError):
    """Raised when an argument cannot be turned into a cache key."""


def _normalize(value: Any) -> Any:
    # Enum before str: str-mixin enums serialize by value
    if isinstance(value, Enum):
        return _normalize(value.value)
    # bool before int: bool is an int subclass but must stay true/false
    if value is None or isinstance(value, (bool, str)):
        return value
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, BaseModel):
        return _normalize(value.model_dump(mode="json"))
    if isinstance(value, Mapping):
        record: Dict[str, Any] = {}
        for field, item in value.items():
            if not isinstance(field, str):
                raise CacheKeyError(
                    "cache key records need str field names, "
                    f"got {type(field).__name__}"
                )
            if item is None:
                continue
            record[field] = _normalize(item)
        return record
    if isinstance(value, (list, tuple)):
        return [_normalize(item) for item in value]
    if isinstance(value, (set, frozenset)):
        members = [_normalize(item) for item in value]
        return sorted(members, key=_dumps)
    raise CacheKeyError(
        f"unsupported argument type for cache key: {type(value).__name__}"
    )


def _dumps(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def stable_serialize(value: Any) -> str:
    """Serialize ``value`` to a string that only depends on its content.

    Raises
    ------
    CacheKeyError
        If ``value`` contains a type outside the supported shapes.
    """
    return _dumps(_normalize(value))


def make_cache_key(
    function_name: str,
    args: Sequence[Any] = (),
    kwargs: Optional[Mapping[str, Any]] = None,
) -> str:
    """Build the cache key for a call of ``function_name``.

    >>> make_cache_key("getAllMeals", ({"category": "Go"},))
    'getAllMeals:[{"category":"Go"}]'
    """
    key = f"{function_name}{KEY_SEPARATOR}{stable_serialize(list(args))}"
    if kwargs:
        key += KEY_SEPARATOR + stable_serialize(dict(kwargs))
    return key


def function_name_of(key: str) -> str:
    """Return the function-name portion of a cache key."""
    return key.split(KEY_SEPARATOR, 1)[0]
