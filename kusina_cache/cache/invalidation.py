"""Operation-based cache invalidation.

Write paths announce *what happened* (``mealCreated``, ``ingredientArchived``)
and the router purges the read functions that change could affect, in every
store. Unknown operation names are ignored; any resulting stale read lasts at
most one entry TTL.
"""

from __future__ import annotations

import logging
from enum import Enum
from types import MappingProxyType
from typing import Collection, Iterable, List, Mapping, Sequence, Tuple, Union

from .store import CacheStore

logger = logging.getLogger(__name__)


class CacheOperation(str, Enum):
    """Write operations known to the invalidation map."""

    MEAL_CREATED = "mealCreated"
    MEAL_UPDATED = "mealUpdated"
    MEAL_ARCHIVED = "mealArchived"
    MEAL_RESTORED = "mealRestored"
    MEAL_DELETED = "mealDeleted"
    INGREDIENT_CREATED = "ingredientCreated"
    INGREDIENT_UPDATED = "ingredientUpdated"
    INGREDIENT_ARCHIVED = "ingredientArchived"
    INGREDIENT_RESTORED = "ingredientRestored"
    USER_CREATED = "userCreated"
    USER_UPDATED = "userUpdated"
    USER_ROLE_CHANGED = "userRoleChanged"
    DIETARY_TAG_CREATED = "dietaryTagCreated"
    DIETARY_TAG_UPDATED = "dietaryTagUpdated"
    DIETARY_TAG_DISABLED = "dietaryTagDisabled"
    ACTIVITY_LOGGED = "activityLogged"


_MEAL_READS = ("getAllMeals", "getArchivedMeals", "getDashboardStats")
_MEAL_DETAIL_READS = (
    "getAllMeals",
    "getArchivedMeals",
    "getMealById",
    "getDashboardStats",
)
_INGREDIENT_READS = (
    "getAllIngredients",
    "getAllIngredientsForAdmin",
    "getArchivedIngredients",
    "getDashboardStats",
)
_USER_READS = (
    "fetchUsers",
    "fetchUsersFromProfiles",
    "getCurrentUserRole",
    "isCurrentUserAdmin",
)

CACHE_INVALIDATION_PATTERNS: Mapping[str, Tuple[str, ...]] = MappingProxyType(
    {
        # A new meal is never archived, so the archive list stays valid.
        CacheOperation.MEAL_CREATED.value: ("getAllMeals", "getDashboardStats"),
        CacheOperation.MEAL_UPDATED.value: _MEAL_DETAIL_READS,
        CacheOperation.MEAL_ARCHIVED.value: _MEAL_READS,
        CacheOperation.MEAL_RESTORED.value: _MEAL_READS,
        CacheOperation.MEAL_DELETED.value: _MEAL_DETAIL_READS,
        CacheOperation.INGREDIENT_CREATED.value: _INGREDIENT_READS,
        CacheOperation.INGREDIENT_UPDATED.value: _INGREDIENT_READS,
        CacheOperation.INGREDIENT_ARCHIVED.value: _INGREDIENT_READS,
        CacheOperation.INGREDIENT_RESTORED.value: _INGREDIENT_READS,
        CacheOperation.USER_CREATED.value: (
            "fetchUsers",
            "fetchUsersFromProfiles",
            "getDashboardStats",
        ),
        CacheOperation.USER_UPDATED.value: _USER_READS,
        CacheOperation.USER_ROLE_CHANGED.value: _USER_READS,
        CacheOperation.DIETARY_TAG_CREATED.value: ("getAllDietaryTags",),
        CacheOperation.DIETARY_TAG_UPDATED.value: ("getAllDietaryTags",),
        CacheOperation.DIETARY_TAG_DISABLED.value: ("getAllDietaryTags",),
        CacheOperation.ACTIVITY_LOGGED.value: (
            "getActivityLogs",
            "getRecentActivities",
            "getDashboardStats",
        ),
    }
)

# Manual refresh groups offered on the admin surface.
REFRESH_GROUPS: Mapping[str, Tuple[str, ...]] = MappingProxyType(
    {
        "meals": ("getAllMeals", "getArchivedMeals", "getMealById"),
        "ingredients": (
            "getAllIngredients",
            "getAllIngredientsForAdmin",
            "getArchivedIngredients",
        ),
        "dashboard": ("getDashboardStats", "getRecentActivities"),
        "users": ("fetchUsers", "getCurrentUserRole", "isCurrentUserAdmin"),
    }
)

OperationName = Union[CacheOperation, str]


def _operation_key(operation: OperationName) -> str:
    return operation.value if isinstance(operation, CacheOperation) else operation


class InvalidationRouter:
    """Route operation names to pattern invalidation across stores.

    Parameters
    ----------
    stores: Iterable[CacheStore]
        Every store that might hold affected entries.
    patterns: Mapping[str, Sequence[str]]
        Operation name to key patterns. Copied into a read-only mapping.
    """

    def __init__(
        self,
        stores: Iterable[CacheStore],
        patterns: Mapping[str, Sequence[str]] = CACHE_INVALIDATION_PATTERNS,
    ) -> None:
        self._stores: List[CacheStore] = list(stores)
        self._patterns: Mapping[str, Tuple[str, ...]] = MappingProxyType(
            {op: tuple(pats) for op, pats in patterns.items()}
        )

    @property
    def operations(self) -> Tuple[str, ...]:
        return tuple(self._patterns)

    def is_known(self, operation: OperationName) -> bool:
        return _operation_key(operation) in self._patterns

    def patterns_for(self, operation: OperationName) -> Tuple[str, ...]:
        """Return the patterns for ``operation``; empty when unknown."""
        return self._patterns.get(_operation_key(operation), ())

    def force_refresh(self, patterns: Iterable[str]) -> int:
        """Invalidate ``patterns`` in every store; return entries removed."""
        pattern_list = list(patterns)
        return sum(store.invalidate(pattern_list) for store in self._stores)

    def invalidate_cache(self, operation: OperationName) -> int:
        """Purge everything ``operation`` may have made stale.

        Unknown operations are a no-op and return 0.
        """
        name = _operation_key(operation)
        patterns = self._patterns.get(name)
        if patterns is None:
            logger.debug("cache.invalidate.unknown_operation", extra={"op": name})
            return 0
        removed = self.force_refresh(patterns)
        logger.info(
            "cache.invalidate",
            extra={"op": name, "patterns": list(patterns), "removed": removed},
        )
        return removed

    def refresh_group(self, group: str) -> int:
        """Invalidate one of :data:`REFRESH_GROUPS`.

        Raises
        ------
        KeyError
            If ``group`` is not a known refresh group.
        """
        return self.force_refresh(REFRESH_GROUPS[group])

    def unmatched_patterns(self, function_names: Collection[str]) -> List[str]:
        """Return map patterns that no name in ``function_names`` starts with.

        Used at startup to flag patterns that can never purge anything, e.g.
        a misspelled read-function name.
        """
        unmatched = {
            pattern
            for pats in self._patterns.values()
            for pattern in pats
            if not any(name.startswith(pattern) for name in function_names)
        }
        return sorted(unmatched)
