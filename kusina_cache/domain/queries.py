"""Cached data-access functions for the meal-curation dashboard.

Reads are memoized through a :class:`~kusina_cache.cache.CacheContext` under
the key namespaces the invalidation map refers to (``getAllMeals``,
``getDashboardStats``, ...). Reads raise on backend failure, so a failed
fetch is never cached.

Writes return a :class:`QueryResult` instead of raising. After a successful
write they record an activity-log row where the entity is audited, purge the
affected cache entries via the operation name, and publish a refresh event.
"""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Type

import httpx
from pydantic import BaseModel, ValidationError

from ..backend import RestBackend, Row
from ..cache import CacheContext, CacheOperation, Volatility
from ..utils.events import RefreshEvent, RefreshNotifier
from .models import (
    ActivityLogEntry,
    ActivityLogFilters,
    AuditAction,
    CreateMealData,
    DashboardStats,
    DietaryTag,
    Ingredient,
    IngredientData,
    IngredientFilters,
    Meal,
    MealFilters,
    QueryResult,
    UserProfile,
    UserRole,
)

logger = logging.getLogger(__name__)

_MEAL_SELECT = "*,meal_ingredients(*,ingredients(*)),dietary_tags(*)"

# Failures a write reports as QueryResult(success=False).
_WRITE_ERRORS = (httpx.HTTPError, ValidationError, ValueError, KeyError, IndexError)


def _search_filter(term: Optional[str]) -> Optional[str]:
    if not term or not term.strip():
        return None
    return f"ilike.*{term.strip()}*"


def _filter_args(filters: Optional[BaseModel], default: Type[BaseModel]) -> tuple:
    """Positional arguments for a filtered read.

    Filters equal to the defaults collapse to no argument so both spellings
    share one cache key.
    """
    if filters is None or filters.model_dump() == default().model_dump():
        return ()
    return (filters,)


class MealCurationQueries:  # pylint: disable=too-many-public-methods
    """Read and write functions over the curation tables.

    Parameters
    ----------
    backend: RestBackend
        Table client.
    context: CacheContext
        Owner of the stores the reads are memoized in.
    notifier: Optional[RefreshNotifier]
        Channel for refresh events; events are skipped when omitted.
    """

    def __init__(
        self,
        backend: RestBackend,
        context: CacheContext,
        notifier: Optional[RefreshNotifier] = None,
    ) -> None:
        self._backend = backend
        self._context = context
        self._notifier = notifier

        static, dynamic, user = Volatility.STATIC, Volatility.DYNAMIC, Volatility.USER
        memo = context.memoize
        self._cached_all_meals: Callable[..., Awaitable[List[Meal]]] = memo(
            static, "getAllMeals", self._get_all_meals
        )
        self.get_archived_meals: Callable[[], Awaitable[List[Meal]]] = memo(
            static, "getArchivedMeals", self._get_archived_meals
        )
        self.get_meal_by_id: Callable[[int], Awaitable[Optional[Meal]]] = memo(
            static, "getMealById", self._get_meal_by_id
        )
        self._cached_all_ingredients: Callable[
            ..., Awaitable[List[Ingredient]]
        ] = memo(static, "getAllIngredients", self._get_all_ingredients)
        self.get_all_ingredients_for_admin: Callable[
            [], Awaitable[List[Ingredient]]
        ] = memo(
            static, "getAllIngredientsForAdmin", self._get_all_ingredients_for_admin
        )
        self.get_archived_ingredients: Callable[[], Awaitable[List[Ingredient]]] = memo(
            static, "getArchivedIngredients", self._get_archived_ingredients
        )
        self.get_all_dietary_tags: Callable[[], Awaitable[List[DietaryTag]]] = memo(
            static, "getAllDietaryTags", self._get_all_dietary_tags
        )
        self.get_dashboard_stats: Callable[[], Awaitable[DashboardStats]] = memo(
            dynamic, "getDashboardStats", self._get_dashboard_stats
        )
        self.get_recent_activities: Callable[
            ..., Awaitable[List[ActivityLogEntry]]
        ] = memo(dynamic, "getRecentActivities", self._get_recent_activities)
        self._cached_activity_logs: Callable[
            ..., Awaitable[List[ActivityLogEntry]]
        ] = memo(dynamic, "getActivityLogs", self._get_activity_logs)
        self.fetch_users: Callable[[], Awaitable[List[UserProfile]]] = memo(
            user, "fetchUsers", self._fetch_users
        )
        self.fetch_users_from_profiles: Callable[
            [], Awaitable[List[UserProfile]]
        ] = memo(user, "fetchUsersFromProfiles", self._fetch_users_from_profiles)
        self.get_current_user_role: Callable[[str], Awaitable[Optional[UserRole]]] = (
            memo(user, "getCurrentUserRole", self._get_current_user_role)
        )
        self.is_current_user_admin: Callable[[str], Awaitable[bool]] = memo(
            user, "isCurrentUserAdmin", self._is_current_user_admin
        )

    # ------------------------------------------------------------------ reads

    async def get_all_meals(self, filters: Optional[MealFilters] = None) -> List[Meal]:
        """Active meals, optionally narrowed by category or name search."""
        return await self._cached_all_meals(*_filter_args(filters, MealFilters))

    async def get_all_ingredients(
        self, filters: Optional[IngredientFilters] = None
    ) -> List[Ingredient]:
        return await self._cached_all_ingredients(
            *_filter_args(filters, IngredientFilters)
        )

    async def get_activity_logs(
        self, filters: Optional[ActivityLogFilters] = None
    ) -> List[ActivityLogEntry]:
        return await self._cached_activity_logs(
            *_filter_args(filters, ActivityLogFilters)
        )

    async def _get_all_meals(self, filters: Optional[MealFilters] = None) -> List[Meal]:
        params: Dict[str, str] = {
            "select": _MEAL_SELECT,
            "is_disabled": "eq.false",
            "order": "name.asc",
        }
        if filters is not None:
            if filters.category is not None:
                params["category"] = f"eq.{filters.category.value}"
            search = _search_filter(filters.search)
            if search:
                params["name"] = search
        rows = await self._backend.select("meals", params)
        return [Meal.model_validate(r) for r in rows]

    async def _get_archived_meals(self) -> List[Meal]:
        rows = await self._backend.select(
            "meals",
            {"select": _MEAL_SELECT, "is_disabled": "eq.true", "order": "name.asc"},
        )
        return [Meal.model_validate(r) for r in rows]

    async def _get_meal_by_id(self, meal_id: int) -> Optional[Meal]:
        rows = await self._backend.select(
            "meals", {"select": _MEAL_SELECT, "meal_id": f"eq.{meal_id}"}
        )
        return Meal.model_validate(rows[0]) if rows else None

    async def _get_all_ingredients(
        self, filters: Optional[IngredientFilters] = None
    ) -> List[Ingredient]:
        params: Dict[str, str] = {"is_disabled": "eq.false", "order": "name.asc"}
        if filters is not None:
            if filters.category is not None:
                params["category"] = f"eq.{filters.category.value}"
            search = _search_filter(filters.search)
            if search:
                params["name"] = search
        rows = await self._backend.select("ingredients", params)
        return [Ingredient.model_validate(r) for r in rows]

    async def _get_all_ingredients_for_admin(self) -> List[Ingredient]:
        rows = await self._backend.select("ingredients", {"order": "name.asc"})
        return [Ingredient.model_validate(r) for r in rows]

    async def _get_archived_ingredients(self) -> List[Ingredient]:
        rows = await self._backend.select(
            "ingredients", {"is_disabled": "eq.true", "order": "name.asc"}
        )
        return [Ingredient.model_validate(r) for r in rows]

    async def _get_all_dietary_tags(self) -> List[DietaryTag]:
        rows = await self._backend.select("dietary_tags", {"order": "tag_name.asc"})
        return [DietaryTag.model_validate(r) for r in rows]

    async def _get_dashboard_stats(self) -> DashboardStats:
        meals, ingredients = await asyncio.gather(
            self._backend.select("meals", {"select": "meal_id,category,is_disabled"}),
            self._backend.select(
                "ingredients", {"select": "ingredient_id,category,is_disabled"}
            ),
        )
        active_meals = [m for m in meals if not m.get("is_disabled")]
        active_ingredients = [i for i in ingredients if not i.get("is_disabled")]
        return DashboardStats(
            total_meals=len(meals),
            active_meals=len(active_meals),
            archived_meals=len(meals) - len(active_meals),
            total_ingredients=len(ingredients),
            active_ingredients=len(active_ingredients),
            meals_by_category=dict(Counter(str(m["category"]) for m in active_meals)),
            ingredients_by_category=dict(
                Counter(str(i["category"]) for i in active_ingredients)
            ),
        )

    async def _get_recent_activities(self, limit: int = 10) -> List[ActivityLogEntry]:
        rows = await self._backend.select(
            "activity_log", {"order": "changed_at.desc", "limit": str(limit)}
        )
        return [ActivityLogEntry.model_validate(r) for r in rows]

    async def _get_activity_logs(
        self, filters: Optional[ActivityLogFilters] = None
    ) -> List[ActivityLogEntry]:
        f = filters or ActivityLogFilters()
        params: Dict[str, str] = {"order": "changed_at.desc", "limit": str(f.limit)}
        if f.entity_type:
            params["entity_type"] = f"eq.{f.entity_type}"
        if f.action is not None:
            params["action"] = f"eq.{f.action.value}"
        rows = await self._backend.select("activity_log", params)
        return [ActivityLogEntry.model_validate(r) for r in rows]

    async def _fetch_users(self) -> List[UserProfile]:
        rows = await self._backend.select("profiles", {"order": "created_at.desc"})
        return [UserProfile.model_validate(r) for r in rows]

    async def _fetch_users_from_profiles(self) -> List[UserProfile]:
        rows = await self._backend.select(
            "profiles",
            {"select": "id,email,full_name,role,created_at", "order": "email.asc"},
        )
        return [UserProfile.model_validate(r) for r in rows]

    async def _get_current_user_role(self, user_id: str) -> Optional[UserRole]:
        rows = await self._backend.select(
            "profiles", {"select": "role", "id": f"eq.{user_id}"}
        )
        return UserRole(rows[0]["role"]) if rows else None

    async def _is_current_user_admin(self, user_id: str) -> bool:
        return await self.get_current_user_role(user_id) is UserRole.ADMIN

    # ----------------------------------------------------------------- writes

    @staticmethod
    def _failed(operation: str, exc: Exception) -> QueryResult[Any]:
        logger.error(
            "queries.write_failed",
            extra={
                "operation": operation,
                "error": str(exc),
                "error_type": type(exc).__name__,
            },
        )
        return QueryResult.failure(str(exc) or type(exc).__name__)

    async def _publish(self, event: RefreshEvent, payload: Mapping[str, Any]) -> None:
        if self._notifier is not None:
            await self._notifier.publish(event, payload)

    async def _after_write(
        self,
        operation: CacheOperation,
        event: RefreshEvent,
        payload: Mapping[str, Any],
        activity: Optional[ActivityLogEntry] = None,
    ) -> None:
        if activity is not None:
            await self._record_activity(activity)
        self._context.invalidate_cache(operation)
        await self._publish(event, payload)

    async def _record_activity(self, entry: ActivityLogEntry) -> bool:
        row = entry.model_dump(mode="json", exclude_none=True)
        try:
            await self._backend.insert("activity_log", [row])
        except _WRITE_ERRORS as exc:
            # The audited change is already committed; report but keep it.
            logger.warning(
                "queries.activity_log_failed",
                extra={"entity_type": entry.entity_type, "error": str(exc)},
            )
            return False
        self._context.invalidate_cache(CacheOperation.ACTIVITY_LOGGED)
        return True

    async def log_activity(
        self, entry: ActivityLogEntry
    ) -> QueryResult[ActivityLogEntry]:
        """Insert an activity-log row."""
        row = entry.model_dump(mode="json", exclude_none=True)
        try:
            rows = await self._backend.insert("activity_log", [row])
            saved = ActivityLogEntry.model_validate(rows[0]) if rows else entry
        except _WRITE_ERRORS as exc:
            return self._failed("log_activity", exc)
        self._context.invalidate_cache(CacheOperation.ACTIVITY_LOGGED)
        await self._publish(
            RefreshEvent.ACTIVITY_LOGGED, {"entity_id": entry.entity_id}
        )
        return QueryResult.ok(saved)

    @staticmethod
    def _audit(
        entity_type: str,
        entity_id: int,
        entity_name: str,
        action: AuditAction,
        changed_by: str,
        changes: Optional[Dict[str, Any]] = None,
    ) -> ActivityLogEntry:
        return ActivityLogEntry(
            entity_type=entity_type,
            entity_id=entity_id,
            entity_name=entity_name,
            action=action,
            changed_by=changed_by,
            changes=changes,
        )

    async def _replace_meal_links(self, meal_id: int, data: CreateMealData) -> None:
        if data.ingredients:
            await self._backend.insert(
                "meal_ingredients",
                [
                    {
                        "meal_id": meal_id,
                        "ingredient_id": item.ingredient_id,
                        "quantity": item.quantity,
                    }
                    for item in data.ingredients
                ],
            )
        if data.dietary_tag_ids:
            await self._backend.insert(
                "meal_dietary_tags",
                [
                    {"meal_id": meal_id, "tag_id": tag_id}
                    for tag_id in data.dietary_tag_ids
                ],
            )

    @staticmethod
    def _meal_row(data: CreateMealData) -> Dict[str, Any]:
        return data.model_dump(
            mode="json", exclude={"ingredients", "dietary_tag_ids"}, exclude_none=True
        )

    async def create_meal(
        self, data: CreateMealData, changed_by: str
    ) -> QueryResult[Meal]:
        """Create a meal with its ingredient and dietary-tag links."""
        committed = False
        try:
            rows = await self._backend.insert("meals", [self._meal_row(data)])
            committed = True
            meal = Meal.model_validate(rows[0])
            await self._replace_meal_links(meal.meal_id, data)
        except _WRITE_ERRORS as exc:
            if committed:
                self._context.invalidate_cache(CacheOperation.MEAL_CREATED)
            return self._failed("create_meal", exc)
        await self._after_write(
            CacheOperation.MEAL_CREATED,
            RefreshEvent.MEAL_SAVED,
            {"meal_id": meal.meal_id},
            self._audit(
                "meal", meal.meal_id, meal.name, AuditAction.CREATED, changed_by
            ),
        )
        return QueryResult.ok(meal)

    async def update_meal(
        self, meal_id: int, data: CreateMealData, changed_by: str
    ) -> QueryResult[Meal]:
        """Replace a meal's fields and links."""
        key = {"meal_id": f"eq.{meal_id}"}
        committed = False
        try:
            rows = await self._backend.update("meals", key, self._meal_row(data))
            if not rows:
                return QueryResult.failure(f"meal {meal_id} not found")
            committed = True
            meal = Meal.model_validate(rows[0])
            await self._backend.delete("meal_ingredients", key)
            await self._backend.delete("meal_dietary_tags", key)
            await self._replace_meal_links(meal_id, data)
        except _WRITE_ERRORS as exc:
            if committed:
                self._context.invalidate_cache(CacheOperation.MEAL_UPDATED)
            return self._failed("update_meal", exc)
        await self._after_write(
            CacheOperation.MEAL_UPDATED,
            RefreshEvent.MEAL_SAVED,
            {"meal_id": meal_id},
            self._audit(
                "meal",
                meal_id,
                meal.name,
                AuditAction.UPDATED,
                changed_by,
                changes=self._meal_row(data),
            ),
        )
        return QueryResult.ok(meal)

    async def _set_meal_disabled(
        self, meal_id: int, disabled: bool, changed_by: str
    ) -> QueryResult[Meal]:
        operation = (
            CacheOperation.MEAL_ARCHIVED if disabled else CacheOperation.MEAL_RESTORED
        )
        try:
            rows = await self._backend.update(
                "meals", {"meal_id": f"eq.{meal_id}"}, {"is_disabled": disabled}
            )
            if not rows:
                return QueryResult.failure(f"meal {meal_id} not found")
            meal = Meal.model_validate(rows[0])
        except _WRITE_ERRORS as exc:
            return self._failed(operation.value, exc)
        action = AuditAction.ARCHIVED if disabled else AuditAction.RESTORED
        await self._after_write(
            operation,
            RefreshEvent.MEAL_SAVED,
            {"meal_id": meal_id},
            self._audit("meal", meal_id, meal.name, action, changed_by),
        )
        return QueryResult.ok(meal)

    async def archive_meal(self, meal_id: int, changed_by: str) -> QueryResult[Meal]:
        return await self._set_meal_disabled(meal_id, True, changed_by)

    async def restore_meal(self, meal_id: int, changed_by: str) -> QueryResult[Meal]:
        return await self._set_meal_disabled(meal_id, False, changed_by)

    async def delete_meal(self, meal_id: int, changed_by: str) -> QueryResult[Meal]:
        """Delete a meal; its links go with it."""
        try:
            rows = await self._backend.delete("meals", {"meal_id": f"eq.{meal_id}"})
            if not rows:
                return QueryResult.failure(f"meal {meal_id} not found")
            meal = Meal.model_validate(rows[0])
        except _WRITE_ERRORS as exc:
            return self._failed("delete_meal", exc)
        await self._after_write(
            CacheOperation.MEAL_DELETED,
            RefreshEvent.MEAL_SAVED,
            {"meal_id": meal_id},
            self._audit("meal", meal_id, meal.name, AuditAction.DELETED, changed_by),
        )
        return QueryResult.ok(meal)

    async def create_ingredient(
        self, data: IngredientData, changed_by: str
    ) -> QueryResult[Ingredient]:
        try:
            rows = await self._backend.insert(
                "ingredients", [data.model_dump(mode="json", exclude_none=True)]
            )
            ingredient = Ingredient.model_validate(rows[0])
        except _WRITE_ERRORS as exc:
            return self._failed("create_ingredient", exc)
        await self._after_write(
            CacheOperation.INGREDIENT_CREATED,
            RefreshEvent.INGREDIENT_SAVED,
            {"ingredient_id": ingredient.ingredient_id},
            self._audit(
                "ingredient",
                ingredient.ingredient_id,
                ingredient.name,
                AuditAction.CREATED,
                changed_by,
            ),
        )
        return QueryResult.ok(ingredient)

    async def update_ingredient(
        self, ingredient_id: int, data: IngredientData, changed_by: str
    ) -> QueryResult[Ingredient]:
        values = data.model_dump(mode="json", exclude_none=True)
        try:
            rows = await self._backend.update(
                "ingredients", {"ingredient_id": f"eq.{ingredient_id}"}, values
            )
            if not rows:
                return QueryResult.failure(f"ingredient {ingredient_id} not found")
            ingredient = Ingredient.model_validate(rows[0])
        except _WRITE_ERRORS as exc:
            return self._failed("update_ingredient", exc)
        await self._after_write(
            CacheOperation.INGREDIENT_UPDATED,
            RefreshEvent.INGREDIENT_SAVED,
            {"ingredient_id": ingredient_id},
            self._audit(
                "ingredient",
                ingredient_id,
                ingredient.name,
                AuditAction.UPDATED,
                changed_by,
                changes=values,
            ),
        )
        return QueryResult.ok(ingredient)

    async def _set_ingredient_disabled(
        self, ingredient_id: int, disabled: bool, changed_by: str
    ) -> QueryResult[Ingredient]:
        operation = (
            CacheOperation.INGREDIENT_ARCHIVED
            if disabled
            else CacheOperation.INGREDIENT_RESTORED
        )
        try:
            rows = await self._backend.update(
                "ingredients",
                {"ingredient_id": f"eq.{ingredient_id}"},
                {"is_disabled": disabled},
            )
            if not rows:
                return QueryResult.failure(f"ingredient {ingredient_id} not found")
            ingredient = Ingredient.model_validate(rows[0])
        except _WRITE_ERRORS as exc:
            return self._failed(operation.value, exc)
        action = AuditAction.ARCHIVED if disabled else AuditAction.RESTORED
        await self._after_write(
            operation,
            RefreshEvent.INGREDIENT_SAVED,
            {"ingredient_id": ingredient_id},
            self._audit(
                "ingredient", ingredient_id, ingredient.name, action, changed_by
            ),
        )
        return QueryResult.ok(ingredient)

    async def archive_ingredient(
        self, ingredient_id: int, changed_by: str
    ) -> QueryResult[Ingredient]:
        return await self._set_ingredient_disabled(ingredient_id, True, changed_by)

    async def restore_ingredient(
        self, ingredient_id: int, changed_by: str
    ) -> QueryResult[Ingredient]:
        return await self._set_ingredient_disabled(ingredient_id, False, changed_by)

    async def create_dietary_tag(self, tag_name: str) -> QueryResult[DietaryTag]:
        try:
            rows = await self._backend.insert("dietary_tags", [{"tag_name": tag_name}])
            tag = DietaryTag.model_validate(rows[0])
        except _WRITE_ERRORS as exc:
            return self._failed("create_dietary_tag", exc)
        await self._after_write(
            CacheOperation.DIETARY_TAG_CREATED,
            RefreshEvent.DIETARY_TAG_SAVED,
            {"tag_id": tag.tag_id},
        )
        return QueryResult.ok(tag)

    async def update_dietary_tag(
        self, tag_id: int, tag_name: str
    ) -> QueryResult[DietaryTag]:
        try:
            rows = await self._backend.update(
                "dietary_tags", {"tag_id": f"eq.{tag_id}"}, {"tag_name": tag_name}
            )
            if not rows:
                return QueryResult.failure(f"dietary tag {tag_id} not found")
            tag = DietaryTag.model_validate(rows[0])
        except _WRITE_ERRORS as exc:
            return self._failed("update_dietary_tag", exc)
        await self._after_write(
            CacheOperation.DIETARY_TAG_UPDATED,
            RefreshEvent.DIETARY_TAG_SAVED,
            {"tag_id": tag_id},
        )
        return QueryResult.ok(tag)

    async def disable_dietary_tag(self, tag_id: int) -> QueryResult[DietaryTag]:
        try:
            rows = await self._backend.update(
                "dietary_tags", {"tag_id": f"eq.{tag_id}"}, {"is_disabled": True}
            )
            if not rows:
                return QueryResult.failure(f"dietary tag {tag_id} not found")
            tag = DietaryTag.model_validate(rows[0])
        except _WRITE_ERRORS as exc:
            return self._failed("disable_dietary_tag", exc)
        await self._after_write(
            CacheOperation.DIETARY_TAG_DISABLED,
            RefreshEvent.DIETARY_TAG_SAVED,
            {"tag_id": tag_id},
        )
        return QueryResult.ok(tag)

    async def update_user_role(
        self, user_id: str, role: UserRole
    ) -> QueryResult[UserProfile]:
        try:
            rows: List[Row] = await self._backend.update(
                "profiles", {"id": f"eq.{user_id}"}, {"role": UserRole(role).value}
            )
            if not rows:
                return QueryResult.failure(f"user {user_id} not found")
            profile = UserProfile.model_validate(rows[0])
        except _WRITE_ERRORS as exc:
            return self._failed("update_user_role", exc)
        await self._after_write(
            CacheOperation.USER_ROLE_CHANGED,
            RefreshEvent.USER_SAVED,
            {"user_id": user_id},
        )
        return QueryResult.ok(profile)
