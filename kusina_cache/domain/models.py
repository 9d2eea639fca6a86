"""Domain models for the meal-curation data.

Row models mirror the backend tables (``meals``, ``ingredients``,
``dietary_tags``, ``activity_log``, ``profiles``) and ignore unknown columns
so schema additions do not break reads.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")


class MealCategory(str, Enum):
    BREAKFAST = "Best for Breakfast"
    LUNCH = "Best for Lunch"
    DINNER = "Best for Dinner"
    SNACKS = "Best for Snacks"


class IngredientCategory(str, Enum):
    """Pinggang Pinoy food groups."""

    GO = "Go"
    GROW = "Grow"
    GLOW = "Glow"


class AuditAction(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    ARCHIVED = "archived"
    RESTORED = "restored"
    DELETED = "deleted"


class UserRole(str, Enum):
    ADMIN = "admin"
    USER = "user"
    FAMILY_HEAD = "family_head"
    COOK = "cook"


class _Row(BaseModel):
    model_config = ConfigDict(extra="ignore")


class Ingredient(_Row):
    ingredient_id: int
    name: str
    category: IngredientCategory
    price_per_kilo: float = 0.0
    is_disabled: bool = False
    image_url: Optional[str] = None
    glow_subcategory: Optional[str] = None
    created_at: Optional[datetime] = None


class DietaryTag(_Row):
    tag_id: int
    tag_name: str
    is_disabled: bool = False


class MealIngredient(_Row):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    meal_ingredient_id: Optional[int] = None
    meal_id: int
    ingredient_id: int
    quantity: str
    ingredient: Optional[Ingredient] = Field(default=None, alias="ingredients")


class Meal(_Row):
    meal_id: int
    name: str
    category: MealCategory
    recipe: Optional[str] = None
    image_url: Optional[str] = None
    is_disabled: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    meal_ingredients: List[MealIngredient] = Field(default_factory=list)
    dietary_tags: List[DietaryTag] = Field(default_factory=list)


class ActivityLogEntry(_Row):
    log_id: Optional[int] = None
    entity_type: str
    entity_id: int
    entity_name: str
    action: AuditAction
    changed_by: str
    changed_at: Optional[datetime] = None
    changes: Optional[Dict[str, Any]] = None
    notes: Optional[str] = None


class UserProfile(_Row):
    id: str
    email: Optional[str] = None
    full_name: Optional[str] = None
    role: UserRole = UserRole.USER
    created_at: Optional[datetime] = None


class MealFilters(BaseModel):
    """Optional filters for meal listings."""

    category: Optional[MealCategory] = None
    search: Optional[str] = None


class IngredientFilters(BaseModel):
    category: Optional[IngredientCategory] = None
    search: Optional[str] = None


class ActivityLogFilters(BaseModel):
    entity_type: Optional[str] = None
    action: Optional[AuditAction] = None
    limit: int = Field(50, ge=1, le=1000)


class MealIngredientInput(BaseModel):
    ingredient_id: int
    quantity: str = Field(..., min_length=1)


class CreateMealData(BaseModel):
    """Payload for creating or replacing a meal."""

    name: str = Field(..., min_length=1)
    category: MealCategory
    recipe: Optional[str] = None
    image_url: Optional[str] = None
    ingredients: List[MealIngredientInput] = Field(default_factory=list)
    dietary_tag_ids: List[int] = Field(default_factory=list)


class IngredientData(BaseModel):
    """Payload for creating or updating an ingredient."""

    name: str = Field(..., min_length=1)
    category: IngredientCategory
    price_per_kilo: float = Field(0.0, ge=0)
    image_url: Optional[str] = None
    glow_subcategory: Optional[str] = None


class DashboardStats(BaseModel):
    total_meals: int = 0
    active_meals: int = 0
    archived_meals: int = 0
    total_ingredients: int = 0
    active_ingredients: int = 0
    ingredients_by_category: Dict[str, int] = Field(default_factory=dict)
    meals_by_category: Dict[str, int] = Field(default_factory=dict)


class QueryResult(BaseModel, Generic[T]):
    """Outcome of a write: ``success`` plus data or an error message."""

    success: bool
    data: Optional[T] = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, data: Optional[T] = None) -> "QueryResult[T]":
        return cls(success=True, data=data)

    @classmethod
    def failure(cls, error: str) -> "QueryResult[T]":
        return cls(success=False, error=error)
