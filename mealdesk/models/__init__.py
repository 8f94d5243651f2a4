"""
Persisted entity types and the table schema behind them.

Import entities from this module to get every descriptor registered.
"""

from mealdesk.models.base import (
    UNSAVED_ID,
    ColumnMapping,
    Entity,
    EntityDescriptor,
    describe,
)
from mealdesk.models.lunch import Lunch, LunchOrder
from mealdesk.models.meal import Meal, MealType
from mealdesk.models.schema import metadata
from mealdesk.models.user import User

ENTITY_TYPES = (MealType, Meal, Lunch, LunchOrder, User)

__all__ = [
    # Contract
    "UNSAVED_ID",
    "ColumnMapping",
    "Entity",
    "EntityDescriptor",
    "describe",
    "metadata",
    # Entities
    "MealType",
    "Meal",
    "Lunch",
    "LunchOrder",
    "User",
    "ENTITY_TYPES",
]
