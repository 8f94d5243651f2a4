"""
Meal catalogue entities.
"""

from dataclasses import dataclass

from mealdesk.models.base import UNSAVED_ID, ColumnMapping, Entity, as_int, as_str, describe

# Names of the meal types a lunch is composed of
SOUP = "Soup"
MAIN_COURSE = "MainCourse"
DESSERT = "Dessert"
COURSE_TYPES = (SOUP, MAIN_COURSE, DESSERT)


@describe(
    "MealType",
    ColumnMapping("Name", "name", as_str),
)
@dataclass(eq=False)
class MealType(Entity):
    """Course category (soup, main course, dessert)."""

    name: str
    id: int = UNSAVED_ID


@describe(
    "Meal",
    ColumnMapping("MealType_ID", "meal_type_id", as_int),
    ColumnMapping("Name", "name", as_str),
)
@dataclass(eq=False)
class Meal(Entity):
    """A single dish belonging to one meal type."""

    meal_type_id: int
    name: str
    id: int = UNSAVED_ID

    def __str__(self) -> str:
        return self.name
