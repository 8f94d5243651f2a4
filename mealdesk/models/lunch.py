"""
Lunch menu and order entities.
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from mealdesk.models.base import (
    UNSAVED_ID,
    ColumnMapping,
    Entity,
    as_bool,
    as_date,
    as_datetime,
    as_decimal,
    as_int,
    describe,
)


@describe(
    "Lunch",
    ColumnMapping("Soup_ID", "soup_id", as_int),
    ColumnMapping("MainMeal_ID", "main_meal_id", as_int),
    ColumnMapping("Dessert_ID", "dessert_id", as_int),
    ColumnMapping("Price", "price", as_decimal),
    ColumnMapping("Date", "date", as_date),
    ColumnMapping("MaxOrderTime", "max_order_time", as_datetime),
)
@dataclass(eq=False)
class Lunch(Entity):
    """
    A three-course menu offered on one day.

    Orders are accepted until `max_order_time`.
    """

    soup_id: int
    main_meal_id: int
    dessert_id: int
    price: Decimal
    date: date
    max_order_time: datetime
    id: int = UNSAVED_ID

    def is_orderable(self, now: datetime) -> bool:
        return now <= self.max_order_time


@describe(
    "LunchOrder",
    ColumnMapping("Lunch_ID", "lunch_id", as_int),
    ColumnMapping("User_ID", "user_id", as_int),
    ColumnMapping("Picked", "picked", as_bool, nullable=True),
)
@dataclass(eq=False)
class LunchOrder(Entity):
    """A user's order of one lunch. `picked` is None until pickup is recorded."""

    lunch_id: int
    user_id: int
    picked: Optional[bool] = False
    id: int = UNSAVED_ID

    @property
    def is_picked(self) -> bool:
        return bool(self.picked)
