"""
CSV import of lunch menus.

Expected header:

    SoupName,MainCourseName,DessertName,Date,MaxOrderDate,Price

Dates use dd/mm/yyyy, order deadlines dd/mm/yyyy HH:MM. Meals that do not
exist yet are created under the Soup, MainCourse and Dessert meal types.
All lunches of one file are inserted in a single transaction.
"""

import csv
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Dict, Iterable, List

from mealdesk.core.errors import RequestRejected
from mealdesk.core.executor import Statement, TransactionExecutor
from mealdesk.core.logging_config import get_logger
from mealdesk.models.base import UNSAVED_ID
from mealdesk.models.lunch import Lunch
from mealdesk.models.meal import COURSE_TYPES, DESSERT, MAIN_COURSE, SOUP, Meal, MealType
from mealdesk.repositories.registry import EntitySetRegistry

logger = get_logger(__name__)

CSV_HEADER = ("SoupName", "MainCourseName", "DessertName", "Date", "MaxOrderDate", "Price")
DATE_FORMAT = "%d/%m/%Y"
DATETIME_FORMAT = "%d/%m/%Y %H:%M"


@dataclass(frozen=True)
class LunchRecord:
    """One parsed CSV line."""
    soup: str
    main_course: str
    dessert: str
    date: date
    max_order_time: datetime
    price: Decimal


def parse_lunch_csv(lines: Iterable[str]) -> List[LunchRecord]:
    """
    Parse lunch CSV content.

    Raises:
        RequestRejected: Wrong header or an unparsable line (the message
            names the line number)
    """
    reader = csv.reader(lines)
    header = next(reader, None)
    if header is None or tuple(column.strip() for column in header) != CSV_HEADER:
        raise RequestRejected(f"CSV header must be: {','.join(CSV_HEADER)}")

    records: List[LunchRecord] = []
    for line_number, fields in enumerate(reader, start=2):
        if not any(field.strip() for field in fields):
            continue
        if len(fields) != len(CSV_HEADER):
            raise RequestRejected(
                f"Line {line_number}: expected {len(CSV_HEADER)} values, got {len(fields)}"
            )
        soup, main_course, dessert, day, deadline, price = (field.strip() for field in fields)
        try:
            records.append(LunchRecord(
                soup=soup,
                main_course=main_course,
                dessert=dessert,
                date=datetime.strptime(day, DATE_FORMAT).date(),
                max_order_time=datetime.strptime(deadline, DATETIME_FORMAT),
                price=Decimal(price),
            ))
        except (ValueError, InvalidOperation) as e:
            raise RequestRejected(f"Line {line_number}: {e}") from e
    return records


class LunchImporter:
    """
    Creates lunches (and any missing meals) from CSV records.
    """

    def __init__(self, executor: TransactionExecutor, entity_sets: EntitySetRegistry):
        self.executor = executor
        self.meal_types = entity_sets.cache(MealType)
        self.meals = entity_sets.cache(Meal)
        self.lunches = entity_sets.retriever(Lunch)

    async def import_file(self, path: str | Path) -> int:
        """
        Import a CSV file.

        Returns:
            Number of lunches created
        """
        with open(path, newline="", encoding="utf-8") as handle:
            records = parse_lunch_csv(handle)
        return await self.import_records(records)

    async def _meal_type(self, name: str) -> MealType:
        async with self.meal_types.lock:
            existing = await self.meal_types.get_first_by(lambda meal_type: meal_type.name == name)
            if existing is not None:
                return existing
            meal_type = MealType(name=name)
            if await meal_type.save(self.executor) == UNSAVED_ID:
                raise RequestRejected(f"Could not create meal type {name}")
            self.meal_types.add_or_update(meal_type)
            return meal_type

    async def _meal(self, name: str, meal_type: MealType) -> Meal:
        async with self.meals.lock:
            existing = await self.meals.get_first_by(
                lambda meal: meal.name == name and meal.meal_type_id == meal_type.id
            )
            if existing is not None:
                return existing
            meal = Meal(meal_type_id=meal_type.id, name=name)
            if await meal.save(self.executor) == UNSAVED_ID:
                raise RequestRejected(f"Could not create meal {name}")
            self.meals.add_or_update(meal)
            logger.info("Meal created", extra={"meal": name, "meal_type": meal_type.name})
            return meal

    async def import_records(self, records: List[LunchRecord]) -> int:
        """
        Create one lunch per record.

        Raises:
            RequestRejected: A meal could not be created or the lunch
                transaction failed (no lunch is created in that case)
        """
        if not records:
            return 0

        types: Dict[str, MealType] = {name: await self._meal_type(name) for name in COURSE_TYPES}

        lunches: List[Lunch] = []
        for record in records:
            soup = await self._meal(record.soup, types[SOUP])
            main_course = await self._meal(record.main_course, types[MAIN_COURSE])
            dessert = await self._meal(record.dessert, types[DESSERT])
            lunches.append(Lunch(
                soup_id=soup.id,
                main_meal_id=main_course.id,
                dessert_id=dessert.id,
                price=record.price,
                date=record.date,
                max_order_time=record.max_order_time,
            ))

        result = await self.executor.execute_transaction([
            Statement(Lunch.descriptor.insert, lunch.parameters(include_id=False))
            for lunch in lunches
        ])
        if result.is_err():
            raise RequestRejected("Import failed, no lunches were added") from result.error

        logger.info("Lunches imported", extra={"count": len(lunches)})
        return len(lunches)
