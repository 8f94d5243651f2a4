"""
Pytest configuration and shared fixtures.

This module provides:
- Environment variable setup for tests
- In-memory database, executor and entity-set fixtures
- A shared-cache SQLite file database for isolation scenarios
- Factories for seeded rows
"""

import os
from datetime import date, datetime
from decimal import Decimal

import pytest

# Set test environment variables BEFORE any imports
# This must happen first to ensure settings load with test values
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["ISOLATION_LEVEL"] = "REPEATABLE_READ"
os.environ["LOG_LEVEL"] = "DEBUG"
os.environ["LOG_JSON"] = "false"
os.environ["ANOMALY_STALL_SECONDS"] = "0.05"

from mealdesk.core.database import get_async_engine, init_db  # noqa: E402
from mealdesk.core.executor import TransactionExecutor  # noqa: E402
from mealdesk.core.security import get_password_hash  # noqa: E402
from mealdesk.models import Lunch, Meal, MealType, User  # noqa: E402
from mealdesk.repositories.registry import EntitySetRegistry  # noqa: E402

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# Low bcrypt cost keeps hashing fast in tests
TEST_PASSWORD_HASH = get_password_hash("secret", rounds=4)


@pytest.fixture
async def engine():
    """In-memory engine with the full schema."""
    engine = get_async_engine(TEST_DATABASE_URL)
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
async def executor(engine):
    """Executor over the in-memory engine."""
    return TransactionExecutor(engine)


@pytest.fixture
async def entity_sets(executor):
    """Fresh entity-set registry per test."""
    return EntitySetRegistry(executor)


@pytest.fixture
def shared_cache_url(tmp_path):
    """
    URL of a shared-cache SQLite file database.

    Connections to a shared cache honour table-level read locks and the
    read_uncommitted flag, which is what makes isolation levels observable.
    """
    return f"sqlite+aiosqlite:///file:{tmp_path / 'isolation.db'}?cache=shared&uri=true"


@pytest.fixture
async def shared_executor(shared_cache_url):
    """Executor over a pooled shared-cache file database."""
    engine = get_async_engine(shared_cache_url)
    await init_db(engine)
    yield TransactionExecutor(engine)
    await engine.dispose()


@pytest.fixture
def make_user():
    """Factory saving a user and returning it."""

    async def _make_user(
        executor: TransactionExecutor,
        username: str = "admin",
        credit: Decimal = Decimal("1000.00"),
    ) -> User:
        user = User(
            first_name=username.title(),
            last_name="Tester",
            username=username,
            password_hashed=TEST_PASSWORD_HASH,
            credit=credit,
        )
        assert await user.save(executor) != -1
        return user

    return _make_user


@pytest.fixture
def make_lunch():
    """Factory saving a lunch (and the meals and meal types it needs)."""

    async def _make_lunch(
        executor: TransactionExecutor,
        day: date,
        price: Decimal = Decimal("4.50"),
        deadline: datetime | None = None,
        suffix: str = "",
    ) -> Lunch:
        meal_ids = []
        for course in ("Soup", "MainCourse", "Dessert"):
            existing = await executor.execute_scalar(
                "SELECT ID FROM MealType WHERE Name = @Name;", {"Name": course}
            )
            if existing.is_ok():
                meal_type_id = existing.unwrap()
            else:
                meal_type = MealType(name=course)
                meal_type_id = await meal_type.save(executor)
            meal = Meal(meal_type_id=meal_type_id, name=f"{course} of {day:%d/%m}{suffix}")
            await meal.save(executor)
            meal_ids.append(meal.id)

        lunch = Lunch(
            soup_id=meal_ids[0],
            main_meal_id=meal_ids[1],
            dessert_id=meal_ids[2],
            price=price,
            date=day,
            max_order_time=deadline or datetime(day.year, day.month, day.day, 10, 0),
        )
        assert await lunch.save(executor) != -1
        return lunch

    return _make_lunch
