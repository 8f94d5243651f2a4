"""
Bootstrap data for a fresh store: the three meal types and an admin user.

Safe to run repeatedly; existing rows are left alone.
"""

from decimal import Decimal

from mealdesk.core.errors import RequestRejected
from mealdesk.core.executor import TransactionExecutor
from mealdesk.core.logging_config import get_logger
from mealdesk.models.base import UNSAVED_ID
from mealdesk.models.meal import COURSE_TYPES, MealType
from mealdesk.models.user import User
from mealdesk.repositories.registry import EntitySetRegistry
from mealdesk.services.accounts import AccountService

logger = get_logger(__name__)


async def seed_defaults(
    executor: TransactionExecutor,
    entity_sets: EntitySetRegistry,
    admin_password: str,
    admin_credit: Decimal,
) -> User:
    """
    Create missing meal types and the admin user.

    Returns:
        The admin user (existing or new)

    Raises:
        RequestRejected: If a row could not be written
    """
    meal_types = entity_sets.cache(MealType)
    existing = {meal_type.name for meal_type in await meal_types.get_all()}
    for name in COURSE_TYPES:
        if name in existing:
            continue
        meal_type = MealType(name=name)
        if await meal_type.save(executor) == UNSAVED_ID:
            raise RequestRejected(f"Could not create meal type {name}")
        meal_types.add_or_update(meal_type)
        logger.info("Meal type created", extra={"meal_type": name})

    accounts = AccountService(executor, entity_sets)
    admin = await accounts.find("admin")
    if admin is not None:
        logger.info("Admin user already exists", extra={"user_id": admin.id})
        return admin

    admin = await accounts.register(
        first_name="Admin",
        last_name="User",
        username="admin",
        password=admin_password,
        credit=admin_credit,
    )
    logger.info("Admin user created", extra={"user_id": admin.id})
    return admin
