"""
Ordering and picking up lunches.
"""

from datetime import date, datetime
from typing import Callable, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from mealdesk.core.errors import DataAccessError, RequestRejected
from mealdesk.core.executor import TransactionExecutor
from mealdesk.core.logging_config import get_logger
from mealdesk.models.base import UNSAVED_ID
from mealdesk.models.lunch import Lunch, LunchOrder
from mealdesk.models.user import User
from mealdesk.repositories.registry import EntitySetRegistry

logger = get_logger(__name__)

DATE_FORMAT = "%d/%m/%Y"


class OrderingService:
    """
    Places and fulfils lunch orders.

    Lunches and orders are read through retrievers so every command sees
    orders placed by other consoles.

    Args:
        executor: Executor for the order transaction
        entity_sets: Registry providing the Lunch and LunchOrder retrievers
        clock: Returns the current time; replaced in tests
    """

    def __init__(
        self,
        executor: TransactionExecutor,
        entity_sets: EntitySetRegistry,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.executor = executor
        self.lunches = entity_sets.retriever(Lunch)
        self.orders = entity_sets.retriever(LunchOrder)
        self.clock = clock

    async def lunches_on(self, day: date) -> List[Lunch]:
        """Lunches offered on `day`, in menu order."""
        lunches = await self.lunches.get_all_by(lambda lunch: lunch.date == day)
        return sorted(lunches, key=lambda lunch: lunch.id)

    async def lunches_in_week(self, day: date) -> List[Lunch]:
        """Lunches offered in the ISO week containing `day`."""
        week = day.isocalendar()[:2]
        lunches = await self.lunches.get_all_by(lambda lunch: lunch.date.isocalendar()[:2] == week)
        return sorted(lunches, key=lambda lunch: (lunch.date, lunch.id))

    async def find_order(self, user: User, day: date) -> Optional[LunchOrder]:
        """The user's order for a lunch on `day`, if any."""
        lunch_dates: Dict[int, date] = {lunch.id: lunch.date for lunch in await self.lunches.get_all()}
        return await self.orders.get_first_by(
            lambda order: order.user_id == user.id and lunch_dates.get(order.lunch_id) == day
        )

    async def order_lunch(self, user: User, day: date, choice: int = 1) -> LunchOrder:
        """
        Order the `choice`-th lunch (1-based) offered on `day`.

        The order row and the credit debit are written in one transaction.

        Raises:
            RequestRejected: Already ordered for that day, nothing offered,
                invalid choice, ordering closed, or the transaction failed
        """
        label = day.strftime(DATE_FORMAT)
        if await self.find_order(user, day) is not None:
            raise RequestRejected(f"You already have ordered lunch for date {label}")

        lunches = await self.lunches_on(day)
        if not lunches:
            raise RequestRejected(f"No lunch is offered on {label}")
        if not 1 <= choice <= len(lunches):
            raise RequestRejected(f"Specified index is not valid (1-{len(lunches)})")

        lunch = lunches[choice - 1]
        if not lunch.is_orderable(self.clock()):
            raise RequestRejected(
                f"Orders for {label} closed at {lunch.max_order_time:%d/%m/%Y %H:%M}"
            )

        order = LunchOrder(lunch_id=lunch.id, user_id=user.id, picked=False)
        try:
            async with self.executor.transaction() as conn:
                new_id = (await self.executor.execute_insert(
                    LunchOrder.descriptor.insert,
                    order.parameters(include_id=False),
                    connection=conn,
                )).unwrap()
                (await self.executor.execute_transaction(
                    [user.add_credit_statement(-lunch.price)],
                    connection=conn,
                )).unwrap()
        except (DataAccessError, SQLAlchemyError) as e:
            logger.error(
                "Order transaction failed",
                extra={"user_id": user.id, "lunch_id": lunch.id, "reason": str(e)},
            )
            raise RequestRejected("Could not place the order, nothing was charged") from e

        order.id = new_id
        user.credit -= lunch.price
        self.orders.add_or_update(order, is_new=True)
        logger.info(
            "Lunch ordered",
            extra={"user_id": user.id, "lunch_id": lunch.id, "order_id": order.id},
        )
        return order

    async def pick_lunch(self, user: User, day: date) -> LunchOrder:
        """
        Mark the user's order for `day` as picked up.

        Raises:
            RequestRejected: No order, already picked, or the update failed
        """
        label = day.strftime(DATE_FORMAT)
        order = await self.find_order(user, day)
        if order is None:
            raise RequestRejected(f"You dont have lunch ordered for {label}")
        if order.is_picked:
            raise RequestRejected(f"Lunch for {label} is already picked")

        order.picked = True
        if await order.save(self.executor) == UNSAVED_ID:
            order.picked = False
            raise RequestRejected(f"Could not record pickup for {label}")

        self.orders.add_or_update(order)
        return order
