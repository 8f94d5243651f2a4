"""
Monthly spending report per user.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import List

from mealdesk.core.errors import RequestRejected
from mealdesk.models.lunch import Lunch, LunchOrder
from mealdesk.models.meal import Meal
from mealdesk.models.user import User
from mealdesk.repositories.registry import EntitySetRegistry


@dataclass(frozen=True)
class ReportLine:
    date: date
    soup: str
    main_course: str
    dessert: str
    price: Decimal


@dataclass(frozen=True)
class MonthlyReport:
    """Lunches one user ordered in one month."""

    user: User
    year: int
    month: int
    lines: List[ReportLine]
    lunches_offered: int

    @property
    def total_cost(self) -> Decimal:
        return sum((line.price for line in self.lines), Decimal("0"))

    def render(self) -> str:
        heading = f"{self.user.username}({self.user.full_name})"
        rule = "-" * max(len(self.user.username), len(self.user.full_name))
        out = [heading, rule]
        for line in self.lines:
            out.append(line.date.strftime("%d/%m/%Y"))
            out.append(f"{line.soup},{line.main_course},{line.dessert}")
        out.append(rule)
        out.append("Summary: ")
        out.append(f"Bought {len(self.lines)}/{self.lunches_offered} lunches this month")
        out.append(f"For the price of {self.total_cost.normalize():f}")
        return "\n".join(out)


class ReportService:
    def __init__(self, entity_sets: EntitySetRegistry):
        self.users = entity_sets.cache(User)
        self.meals = entity_sets.cache(Meal)
        self.lunches = entity_sets.retriever(Lunch)
        self.orders = entity_sets.retriever(LunchOrder)

    async def monthly_report(self, username: str, year: int, month: int) -> MonthlyReport:
        """
        Build the report for `username` and the given month.

        Raises:
            RequestRejected: Invalid month/year or unknown user
        """
        if year <= 0 or year > date.today().year:
            raise RequestRejected("Please enter valid year")
        if not 1 <= month <= 12:
            raise RequestRejected("Please enter valid month between 1 and 12")

        user = await self.users.get_first_by(lambda candidate: candidate.username == username)
        if user is None:
            raise RequestRejected("Unable to find specified user")

        in_month = {
            lunch.id: lunch
            for lunch in await self.lunches.get_all()
            if lunch.date.year == year and lunch.date.month == month
        }
        orders = await self.orders.get_all_by(
            lambda order: order.user_id == user.id and order.lunch_id in in_month
        )
        await self.meals.get_all()

        def meal_name(meal_id: int) -> str:
            meal = self.meals.get(meal_id)
            return meal.name if meal is not None else f"#{meal_id}"

        lines = sorted(
            (
                ReportLine(
                    date=lunch.date,
                    soup=meal_name(lunch.soup_id),
                    main_course=meal_name(lunch.main_meal_id),
                    dessert=meal_name(lunch.dessert_id),
                    price=lunch.price,
                )
                for lunch in (in_month[order.lunch_id] for order in orders)
            ),
            key=lambda line: line.date,
        )
        return MonthlyReport(
            user=user,
            year=year,
            month=month,
            lines=lines,
            lunches_offered=len(in_month),
        )
