"""
User accounts with a prepaid credit balance.
"""

from dataclasses import dataclass
from decimal import Decimal

from mealdesk.core.executor import Statement
from mealdesk.core.security import verify_password
from mealdesk.models.base import UNSAVED_ID, ColumnMapping, Entity, as_decimal, as_str, describe

ADD_CREDIT_QUERY = "UPDATE User SET Credit = Credit + @Delta WHERE ID = @ID;"
SELECT_CREDIT_QUERY = "SELECT Credit FROM User WHERE ID = @ID;"
SET_CREDIT_QUERY = "UPDATE User SET Credit = @Credit WHERE ID = @ID;"
SELECT_ID_BY_USERNAME_QUERY = "SELECT ID FROM User WHERE Username = @Username;"


@describe(
    "User",
    ColumnMapping("FirstName", "first_name", as_str),
    ColumnMapping("LastName", "last_name", as_str),
    ColumnMapping("Username", "username", as_str),
    ColumnMapping("PasswordHashed", "password_hashed", as_str),
    ColumnMapping("Credit", "credit", as_decimal),
)
@dataclass(eq=False)
class User(Entity):
    """A person who orders lunches and pays for them from `credit`."""

    first_name: str
    last_name: str
    username: str
    password_hashed: str
    credit: Decimal = Decimal("0.00")
    id: int = UNSAVED_ID

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def check_password(self, password: str) -> bool:
        return verify_password(password, self.password_hashed)

    def add_credit_statement(self, delta: Decimal) -> Statement:
        """
        Statement adjusting this user's credit by `delta` in the store.

        The adjustment is computed by the store, so it composes with
        concurrent adjustments inside a transaction batch.
        """
        return Statement(ADD_CREDIT_QUERY, {"@Delta": delta, "@ID": self.id})
