"""
User login and registration.
"""

from decimal import Decimal

from mealdesk.core.errors import RequestRejected
from mealdesk.core.executor import TransactionExecutor
from mealdesk.core.logging_config import get_logger
from mealdesk.core.security import get_password_hash
from mealdesk.models.base import UNSAVED_ID
from mealdesk.models.user import User
from mealdesk.repositories.registry import EntitySetRegistry

logger = get_logger(__name__)


class AccountService:
    """
    Looks users up through the User cache and keeps it current on writes.
    """

    def __init__(self, executor: TransactionExecutor, entity_sets: EntitySetRegistry):
        self.executor = executor
        self.users = entity_sets.cache(User)

    async def find(self, username: str) -> User | None:
        return await self.users.get_first_by(lambda user: user.username == username)

    async def login(self, username: str, password: str) -> User:
        """
        Check credentials.

        Returns:
            The matching user

        Raises:
            RequestRejected: Unknown user or wrong password
        """
        user = await self.find(username)
        if user is None:
            raise RequestRejected("User not found")
        if not user.check_password(password):
            logger.info("Rejected login", extra={"username": username})
            raise RequestRejected("Incorrect password!")
        logger.info("User logged in", extra={"username": username, "user_id": user.id})
        return user

    async def register(
        self,
        first_name: str,
        last_name: str,
        username: str,
        password: str,
        credit: Decimal = Decimal("0.00"),
    ) -> User:
        """
        Create a user with a bcrypt-hashed password.

        Raises:
            RequestRejected: Username taken or the insert failed
        """
        async with self.users.lock:
            if await self.find(username) is not None:
                raise RequestRejected(f"Username {username} is already taken")

            user = User(
                first_name=first_name,
                last_name=last_name,
                username=username,
                password_hashed=get_password_hash(password),
                credit=credit,
            )
            if await user.save(self.executor) == UNSAVED_ID:
                raise RequestRejected(f"Could not create user {username}")
            self.users.add_or_update(user)
        return user
