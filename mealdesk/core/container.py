"""
Composition root.

Builds the engine, executor, entity-set registry and services once, on
first use, from one Settings object. Everything below receives its
collaborators from here instead of reaching for module-level singletons.
"""

from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine

from mealdesk.core.config import Settings, get_settings
from mealdesk.core.database import close_db, get_async_engine, init_db
from mealdesk.core.executor import TransactionExecutor
from mealdesk.repositories.registry import EntitySetRegistry
from mealdesk.services.accounts import AccountService
from mealdesk.services.anomaly import NonRepeatableReadDemo
from mealdesk.services.importer import LunchImporter
from mealdesk.services.ordering import OrderingService
from mealdesk.services.reports import ReportService
from mealdesk.services.seeding import seed_defaults


class Container:
    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        # Lazy Singletons
        self._engine: Optional[AsyncEngine] = None
        self._executor: Optional[TransactionExecutor] = None
        self._entity_sets: Optional[EntitySetRegistry] = None
        self._accounts: Optional[AccountService] = None
        self._ordering: Optional[OrderingService] = None
        self._importer: Optional[LunchImporter] = None
        self._reports: Optional[ReportService] = None

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            self._engine = get_async_engine(self.settings.database_url, echo=self.settings.echo_sql)
        return self._engine

    @property
    def executor(self) -> TransactionExecutor:
        if self._executor is None:
            self._executor = TransactionExecutor(
                self.engine, default_isolation_level=self.settings.isolation_level
            )
        return self._executor

    @property
    def entity_sets(self) -> EntitySetRegistry:
        if self._entity_sets is None:
            self._entity_sets = EntitySetRegistry(self.executor)
        return self._entity_sets

    @property
    def accounts(self) -> AccountService:
        if self._accounts is None:
            self._accounts = AccountService(self.executor, self.entity_sets)
        return self._accounts

    @property
    def ordering(self) -> OrderingService:
        if self._ordering is None:
            self._ordering = OrderingService(self.executor, self.entity_sets)
        return self._ordering

    @property
    def importer(self) -> LunchImporter:
        if self._importer is None:
            self._importer = LunchImporter(self.executor, self.entity_sets)
        return self._importer

    @property
    def reports(self) -> ReportService:
        if self._reports is None:
            self._reports = ReportService(self.entity_sets)
        return self._reports

    def anomaly_demo(self, stall_seconds: Optional[float] = None) -> NonRepeatableReadDemo:
        return NonRepeatableReadDemo(
            self.executor,
            username=self.settings.anomaly_username,
            new_value=self.settings.anomaly_new_credit,
            stall_seconds=(
                self.settings.anomaly_stall_seconds if stall_seconds is None else stall_seconds
            ),
        )

    async def init_db(self, seed: bool = True) -> None:
        """Create the schema and, optionally, the default rows."""
        await init_db(self.engine)
        if seed:
            await seed_defaults(
                self.executor,
                self.entity_sets,
                admin_password=self.settings.admin_password,
                admin_credit=self.settings.admin_initial_credit,
            )

    async def dispose(self) -> None:
        if self._engine is not None:
            await close_db(self._engine)
            self._engine = None
            self._executor = None
            self._entity_sets = None
            self._accounts = None
            self._ordering = None
            self._importer = None
            self._reports = None
