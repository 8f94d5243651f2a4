"""
Non-repeatable read demonstration.

Runs two overlapping transactions against one user's credit:

    A: BEGIN, read credit (v0) .......... stall ........ read credit (v1), COMMIT
    B:                        BEGIN, set credit, COMMIT

Under READ UNCOMMITTED and READ COMMITTED, A's second read can return B's
value. Under REPEATABLE READ and SERIALIZABLE it must return v0, either
because A reads a snapshot (MySQL) or because B cannot write the row
while A holds its read lock (SQLite shared cache).

The original credit is written back afterwards in its own transaction.
"""

import asyncio
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from mealdesk.core.errors import StatementExecutionError
from mealdesk.core.executor import Statement, TransactionExecutor
from mealdesk.core.isolation import IsolationLevel
from mealdesk.core.logging_config import get_logger, log_with_context
from mealdesk.core.result import Err, Ok, Result
from mealdesk.models.user import (
    SELECT_CREDIT_QUERY,
    SELECT_ID_BY_USERNAME_QUERY,
    SET_CREDIT_QUERY,
)

logger = get_logger(__name__)


@dataclass(frozen=True)
class AnomalyReport:
    """
    Outcome of one demonstration run.

    Attributes:
        isolation_level: Level both transactions ran at
        user_id: Row that was read and overwritten
        first_read: Credit read by A before the stall (v0)
        second_read: Credit read by A after B finished (v1)
        writer_committed: Whether B's update committed
        cleanup_succeeded: Whether the original credit was restored
    """

    isolation_level: IsolationLevel
    user_id: int
    first_read: Decimal
    second_read: Decimal
    writer_committed: bool
    cleanup_succeeded: bool

    @property
    def anomaly_observed(self) -> bool:
        return self.first_read != self.second_read

    def summary(self) -> str:
        outcome = "observed" if self.anomaly_observed else "not observed"
        return (
            f"[{self.isolation_level.value}] first read {self.first_read}, "
            f"second read {self.second_read}: non-repeatable read {outcome}"
        )


class NonRepeatableReadDemo:
    """
    Drives the two-transaction scenario.

    Args:
        executor: Executor both transactions run through
        username: User whose credit is observed
        new_value: Credit transaction B commits
        stall_seconds: How long A waits between its reads

    Example:
        demo = NonRepeatableReadDemo(executor, stall_seconds=0.5)
        report = (await demo.run(IsolationLevel.READ_COMMITTED)).unwrap()
        print(report.summary())
    """

    def __init__(
        self,
        executor: TransactionExecutor,
        username: str = "admin",
        new_value: Decimal = Decimal("500.00"),
        stall_seconds: float = 5.0,
    ):
        self.executor = executor
        self.username = username
        self.new_value = new_value
        self.stall_seconds = stall_seconds

    async def resolve_user_id(self) -> Result[int]:
        return await self.executor.execute_scalar(
            SELECT_ID_BY_USERNAME_QUERY, {"@Username": self.username}, as_type=int
        )

    async def _read_credit(self, user_id: int, connection) -> Result[Decimal]:
        return await self.executor.execute_scalar(
            SELECT_CREDIT_QUERY, {"@ID": user_id}, as_type=Decimal, connection=connection
        )

    async def _write(self, user_id: int, level: IsolationLevel) -> bool:
        """Transaction B: overwrite the credit and commit."""
        log_with_context(
            logger, "info", "Transaction B: updating credit",
            transaction="B", isolation_level=level.value, value=str(self.new_value),
        )
        result = await self.executor.execute_transaction(
            [Statement(SET_CREDIT_QUERY, {"@Credit": self.new_value, "@ID": user_id})],
            isolation_level=level,
        )
        if result.is_ok():
            log_with_context(logger, "info", "Transaction B: committed", transaction="B")
            return True
        log_with_context(
            logger, "info", "Transaction B: not committed",
            transaction="B", reason=str(result.error),
        )
        return False

    async def _restore(self, user_id: int, value: Decimal) -> bool:
        result = await self.executor.execute_transaction(
            [Statement(SET_CREDIT_QUERY, {"@Credit": value, "@ID": user_id})]
        )
        if result.is_ok():
            log_with_context(logger, "info", "Cleanup: credit restored", value=str(value))
            return True
        log_with_context(
            logger, "error", "Cleanup: failed to restore credit",
            value=str(value), reason=str(result.error),
        )
        return False

    async def run(self, isolation_level: Optional[IsolationLevel] = None) -> Result[AnomalyReport]:
        """
        Run the scenario once.

        Returns:
            Ok(AnomalyReport), or Err if the user cannot be found or A's
            reads fail. A failed cleanup is reported inside the report.
        """
        level = IsolationLevel.parse(isolation_level or self.executor.default_isolation_level)

        user = await self.resolve_user_id()
        if user.is_err():
            log_with_context(
                logger, "error", "Could not resolve demonstration user",
                username=self.username, reason=str(user.error),
            )
            return Err(user.error)
        user_id = user.unwrap()

        log_with_context(
            logger, "info", "Transaction A: starting",
            transaction="A", isolation_level=level.value, user_id=user_id,
        )
        writer: Optional[asyncio.Task] = None
        try:
            async with self.executor.transaction(level) as conn:
                first = await self._read_credit(user_id, conn)
                if first.is_err():
                    return Err(first.error)
                log_with_context(
                    logger, "info", "Transaction A: first read",
                    transaction="A", value=str(first.unwrap()),
                )

                writer = asyncio.create_task(self._write(user_id, level))
                log_with_context(
                    logger, "info", "Transaction A: stalling",
                    transaction="A", seconds=self.stall_seconds,
                )
                await asyncio.sleep(self.stall_seconds)
                writer_committed = await writer

                second = await self._read_credit(user_id, conn)
                if second.is_err():
                    return Err(second.error)
                log_with_context(
                    logger, "info", "Transaction A: second read",
                    transaction="A", value=str(second.unwrap()),
                )
        except (SQLAlchemyError, OSError) as e:
            # Opening or committing transaction A failed
            failure = StatementExecutionError("Transaction A failed", cause=e)
            logger.error(str(failure), extra=failure.to_dict())
            return Err(failure)
        finally:
            if writer is not None and not writer.done():
                writer.cancel()
        log_with_context(logger, "info", "Transaction A: committed", transaction="A")

        cleanup_succeeded = await self._restore(user_id, first.unwrap())

        report = AnomalyReport(
            isolation_level=level,
            user_id=user_id,
            first_read=first.unwrap(),
            second_read=second.unwrap(),
            writer_committed=writer_committed,
            cleanup_succeeded=cleanup_succeeded,
        )
        log_with_context(
            logger, "info", report.summary(),
            isolation_level=level.value,
            anomaly_observed=report.anomaly_observed,
            cleanup_succeeded=cleanup_succeeded,
        )
        return Ok(report)
