"""
Transaction executor: the single point of contact with the store.

Every operation opens (or borrows) a connection, runs its statement(s),
releases the connection on every path and reports the outcome as a
Result. Failures are logged here and returned as Err values carrying a
StatementExecutionError or TransactionAbortError; nothing below the
executor raises past it except programming errors.

Statements use `@Name` placeholders. They are bound by name through
SQLAlchemy text() clauses, never by formatting values into the SQL.
"""

import re
from contextlib import asynccontextmanager
from datetime import date, datetime
from decimal import Decimal
from typing import (
    Any,
    AsyncIterator,
    Dict,
    List,
    Mapping,
    NamedTuple,
    Optional,
    Sequence,
    Tuple,
    Type,
    TypeVar,
    Union,
)

from sqlalchemy import text
from sqlalchemy.engine import CursorResult
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine
from sqlalchemy.sql.elements import TextClause

from mealdesk.core.errors import (
    EmptyResultError,
    StatementExecutionError,
    TransactionAbortError,
)
from mealdesk.core.isolation import IsolationLevel, reset_statement
from mealdesk.core.logging_config import get_logger
from mealdesk.core.result import Err, Ok, Result

logger = get_logger(__name__)

N = TypeVar("N", int, Decimal)

_PLACEHOLDER = re.compile(r"@(\w+)")

# Driver failures surface as SQLAlchemyError; refused or dropped sockets
# can escape the driver as OSError.
_STORE_ERRORS = (SQLAlchemyError, OSError)


class Statement(NamedTuple):
    """One parameterized statement of a transaction unit."""

    sql: str
    params: Optional[Mapping[str, Any]] = None


Batch = Sequence[Union[Statement, Tuple[str, Optional[Mapping[str, Any]]]]]


def bind_named_parameters(
    sql: str,
    params: Optional[Mapping[str, Any]] = None,
) -> Tuple[TextClause, Dict[str, Any]]:
    """
    Turn `@Name` placeholders into SQLAlchemy bind parameters.

    Parameter keys may be written with or without the leading "@".
    Placeholders with no matching parameter are left as they are, so MySQL
    user variables such as `@total` pass through untouched.

    Example:
        >>> clause, bound = bind_named_parameters(
        ...     "UPDATE User SET Credit = @Credit WHERE ID = @ID;",
        ...     {"@Credit": Decimal("500.00"), "ID": 1},
        ... )
        >>> str(clause)
        'UPDATE User SET Credit = :Credit WHERE ID = :ID;'
    """
    bound = {key.lstrip("@"): value for key, value in (params or {}).items()}

    def _replace(match: "re.Match[str]") -> str:
        name = match.group(1)
        return f":{name}" if name in bound else match.group(0)

    return text(_PLACEHOLDER.sub(_replace, sql)), bound


def _sqlite_value(value: Any) -> Any:
    # sqlite3 has no adapter for Decimal and deprecated its date adapters
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat(sep=" ")
    if isinstance(value, date):
        return value.isoformat()
    return value


class TransactionExecutor:
    """
    Runs statements and statement batches against one engine.

    Args:
        engine: Async engine every connection is drawn from
        default_isolation_level: Level for transactions that request none

    Example:
        executor = TransactionExecutor(engine)
        committed = await executor.execute_transaction([
            Statement(LunchOrder.descriptor.insert, order.parameters(include_id=False)),
            user.add_credit_statement(-lunch.price),
        ])
        if committed.is_err():
            print(committed.error)
    """

    def __init__(
        self,
        engine: AsyncEngine,
        default_isolation_level: IsolationLevel = IsolationLevel.default(),
    ):
        self.engine = engine
        self.default_isolation_level = default_isolation_level

    @property
    def dialect(self) -> str:
        return self.engine.dialect.name

    def prepare(
        self,
        sql: str,
        params: Optional[Mapping[str, Any]] = None,
    ) -> Tuple[TextClause, Dict[str, Any]]:
        """Bind a statement and adapt its values for the engine's driver."""
        clause, bound = bind_named_parameters(sql, params)
        if self.dialect == "sqlite":
            bound = {key: _sqlite_value(value) for key, value in bound.items()}
        return clause, bound

    @asynccontextmanager
    async def _borrow(self, connection: Optional[AsyncConnection]) -> AsyncIterator[AsyncConnection]:
        """Use the caller's connection as-is, or open a short-lived transaction."""
        if connection is not None:
            yield connection
            return
        async with self.engine.begin() as conn:
            yield conn

    async def _execute(
        self,
        sql: str,
        params: Optional[Mapping[str, Any]],
        connection: Optional[AsyncConnection],
    ) -> CursorResult:
        async with self._borrow(connection) as conn:
            return await conn.execute(*self.prepare(sql, params))

    def _failed(self, sql: str, error: BaseException) -> Err:
        failure = StatementExecutionError("Statement execution failed", statement=sql, cause=error)
        logger.error(str(failure), extra=failure.to_dict())
        return Err(failure)

    # ------------------------------------------------------------------
    # Single statements
    # ------------------------------------------------------------------

    async def execute_non_query(
        self,
        sql: str,
        params: Optional[Mapping[str, Any]] = None,
        connection: Optional[AsyncConnection] = None,
    ) -> Result[int]:
        """
        Run one statement and report how many rows it affected.

        Args:
            sql: Statement text with @Name placeholders
            params: Values for the placeholders
            connection: Run inside this caller-managed transaction instead
                of a fresh one

        Returns:
            Ok(rows affected) or Err(StatementExecutionError)
        """
        try:
            result = await self._execute(sql, params, connection)
        except _STORE_ERRORS as e:
            return self._failed(sql, e)
        return Ok(max(result.rowcount, 0))

    async def execute_query(
        self,
        sql: str,
        params: Optional[Mapping[str, Any]] = None,
        connection: Optional[AsyncConnection] = None,
    ) -> Result[List[Dict[str, Any]]]:
        """
        Run one query and return its rows as column-keyed dicts.

        Returns:
            Ok(rows) or Err(StatementExecutionError)
        """
        try:
            async with self._borrow(connection) as conn:
                result = await conn.execute(*self.prepare(sql, params))
                rows = [dict(row) for row in result.mappings()]
        except _STORE_ERRORS as e:
            return self._failed(sql, e)
        return Ok(rows)

    async def execute_scalar(
        self,
        sql: str,
        params: Optional[Mapping[str, Any]] = None,
        as_type: Type[N] = int,
        connection: Optional[AsyncConnection] = None,
    ) -> Result[N]:
        """
        Run one query and convert the first column of its first row.

        Args:
            as_type: int or Decimal

        Returns:
            Ok(value), Err(EmptyResultError) when there is no row, the value
            is NULL or it does not convert, Err(StatementExecutionError)
            when the statement fails
        """
        try:
            async with self._borrow(connection) as conn:
                result = await conn.execute(*self.prepare(sql, params))
                raw = result.scalar()
        except _STORE_ERRORS as e:
            return self._failed(sql, e)

        if raw is None:
            failure = EmptyResultError("Statement yielded no value", statement=sql)
            logger.warning(str(failure), extra=failure.to_dict())
            return Err(failure)

        try:
            value = Decimal(str(raw)) if as_type is Decimal else as_type(raw)
        except (TypeError, ValueError, ArithmeticError) as e:
            failure = EmptyResultError(
                f"Value {raw!r} is not convertible to {as_type.__name__}",
                statement=sql,
                cause=e,
            )
            logger.warning(str(failure), extra=failure.to_dict())
            return Err(failure)
        return Ok(value)

    async def execute_insert(
        self,
        sql: str,
        params: Optional[Mapping[str, Any]] = None,
        connection: Optional[AsyncConnection] = None,
    ) -> Result[int]:
        """
        Run an INSERT and return the id the store generated for the new row.

        The id comes from the cursor of the same statement, so no second
        round trip can observe another session's insert.
        """
        try:
            result = await self._execute(sql, params, connection)
        except _STORE_ERRORS as e:
            return self._failed(sql, e)

        new_id = result.lastrowid
        if not new_id:
            failure = EmptyResultError("Insert did not report a generated id", statement=sql)
            logger.error(str(failure), extra=failure.to_dict())
            return Err(failure)
        return Ok(int(new_id))

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    async def _apply_isolation(self, conn: AsyncConnection, level: IsolationLevel) -> None:
        await conn.exec_driver_sql(level.statement(self.dialect))

    async def _reset_isolation(self, conn: AsyncConnection, level: IsolationLevel) -> None:
        statement = reset_statement(self.dialect)
        if statement is None or not level.allows_non_repeatable_reads:
            return
        try:
            await conn.exec_driver_sql(statement)
            await conn.commit()
        except _STORE_ERRORS:
            # The pool rolls back on return; a broken connection is discarded
            logger.warning("Could not reset isolation level", exc_info=True)

    @asynccontextmanager
    async def transaction(
        self,
        isolation_level: Optional[IsolationLevel] = None,
    ) -> AsyncIterator[AsyncConnection]:
        """
        Open a connection, apply an isolation level and hold a transaction.

        Commits when the block exits normally, rolls back when it raises,
        and always releases the connection.

        Args:
            isolation_level: Level for this transaction (default from
                the executor)

        Yields:
            Connection to pass as `connection=` to the execute_* methods

        Example:
            async with executor.transaction(IsolationLevel.READ_COMMITTED) as conn:
                first = await executor.execute_scalar(sql, params, Decimal, connection=conn)
        """
        level = IsolationLevel.parse(isolation_level or self.default_isolation_level)
        async with self.engine.connect() as conn:
            try:
                await self._apply_isolation(conn, level)
                yield conn
            except BaseException:
                await conn.rollback()
                raise
            else:
                await conn.commit()
            finally:
                await self._reset_isolation(conn, level)

    async def _run_batch(self, conn: AsyncConnection, statements: List[Statement]) -> int:
        """Run statements in order; raises TransactionAbortError on the first failure."""
        total = 0
        for index, statement in enumerate(statements):
            try:
                result = await conn.execute(*self.prepare(statement.sql, statement.params))
            except _STORE_ERRORS as e:
                cause = StatementExecutionError(
                    "Statement execution failed", statement=statement.sql, cause=e
                )
                raise TransactionAbortError(
                    f"Statement {index + 1} of {len(statements)} failed",
                    index=index,
                    cause=cause,
                    context={"statement": statement.sql},
                ) from e
            total += max(result.rowcount, 0)
        return total

    async def execute_transaction(
        self,
        batch: Batch,
        isolation_level: Optional[IsolationLevel] = None,
        connection: Optional[AsyncConnection] = None,
    ) -> Result[int]:
        """
        Run a batch of statements atomically.

        Without `connection`, a connection is opened, the isolation level is
        applied, every statement runs in order and the transaction commits;
        any failure rolls everything back.

        With `connection`, the statements run inside the caller's
        transaction and this method neither commits nor rolls back. A
        failure is reported and the caller decides what to do with its
        transaction.

        Args:
            batch: Statement objects or (sql, params) pairs
            isolation_level: Level for the new transaction
            connection: Caller-managed connection with an open transaction

        Returns:
            Ok(total rows affected) if committed, Err(TransactionAbortError)
            otherwise

        Raises:
            ValueError: If both isolation_level and connection are given
        """
        statements = [Statement(*item) for item in batch]

        if connection is not None:
            if isolation_level is not None:
                raise ValueError(
                    "isolation_level cannot be applied to a caller-managed transaction"
                )
            try:
                total = await self._run_batch(connection, statements)
            except TransactionAbortError as e:
                logger.error(str(e), extra=e.to_dict())
                return Err(e)
            return Ok(total)

        level = IsolationLevel.parse(isolation_level or self.default_isolation_level)
        try:
            async with self.transaction(level) as conn:
                total = await self._run_batch(conn, statements)
        except TransactionAbortError as e:
            logger.error(
                "Transaction rolled back: %s", e,
                extra={**e.to_dict(), "isolation_level": level.value},
            )
            return Err(e)
        except _STORE_ERRORS as e:
            failure = TransactionAbortError("Transaction could not be completed", cause=e)
            logger.error(
                str(failure),
                extra={**failure.to_dict(), "isolation_level": level.value},
            )
            return Err(failure)

        logger.debug(
            "Transaction committed",
            extra={"statements": len(statements), "rows": total, "isolation_level": level.value},
        )
        return Ok(total)
