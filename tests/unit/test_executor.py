"""
Tests for the transaction executor.

Tests cover:
- Named parameter binding
- Single-statement operations and their Err results
- Atomic batches, caller-managed transactions and isolation handling
- Database health checks
"""

from decimal import Decimal
from urllib.parse import unquote

import pytest

from mealdesk.core.database import DatabaseHealthCheck, get_async_engine
from mealdesk.core.errors import (
    EmptyResultError,
    ErrorKind,
    StatementExecutionError,
    TransactionAbortError,
)
from mealdesk.core.executor import Statement, TransactionExecutor, bind_named_parameters
from mealdesk.core.isolation import IsolationLevel

INSERT_MEAL_TYPE = "INSERT INTO MealType (Name) VALUES (@Name);"
COUNT_MEAL_TYPES = "SELECT COUNT(*) FROM MealType;"


async def count_meal_types(executor) -> int:
    return (await executor.execute_scalar(COUNT_MEAL_TYPES)).unwrap()


class TestBindNamedParameters:
    """Translation of @Name placeholders."""

    def test_placeholders_become_bind_parameters(self):
        """Test that @Name becomes :Name and keys lose their @."""
        clause, bound = bind_named_parameters(
            "UPDATE User SET Credit = @Credit WHERE ID = @ID;",
            {"@Credit": Decimal("500.00"), "ID": 1},
        )

        assert str(clause) == "UPDATE User SET Credit = :Credit WHERE ID = :ID;"
        assert bound == {"Credit": Decimal("500.00"), "ID": 1}

    def test_unmatched_placeholder_is_left_alone(self):
        """Test that user variables without a parameter pass through."""
        clause, bound = bind_named_parameters("SELECT @total + @Delta;", {"Delta": 2})

        assert str(clause) == "SELECT @total + :Delta;"
        assert bound == {"Delta": 2}

    def test_no_parameters(self):
        """Test that a statement without parameters binds nothing."""
        clause, bound = bind_named_parameters("SELECT 1;")

        assert str(clause) == "SELECT 1;"
        assert bound == {}


class TestExecuteNonQuery:
    """execute_non_query()"""

    async def test_returns_rows_affected(self, executor):
        """Test that the affected row count is reported."""
        # Arrange
        for name in ("Soup", "Dessert"):
            await executor.execute_non_query(INSERT_MEAL_TYPE, {"@Name": name})

        # Act
        result = await executor.execute_non_query("UPDATE MealType SET Name = Name || '!';")

        # Assert
        assert result.is_ok()
        assert result.unwrap() == 2

    async def test_failure_is_err_not_zero(self, executor):
        """Test that a failing statement is distinguishable from zero rows."""
        result = await executor.execute_non_query("UPDATE NoSuchTable SET X = 1;")

        assert result.is_err()
        assert isinstance(result.error, StatementExecutionError)
        assert result.error.kind is ErrorKind.STATEMENT
        assert result.error.statement == "UPDATE NoSuchTable SET X = 1;"
        assert result.unwrap_or(0) == 0

    async def test_failure_is_logged(self, executor, caplog):
        """Test that the executor logs what it returns as Err."""
        await executor.execute_non_query("DELETE FROM NoSuchTable;")

        assert any(
            record.levelname == "ERROR" and getattr(record, "statement", None) == "DELETE FROM NoSuchTable;"
            for record in caplog.records
        )


class TestExecuteQuery:
    """execute_query()"""

    async def test_rows_are_column_keyed(self, executor):
        """Test that each row maps column names to values."""
        await executor.execute_non_query(INSERT_MEAL_TYPE, {"@Name": "Soup"})

        result = await executor.execute_query("SELECT ID, Name FROM MealType WHERE Name = @Name;", {"@Name": "Soup"})

        assert result.unwrap() == [{"ID": 1, "Name": "Soup"}]

    async def test_empty_result(self, executor):
        """Test that no matching rows is an empty list, not an error."""
        result = await executor.execute_query("SELECT ID FROM MealType;")

        assert result.is_ok()
        assert result.unwrap() == []

    async def test_failure(self, executor):
        """Test that a malformed query returns Err and unwrap() raises it."""
        result = await executor.execute_query("SELEC nonsense;")

        assert result.is_err()
        with pytest.raises(StatementExecutionError):
            result.unwrap()


class TestExecuteScalar:
    """execute_scalar()"""

    async def test_integer(self, executor):
        """Test reading an integer scalar."""
        await executor.execute_non_query(INSERT_MEAL_TYPE, {"@Name": "Soup"})

        assert (await executor.execute_scalar(COUNT_MEAL_TYPES)).unwrap() == 1

    async def test_decimal(self, executor, make_user):
        """Test reading a decimal scalar, exact to the cent."""
        user = await make_user(executor, credit=Decimal("12.30"))

        result = await executor.execute_scalar(
            "SELECT Credit FROM User WHERE ID = @ID;", {"@ID": user.id}, as_type=Decimal
        )

        assert result.unwrap() == Decimal("12.30")

    async def test_no_row_is_empty_result(self, executor):
        """Test that a missing row is reported, not converted to zero."""
        result = await executor.execute_scalar("SELECT ID FROM MealType WHERE Name = 'none';")

        assert result.is_err()
        assert isinstance(result.error, EmptyResultError)
        assert result.unwrap_or(0) == 0

    async def test_unconvertible_value(self, executor):
        """Test that a value that is not a number is reported."""
        result = await executor.execute_scalar("SELECT 'abc';")

        assert result.is_err()
        assert isinstance(result.error, EmptyResultError)
        assert result.error.cause is not None

    async def test_statement_failure(self, executor):
        """Test that a failing statement is a plain StatementExecutionError."""
        result = await executor.execute_scalar("SELECT Missing FROM MealType;")

        assert result.is_err()
        assert not isinstance(result.error, EmptyResultError)


class TestExecuteInsert:
    """execute_insert()"""

    async def test_returns_generated_ids(self, executor):
        """Test that each insert reports its own generated id."""
        first = await executor.execute_insert(INSERT_MEAL_TYPE, {"@Name": "Soup"})
        second = await executor.execute_insert(INSERT_MEAL_TYPE, {"@Name": "Dessert"})

        assert first.unwrap() == 1
        assert second.unwrap() == 2

    async def test_constraint_violation(self, executor):
        """Test that a rejected insert returns Err."""
        await executor.execute_insert(INSERT_MEAL_TYPE, {"@Name": "Soup"})

        result = await executor.execute_insert(INSERT_MEAL_TYPE, {"@Name": "Soup"})

        assert result.is_err()
        assert await count_meal_types(executor) == 1


class TestExecuteTransaction:
    """execute_transaction()"""

    async def test_commits_batch(self, executor):
        """Test that every statement of a batch is applied."""
        # Act
        result = await executor.execute_transaction([
            Statement(INSERT_MEAL_TYPE, {"@Name": "Soup"}),
            (INSERT_MEAL_TYPE, {"@Name": "MainCourse"}),
            Statement(INSERT_MEAL_TYPE, {"@Name": "Dessert"}),
        ])

        # Assert
        assert result.unwrap() == 3
        assert await count_meal_types(executor) == 3

    async def test_failed_statement_rolls_back_everything(self, executor):
        """Test that nothing of a batch is visible when its last statement fails."""
        # Act
        result = await executor.execute_transaction([
            Statement(INSERT_MEAL_TYPE, {"@Name": "Soup"}),
            Statement(INSERT_MEAL_TYPE, {"@Name": "MainCourse"}),
            Statement("INSERT INTO NoSuchTable (Name) VALUES (@Name);", {"@Name": "Dessert"}),
        ])

        # Assert
        assert result.is_err()
        assert isinstance(result.error, TransactionAbortError)
        assert result.error.index == 2
        assert isinstance(result.error.cause, StatementExecutionError)
        assert await count_meal_types(executor) == 0

    async def test_constraint_violation_rolls_back(self, executor):
        """Test that a duplicate key inside the batch undoes earlier statements."""
        result = await executor.execute_transaction([
            Statement(INSERT_MEAL_TYPE, {"@Name": "Soup"}),
            Statement(INSERT_MEAL_TYPE, {"@Name": "Soup"}),
        ])

        assert result.is_err()
        assert result.error.index == 1
        assert await count_meal_types(executor) == 0

    async def test_empty_batch(self, executor):
        """Test that an empty batch commits and affects nothing."""
        result = await executor.execute_transaction([])

        assert result.unwrap() == 0

    @pytest.mark.parametrize("level", list(IsolationLevel))
    async def test_every_isolation_level(self, executor, level):
        """Test that a batch commits at each isolation level."""
        result = await executor.execute_transaction(
            [Statement(INSERT_MEAL_TYPE, {"@Name": "Soup"})], isolation_level=level
        )

        assert result.unwrap() == 1

    async def test_caller_managed_transaction_commits_with_caller(self, executor):
        """Test that batches inside a caller transaction commit together."""
        # Act
        async with executor.transaction() as conn:
            first = await executor.execute_transaction(
                [Statement(INSERT_MEAL_TYPE, {"@Name": "Soup"})], connection=conn
            )
            second = await executor.execute_insert(
                INSERT_MEAL_TYPE, {"@Name": "Dessert"}, connection=conn
            )

        # Assert
        assert first.unwrap() == 1
        assert second.is_ok()
        assert await count_meal_types(executor) == 2

    async def test_caller_managed_transaction_failure_is_caller_decision(self, executor):
        """Test that a failed batch leaves the caller's transaction open."""
        # Arrange
        async with executor.transaction() as conn:
            await executor.execute_non_query(INSERT_MEAL_TYPE, {"@Name": "Soup"}, connection=conn)

            # Act
            failed = await executor.execute_transaction(
                [Statement("DELETE FROM NoSuchTable;")], connection=conn
            )

        # Assert: the caller did not roll back, so the earlier insert committed
        assert failed.is_err()
        assert await count_meal_types(executor) == 1

    async def test_caller_transaction_rolls_back_on_exception(self, executor):
        """Test that raising inside transaction() discards its statements."""
        with pytest.raises(RuntimeError):
            async with executor.transaction() as conn:
                await executor.execute_non_query(INSERT_MEAL_TYPE, {"@Name": "Soup"}, connection=conn)
                raise RuntimeError("abort")

        assert await count_meal_types(executor) == 0

    async def test_isolation_level_with_connection_is_rejected(self, executor):
        """Test that an isolation level cannot be applied to a borrowed transaction."""
        async with executor.transaction() as conn:
            with pytest.raises(ValueError):
                await executor.execute_transaction(
                    [Statement(INSERT_MEAL_TYPE, {"@Name": "Soup"})],
                    isolation_level=IsolationLevel.SERIALIZABLE,
                    connection=conn,
                )

    def test_default_isolation_level(self, engine):
        assert TransactionExecutor(engine).default_isolation_level is IsolationLevel.default()

    async def test_isolation_flag_is_reset(self, executor):
        """Test that a READ COMMITTED transaction does not leak its flag."""
        async with executor.transaction(IsolationLevel.READ_COMMITTED) as conn:
            inside = await executor.execute_scalar("PRAGMA read_uncommitted;", connection=conn)

        after = await executor.execute_scalar("PRAGMA read_uncommitted;")

        assert inside.unwrap() == 1
        assert after.unwrap() == 0


class TestDatabaseHealthCheck:
    """DatabaseHealthCheck"""

    async def test_check_connection(self, engine):
        """Test that a reachable database reports healthy."""
        assert await DatabaseHealthCheck(engine).check_connection() is True

    async def test_unreachable_database(self, tmp_path):
        """Test that a store that cannot be opened reports unhealthy."""
        engine = get_async_engine(f"sqlite+aiosqlite:///{tmp_path}")
        try:
            assert await DatabaseHealthCheck(engine).check_connection() is False
        finally:
            await engine.dispose()

    def test_database_info(self, engine):
        """Test database metadata reporting."""
        info = DatabaseHealthCheck(engine).get_database_info()

        assert info["dialect"] == "sqlite"
        assert info["async"] is True
        assert info["database"] == ":memory:"
        assert unquote(info["url"]).endswith(":memory:")
