"""
Integration tests for the non-repeatable read demonstration.

Both transactions run on separate pooled connections to one shared-cache
SQLite database, so the isolation level decides whether transaction A's
second read observes transaction B's committed update.
"""

from decimal import Decimal

import pytest

from mealdesk.core.errors import EmptyResultError
from mealdesk.core.isolation import IsolationLevel
from mealdesk.models.user import SELECT_CREDIT_QUERY
from mealdesk.services.anomaly import NonRepeatableReadDemo

STALL = 0.05


@pytest.fixture
async def admin(shared_executor, make_user):
    return await make_user(shared_executor, "admin", credit=Decimal("1000.00"))


async def stored_credit(executor, user) -> Decimal:
    result = await executor.execute_scalar(SELECT_CREDIT_QUERY, {"@ID": user.id}, as_type=Decimal)
    return result.unwrap()


class TestNonRepeatableRead:
    async def test_read_committed_observes_anomaly(self, shared_executor, admin):
        """Test that A sees B's committed value under READ COMMITTED."""
        # Arrange
        demo = NonRepeatableReadDemo(shared_executor, stall_seconds=STALL)

        # Act
        result = await demo.run(IsolationLevel.READ_COMMITTED)

        # Assert
        report = result.unwrap()
        assert report.user_id == admin.id
        assert report.first_read == Decimal("1000.00")
        assert report.second_read == Decimal("500.00")
        assert report.writer_committed is True
        assert report.anomaly_observed is True
        assert "observed" in report.summary()

    async def test_read_uncommitted_observes_anomaly(self, shared_executor, admin):
        demo = NonRepeatableReadDemo(shared_executor, stall_seconds=STALL)

        report = (await demo.run(IsolationLevel.READ_UNCOMMITTED)).unwrap()

        assert report.anomaly_observed is True

    @pytest.mark.parametrize("level", [IsolationLevel.REPEATABLE_READ, IsolationLevel.SERIALIZABLE])
    async def test_stronger_levels_prevent_anomaly(self, shared_executor, admin, level):
        """Test that A re-reads its first value under REPEATABLE READ and above."""
        # Arrange
        demo = NonRepeatableReadDemo(shared_executor, stall_seconds=STALL)

        # Act
        report = (await demo.run(level)).unwrap()

        # Assert
        assert report.first_read == Decimal("1000.00")
        assert report.second_read == Decimal("1000.00")
        assert report.anomaly_observed is False
        assert "not observed" in report.summary()
        # B cannot write the row A has read; it fails instead of committing
        assert report.writer_committed is False

    @pytest.mark.parametrize("level", list(IsolationLevel))
    async def test_cleanup_restores_original_credit(self, shared_executor, admin, level):
        """Test that the user's credit is back to its original value afterwards."""
        demo = NonRepeatableReadDemo(shared_executor, stall_seconds=STALL)

        report = (await demo.run(level)).unwrap()

        assert report.cleanup_succeeded is True
        assert await stored_credit(shared_executor, admin) == Decimal("1000.00")

    async def test_default_level_is_executor_default(self, shared_executor, admin):
        """Test that run() without a level uses the executor's default."""
        demo = NonRepeatableReadDemo(shared_executor, stall_seconds=STALL)

        report = (await demo.run()).unwrap()

        assert report.isolation_level is IsolationLevel.REPEATABLE_READ

    async def test_runs_are_repeatable(self, shared_executor, admin):
        """Test that consecutive runs start from the same credit."""
        demo = NonRepeatableReadDemo(shared_executor, stall_seconds=STALL)

        first = (await demo.run(IsolationLevel.READ_COMMITTED)).unwrap()
        second = (await demo.run(IsolationLevel.READ_COMMITTED)).unwrap()

        assert first.first_read == second.first_read == Decimal("1000.00")

    async def test_custom_user_and_value(self, shared_executor, make_user):
        """Test the configurable username and written value."""
        await make_user(shared_executor, "jdoe", credit=Decimal("20.00"))
        demo = NonRepeatableReadDemo(
            shared_executor, username="jdoe", new_value=Decimal("7.50"), stall_seconds=STALL
        )

        report = (await demo.run(IsolationLevel.READ_COMMITTED)).unwrap()

        assert report.first_read == Decimal("20.00")
        assert report.second_read == Decimal("7.50")

    async def test_missing_user(self, shared_executor):
        """Test that an unknown username returns Err without running anything."""
        demo = NonRepeatableReadDemo(shared_executor, username="nobody", stall_seconds=STALL)

        result = await demo.run(IsolationLevel.READ_COMMITTED)

        assert result.is_err()
        assert isinstance(result.error, EmptyResultError)
