"""
Tests for the error hierarchy and the Result envelope.
"""

import pytest

from mealdesk.core.errors import (
    ConfigurationError,
    DataAccessError,
    EmptyResultError,
    ErrorKind,
    MalformedRowError,
    StatementExecutionError,
    TransactionAbortError,
)
from mealdesk.core.result import Err, Ok


class TestErrors:
    def test_kinds(self):
        """Test that each error class carries its kind."""
        assert MalformedRowError("User", "Credit", "is NULL").kind is ErrorKind.MALFORMED_ROW
        assert StatementExecutionError("failed").kind is ErrorKind.STATEMENT
        assert EmptyResultError("empty").kind is ErrorKind.STATEMENT
        assert TransactionAbortError("aborted").kind is ErrorKind.TRANSACTION
        assert ConfigurationError("bad").kind is ErrorKind.CONFIGURATION

    def test_to_dict(self):
        """Test structured logging fields."""
        cause = RuntimeError("disk full")
        error = TransactionAbortError("Statement 2 of 3 failed", index=1, cause=cause)

        data = error.to_dict()

        assert data == {
            "error_kind": "TRANSACTION",
            "error_type": "TransactionAbortError",
            "error_message": "Statement 2 of 3 failed",
            "cause": "RuntimeError: disk full",
            "statement_index": 1,
        }
        assert error.__cause__ is cause

    def test_str_includes_cause(self):
        error = StatementExecutionError("Statement execution failed", cause=ValueError("boom"))

        assert str(error) == "Statement execution failed (caused by ValueError: boom)"

    def test_statement_in_context(self):
        error = StatementExecutionError("failed", statement="SELECT 1;")

        assert error.to_dict()["statement"] == "SELECT 1;"

    def test_malformed_row_message(self):
        error = MalformedRowError("Lunch", "Price", "is missing")

        assert str(error) == "Cannot load Lunch from row: column 'Price' is missing"
        assert error.to_dict()["column"] == "Price"
        assert isinstance(error, DataAccessError)


class TestResult:
    def test_ok(self):
        result = Ok(3)

        assert result.is_ok() and not result.is_err()
        assert result.unwrap() == 3
        assert result.unwrap_or(0) == 3
        assert result.map(lambda value: value * 2) == Ok(6)

    def test_err(self):
        """Test that Err never yields a value and re-raises its error."""
        error = StatementExecutionError("failed")
        result = Err(error)

        assert result.is_err() and not result.is_ok()
        assert result.unwrap_or(0) == 0
        assert result.map(lambda value: value * 2).error is error
        with pytest.raises(StatementExecutionError):
            result.unwrap()
