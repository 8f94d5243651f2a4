"""
Typed errors for the data-access layer.

Every failure the executor or an entity set can report is a DataAccessError
subclass carrying an ErrorKind, so callers can route on the kind without
matching on exception classes:

- MalformedRowError: a row cannot be mapped to an entity. Raised, aborts
  the calling operation.
- StatementExecutionError: the driver or store rejected a statement.
  Returned inside Err by the executor and logged.
- TransactionAbortError: a statement inside a batch failed and the batch
  was rolled back.
- ConfigurationError: settings failed validation. Fatal for the CLI.

RequestRejected sits outside the hierarchy: services raise it for console
requests they refuse, with the message to show.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    """Classification of data-access failures."""

    MALFORMED_ROW = "MALFORMED_ROW"
    STATEMENT = "STATEMENT"
    TRANSACTION = "TRANSACTION"
    CONFIGURATION = "CONFIGURATION"


class DataAccessError(Exception):
    """
    Base class for all mealdesk errors.

    Args:
        message: Human-readable description
        cause: Underlying exception, if any
        context: Extra fields included in log records
    """

    kind: ErrorKind = ErrorKind.STATEMENT

    def __init__(
        self,
        message: str,
        *,
        cause: Optional[BaseException] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.cause = cause
        self.context = context or {}
        if cause is not None:
            self.__cause__ = cause

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for structured logging."""
        data: Dict[str, Any] = {
            "error_kind": self.kind.value,
            "error_type": type(self).__name__,
            "error_message": self.message,
        }
        if self.cause is not None:
            data["cause"] = f"{type(self.cause).__name__}: {self.cause}"
        data.update(self.context)
        return data

    def __str__(self) -> str:
        if self.cause is not None:
            return f"{self.message} (caused by {type(self.cause).__name__}: {self.cause})"
        return self.message


class MalformedRowError(DataAccessError):
    """A retrieved row is missing a column or holds a value of the wrong type."""

    kind = ErrorKind.MALFORMED_ROW

    def __init__(self, entity: str, column: str, reason: str, **kwargs: Any):
        super().__init__(
            f"Cannot load {entity} from row: column {column!r} {reason}",
            context={"entity": entity, "column": column},
            **kwargs,
        )
        self.entity = entity
        self.column = column


class StatementExecutionError(DataAccessError):
    """The driver or store failed while executing a statement."""

    kind = ErrorKind.STATEMENT

    def __init__(self, message: str, *, statement: Optional[str] = None, **kwargs: Any):
        context = kwargs.pop("context", None) or {}
        if statement is not None:
            context["statement"] = statement
        super().__init__(message, context=context, **kwargs)
        self.statement = statement


class EmptyResultError(StatementExecutionError):
    """A scalar statement produced no row, NULL, or an unconvertible value."""


class TransactionAbortError(DataAccessError):
    """A statement inside a batch failed; the batch did not commit."""

    kind = ErrorKind.TRANSACTION

    def __init__(self, message: str, *, index: Optional[int] = None, **kwargs: Any):
        context = kwargs.pop("context", None) or {}
        if index is not None:
            context["statement_index"] = index
        super().__init__(message, context=context, **kwargs)
        self.index = index


class ConfigurationError(DataAccessError):
    """Configuration could not be loaded or failed validation."""

    kind = ErrorKind.CONFIGURATION


class RequestRejected(Exception):
    """
    A console command was refused.

    The message is shown to the user as-is.
    """
