"""
Result envelope returned by the transaction executor.

Operations that can fail at the store boundary return Ok(value) or
Err(error) instead of raising or masking the failure as a zero value.
Callers that only want the old neutral behaviour use unwrap_or():

    rows = (await executor.execute_non_query(sql, params)).unwrap_or(0)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Generic, TypeVar, Union

from mealdesk.core.errors import DataAccessError

T = TypeVar("T")
U = TypeVar("U")


@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    """Successful result holding a value."""

    value: T

    def is_ok(self) -> bool:
        return True

    def is_err(self) -> bool:
        return False

    def unwrap(self) -> T:
        return self.value

    def unwrap_or(self, default: T) -> T:
        return self.value

    def map(self, fn: Callable[[T], U]) -> "Ok[U]":
        return Ok(fn(self.value))


@dataclass(frozen=True, slots=True)
class Err(Generic[T]):
    """Failed result holding the error that caused it."""

    error: DataAccessError

    def is_ok(self) -> bool:
        return False

    def is_err(self) -> bool:
        return True

    def unwrap(self) -> T:
        """
        Raise the wrapped error.

        Raises:
            DataAccessError: Always
        """
        raise self.error

    def unwrap_or(self, default: T) -> T:
        return default

    def map(self, fn: Callable[[T], U]) -> "Err[U]":
        return Err(self.error)


Result = Union[Ok[T], Err[T]]
