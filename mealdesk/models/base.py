"""
Entity contract shared by every persisted record type.

An entity class carries an EntityDescriptor: its table, its column
mapping, the four canonical statements (select all, update by id, insert
without id, delete by id) and the row-to-entity function. The descriptor
is a plain value, so entity sets receive it at construction instead of
discovering it through the class.

Example:
    @describe(
        "MealType",
        ColumnMapping("Name", "name", as_str),
    )
    @dataclass(eq=False)
    class MealType(Entity):
        name: str
        id: int = UNSAVED_ID
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import (
    TYPE_CHECKING,
    Any,
    Callable,
    ClassVar,
    Dict,
    Mapping,
    Tuple,
    Type,
    TypeVar,
)

from mealdesk.core.errors import MalformedRowError
from mealdesk.core.logging_config import get_logger

if TYPE_CHECKING:
    from mealdesk.core.executor import TransactionExecutor

logger = get_logger(__name__)

UNSAVED_ID = -1

E = TypeVar("E", bound="Entity")


# ---------------------------------------------------------------------------
# Column converters. Each raises TypeError or ValueError on a mistyped value.
# ---------------------------------------------------------------------------

def as_int(value: Any) -> int:
    if isinstance(value, bool) or isinstance(value, float) and not value.is_integer():
        raise TypeError(f"expected integer, got {type(value).__name__}")
    if isinstance(value, Decimal) and value != value.to_integral_value():
        raise ValueError(f"expected integer, got {value}")
    return int(value)


def as_str(value: Any) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8")
    if not isinstance(value, str):
        raise TypeError(f"expected text, got {type(value).__name__}")
    return value


def as_decimal(value: Any) -> Decimal:
    if isinstance(value, bool):
        raise TypeError("expected number, got bool")
    return Decimal(str(value))


def as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    raise TypeError(f"expected boolean, got {value!r}")


def as_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return date.fromisoformat(value[:10])
    raise TypeError(f"expected date, got {type(value).__name__}")


def as_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, str):
        return datetime.fromisoformat(value)
    raise TypeError(f"expected datetime, got {type(value).__name__}")


@dataclass(frozen=True)
class ColumnMapping:
    """
    One column of an entity's table.

    Attributes:
        column: Column name in SQL text, parameters and rows
        attribute: Attribute name on the entity
        convert: Converter applied to retrieved values
        nullable: Whether NULL maps to None instead of a malformed row
    """

    column: str
    attribute: str
    convert: Callable[[Any], Any]
    nullable: bool = False


ID_COLUMN = ColumnMapping("ID", "id", as_int)


@dataclass(frozen=True)
class EntityDescriptor:
    """
    Statements and row mapping for one entity type.

    Attributes:
        name: Entity name used in logs and errors
        table: Table name
        columns: Column mappings excluding ID
        entity_type: Class instantiated by from_row()
    """

    name: str
    table: str
    columns: Tuple[ColumnMapping, ...]
    entity_type: Type["Entity"]

    @property
    def column_names(self) -> Tuple[str, ...]:
        return tuple(mapping.column for mapping in self.columns)

    @property
    def select_all(self) -> str:
        return f"SELECT ID, {', '.join(self.column_names)} FROM {self.table};"

    @property
    def update(self) -> str:
        assignments = ", ".join(f"{name} = @{name}" for name in self.column_names)
        return f"UPDATE {self.table} SET {assignments} WHERE ID = @ID;"

    @property
    def insert(self) -> str:
        names = ", ".join(self.column_names)
        placeholders = ", ".join(f"@{name}" for name in self.column_names)
        return f"INSERT INTO {self.table} ({names}) VALUES ({placeholders});"

    @property
    def delete(self) -> str:
        return f"DELETE FROM {self.table} WHERE ID = @ID;"

    def from_row(self, row: Mapping[str, Any]) -> "Entity":
        """
        Build an entity from one retrieved row.

        Raises:
            MalformedRowError: If a column is missing, NULL where not
                allowed, or not convertible to its declared type
        """
        values: Dict[str, Any] = {}
        for mapping in (ID_COLUMN,) + self.columns:
            if mapping.column not in row:
                raise MalformedRowError(self.name, mapping.column, "is missing")

            raw = row[mapping.column]
            if raw is None:
                if not mapping.nullable:
                    raise MalformedRowError(self.name, mapping.column, "is NULL")
                values[mapping.attribute] = None
                continue

            try:
                values[mapping.attribute] = mapping.convert(raw)
            except (TypeError, ValueError, ArithmeticError) as e:
                raise MalformedRowError(
                    self.name, mapping.column, f"holds unusable value {raw!r}", cause=e
                ) from e

        return self.entity_type(**values)


def describe(table: str, *columns: ColumnMapping) -> Callable[[Type[E]], Type[E]]:
    """Class decorator attaching an EntityDescriptor to an entity class."""

    def decorator(cls: Type[E]) -> Type[E]:
        cls.descriptor = EntityDescriptor(
            name=cls.__name__,
            table=table,
            columns=tuple(columns),
            entity_type=cls,
        )
        return cls

    return decorator


class Entity:
    """
    Base class for persisted records.

    Identity rules:
    - `id` is UNSAVED_ID until the store assigns one, then never changes
    - persisted entities are equal when they share type and id
    - unsaved entities are only equal to themselves
    """

    descriptor: ClassVar[EntityDescriptor]
    id: int

    def __setattr__(self, name: str, value: Any) -> None:
        if name == "id":
            current = self.__dict__.get("id", UNSAVED_ID)
            if current != UNSAVED_ID and value != current:
                raise AttributeError(
                    f"{type(self).__name__} id is already assigned ({current}) and cannot change"
                )
        super().__setattr__(name, value)

    def __eq__(self, other: object) -> bool:
        if type(other) is not type(self):
            return NotImplemented
        if self.id == UNSAVED_ID or other.id == UNSAVED_ID:
            return self is other
        return self.id == other.id

    def __hash__(self) -> int:
        return hash((type(self).__name__, self.id))

    @property
    def is_saved(self) -> bool:
        return self.id != UNSAVED_ID

    def parameters(self, include_id: bool = True) -> Dict[str, Any]:
        """Bound parameters for this entity's statements, keyed by @Column."""
        params = {
            f"@{mapping.column}": getattr(self, mapping.attribute)
            for mapping in self.descriptor.columns
        }
        if include_id:
            params["@ID"] = self.id
        return params

    def to_row(self) -> Dict[str, Any]:
        """This entity as the row the store would return for it."""
        row = {"ID": self.id}
        for mapping in self.descriptor.columns:
            row[mapping.column] = getattr(self, mapping.attribute)
        return row

    async def save(self, executor: "TransactionExecutor") -> int:
        """
        Insert or update this entity.

        Unsaved entities are inserted and receive the generated id;
        saved ones are updated in place.

        Returns:
            The entity's id, or UNSAVED_ID if the store rejected the write
            (the failure is logged)
        """
        descriptor = self.descriptor
        if self.id == UNSAVED_ID:
            result = await executor.execute_insert(
                descriptor.insert, self.parameters(include_id=False)
            )
            if result.is_err():
                logger.error(
                    "Failed to insert %s", descriptor.name,
                    extra={"entity": descriptor.name, **result.error.to_dict()},
                )
                return UNSAVED_ID
            self.id = result.unwrap()
            return self.id

        result = await executor.execute_non_query(descriptor.update, self.parameters())
        if result.is_err():
            logger.error(
                "Failed to update %s %s", descriptor.name, self.id,
                extra={"entity": descriptor.name, "entity_id": self.id, **result.error.to_dict()},
            )
            return UNSAVED_ID
        return self.id

    async def delete(self, executor: "TransactionExecutor") -> bool:
        """
        Delete this entity's row.

        Returns:
            True if exactly one row was removed
        """
        if self.id == UNSAVED_ID:
            return False
        result = await executor.execute_non_query(self.descriptor.delete, {"@ID": self.id})
        return result.unwrap_or(0) == 1
