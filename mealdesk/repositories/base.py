"""
Shared behaviour of entity sets: row loading, in-memory queries and
change notifications.

Notifications are delivered synchronously, in subscription order, before
the triggering call returns. They reach subscribers in this process only.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Generic, List, Optional, TypeVar

from mealdesk.core.executor import TransactionExecutor
from mealdesk.core.logging_config import get_logger
from mealdesk.models.base import Entity, EntityDescriptor

logger = get_logger(__name__)

T = TypeVar("T", bound=Entity)


class EntityEventType(str, Enum):
    """Kinds of change an entity set announces."""
    SAVED = "saved"
    DELETED = "deleted"


@dataclass
class EntityEvent(Generic[T]):
    """
    Change notification raised by an entity set.

    Attributes:
        type: SAVED for add/update, DELETED for removal
        entity_name: Name of the entity type
        entity: The affected entity
        is_new: For SAVED events, True when the entity was added rather
            than updated
        timestamp: When the event was raised (UTC)
    """
    type: EntityEventType
    entity_name: str
    entity: T
    is_new: bool = False
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


Subscriber = Callable[[EntityEvent[T]], None]


class EntitySet(ABC, Generic[T]):
    """
    Common base of EntityRetriever and EntityCache.

    Args:
        descriptor: Statements and row mapping of the entity type
        executor: Executor used to read rows
    """

    def __init__(self, descriptor: EntityDescriptor, executor: TransactionExecutor):
        self.descriptor = descriptor
        self.executor = executor
        self._subscribers: List[Subscriber] = []

    @property
    def name(self) -> str:
        return self.descriptor.name

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def subscribe(self, callback: Subscriber) -> None:
        """Register a callback for save and delete events."""
        self._subscribers.append(callback)

    def unsubscribe(self, callback: Subscriber) -> None:
        """Remove a callback; unknown callbacks are ignored."""
        try:
            self._subscribers.remove(callback)
        except ValueError:
            pass

    def _publish(self, event: EntityEvent[T]) -> None:
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception:
                logger.exception(
                    "Entity event subscriber failed",
                    extra={"entity": self.name, "event_type": event.type.value},
                )

    def _notify_saved(self, item: T, is_new: bool) -> None:
        self._publish(EntityEvent(EntityEventType.SAVED, self.name, item, is_new=is_new))

    def _notify_deleted(self, item: T) -> None:
        self._publish(EntityEvent(EntityEventType.DELETED, self.name, item))

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def _load(self) -> List[T]:
        """
        Read and map every row of the entity's table.

        Raises:
            StatementExecutionError: If the query fails
            MalformedRowError: If a row cannot be mapped
        """
        rows = (await self.executor.execute_query(self.descriptor.select_all)).unwrap()
        return [self.descriptor.from_row(row) for row in rows]

    @abstractmethod
    async def get_all(self) -> List[T]:
        """Every entity of the set, in storage order."""
        pass

    async def get_all_by(self, predicate: Callable[[T], bool]) -> List[T]:
        """All entities matching `predicate`."""
        return [item for item in await self.get_all() if predicate(item)]

    async def get_first_by(self, predicate: Callable[[T], bool]) -> Optional[T]:
        """First entity matching `predicate`, or None."""
        for item in await self.get_all():
            if predicate(item):
                return item
        return None
