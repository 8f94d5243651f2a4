"""
Process-lifetime entity set.

The cache reads its table once and then serves reads from memory. Writers
keep it current through add_or_update() and remove() after saving or
deleting the entity itself.
"""

import asyncio
from typing import Dict, List, Optional, Set

from mealdesk.core.executor import TransactionExecutor
from mealdesk.core.logging_config import get_logger
from mealdesk.models.base import EntityDescriptor
from mealdesk.repositories.base import EntitySet, T

logger = get_logger(__name__)


class EntityCache(EntitySet[T]):
    """
    Entity set materialized in memory on first read.

    States: Empty until the first successful get_all(), then Populated
    until clear(). Removing the last entity does not make the cache Empty
    again, so an empty Populated cache never re-queries storage.

    The id index and the ordered list are only updated together by
    add_or_update() and remove(). Neither awaits between its check and
    its update. Changes made while the first load is in flight are merged
    into the loaded rows rather than overwritten by them. A caller doing
    its own check-then-add across awaits should hold `lock` around the
    whole sequence.

    Example:
        meals = registry.cache(Meal)
        if await meal.save(executor) != UNSAVED_ID:
            meals.add_or_update(meal)
    """

    def __init__(self, descriptor: EntityDescriptor, executor: TransactionExecutor):
        super().__init__(descriptor, executor)
        self._index: Dict[int, T] = {}
        self._items: List[T] = []
        self._populated = False
        self._removed_before_populated: Set[int] = set()
        self._populate_lock = asyncio.Lock()
        self.lock = asyncio.Lock()

    @property
    def is_populated(self) -> bool:
        return self._populated

    def __len__(self) -> int:
        return len(self._items)

    async def get_all(self) -> List[T]:
        """
        Every cached entity, loading the table on the first call.

        Concurrent first callers share a single query. If loading fails the
        error propagates and the cache stays Empty.

        Returns:
            A copy of the ordered list
        """
        if not self._populated:
            async with self._populate_lock:
                if not self._populated:
                    await self._populate()
        return list(self._items)

    async def _populate(self) -> None:
        loaded = await self._load()
        # Entities added or removed during the load win over the rows read
        for item in loaded:
            if item.id not in self._removed_before_populated:
                self._index.setdefault(item.id, item)
        loaded_ids = {item.id for item in loaded}
        added = [entry for entry in self._items if entry.id not in loaded_ids]
        self._items = [self._index[item.id] for item in loaded if item.id in self._index] + added
        self._removed_before_populated.clear()
        self._populated = True
        logger.debug("Cache populated", extra={"entity": self.name, "count": len(self._items)})

    def get(self, entity_id: int) -> Optional[T]:
        """Cached entity with `entity_id`, without touching storage."""
        return self._index.get(entity_id)

    def add_or_update(self, item: T) -> bool:
        """
        Add a saved entity, or announce an update of a cached one.

        Returns:
            True if the entity was added, False if its id was already cached

        Raises:
            ValueError: If the entity has not been saved
        """
        if not item.is_saved:
            raise ValueError(f"Cannot cache unsaved {self.name}")
        self._removed_before_populated.discard(item.id)

        if item.id in self._index:
            self._notify_saved(item, is_new=False)
            return False

        self._index[item.id] = item
        self._items.append(item)
        self._notify_saved(item, is_new=True)
        return True

    def remove(self, item: T) -> bool:
        """
        Drop an entity by id.

        Returns:
            True if an entity with that id was cached and removed
        """
        if not self._populated:
            self._removed_before_populated.add(item.id)
        cached = self._index.pop(item.id, None)
        if cached is None:
            return False
        self._items = [entry for entry in self._items if entry.id != item.id]
        self._notify_deleted(cached)
        return True

    def clear(self) -> None:
        """Forget every entity and return to the Empty state."""
        self._index.clear()
        self._items.clear()
        self._removed_before_populated.clear()
        self._populated = False
