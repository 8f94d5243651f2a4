"""
Per-type entity set registry.

The registry is created by the composition root and handed to whoever
needs entity sets. It creates one retriever and one cache per entity type
on first request and returns the same instance afterwards.
"""

from typing import Dict, Type, TypeVar

from mealdesk.core.executor import TransactionExecutor
from mealdesk.models.base import Entity
from mealdesk.repositories.cache import EntityCache
from mealdesk.repositories.retriever import EntityRetriever

E = TypeVar("E", bound=Entity)


class EntitySetRegistry:
    """
    Type-keyed map of entity sets sharing one executor.

    Example:
        registry = EntitySetRegistry(executor)
        lunches = await registry.cache(Lunch).get_all()
    """

    def __init__(self, executor: TransactionExecutor):
        self.executor = executor
        self._retrievers: Dict[type, EntityRetriever] = {}
        self._caches: Dict[type, EntityCache] = {}

    def retriever(self, entity_type: Type[E]) -> EntityRetriever[E]:
        if entity_type not in self._retrievers:
            self._retrievers[entity_type] = EntityRetriever(entity_type.descriptor, self.executor)
        return self._retrievers[entity_type]

    def cache(self, entity_type: Type[E]) -> EntityCache[E]:
        if entity_type not in self._caches:
            self._caches[entity_type] = EntityCache(entity_type.descriptor, self.executor)
        return self._caches[entity_type]

    def clear_caches(self) -> None:
        """Return every cache to its Empty state."""
        for cache in self._caches.values():
            cache.clear()
