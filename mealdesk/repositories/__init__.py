"""
Entity sets: data access abstractions over the transaction executor.

Provides a stateless retriever and a populate-once cache per entity type,
both obtained from the EntitySetRegistry.
"""

from mealdesk.repositories.base import EntityEvent, EntityEventType, EntitySet
from mealdesk.repositories.cache import EntityCache
from mealdesk.repositories.registry import EntitySetRegistry
from mealdesk.repositories.retriever import EntityRetriever

__all__ = [
    "EntityEvent",
    "EntityEventType",
    "EntitySet",
    "EntityCache",
    "EntityRetriever",
    "EntitySetRegistry",
]
