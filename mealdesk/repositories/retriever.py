"""
Always-fresh entity set.
"""

from typing import List

from mealdesk.repositories.base import EntitySet, T


class EntityRetriever(EntitySet[T]):
    """
    Entity set that re-reads its table on every call.

    Holds no rows between calls, so results are never stale and never
    amortized. Writes go through the entities themselves (`save`,
    `delete`); `add_or_update` and `remove` only announce them.

    Example:
        users = registry.retriever(User)
        admin = await users.get_first_by(lambda u: u.username == "admin")
    """

    async def get_all(self) -> List[T]:
        """Fresh list of every entity, one query per call."""
        return await self._load()

    def add_or_update(self, item: T, is_new: bool = False) -> None:
        """Announce that `item` was saved. Does not write to storage."""
        self._notify_saved(item, is_new)

    def remove(self, item: T) -> None:
        """Announce that `item` was deleted. Does not write to storage."""
        self._notify_deleted(item)
