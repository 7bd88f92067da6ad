"""Stock item persistence."""

from typing import Any, Protocol

from stockrelay.core.errors import ConcurrencyError
from stockrelay.core.identifiers import Identifier
from stockrelay.inventory.stock_item import StockItem


class StockItemRepository(Protocol):
    """Storage for stock items.

    save() must reject a write when the stored version is not the one the
    aggregate was loaded at (optimistic concurrency).
    """

    async def find(self, id: Identifier) -> StockItem | None: ...

    async def find_all(self) -> list[StockItem]: ...

    async def save(self, item: StockItem) -> None: ...

    async def delete(self, id: Identifier) -> None: ...


class InMemoryStockItemRepository:
    """Keeps snapshots in a dict; each find returns a fresh aggregate.

    Intended for tests and the demo application.
    """

    def __init__(self) -> None:
        self._snapshots: dict[str, dict[str, Any]] = {}

    async def find(self, id: Identifier) -> StockItem | None:
        snapshot = self._snapshots.get(id.value)
        if snapshot is None:
            return None
        return StockItem.from_primitives(snapshot)

    async def find_all(self) -> list[StockItem]:
        return [StockItem.from_primitives(s) for s in self._snapshots.values()]

    async def save(self, item: StockItem) -> None:
        """Store the aggregate's current state.

        Raises:
            ConcurrencyError: If the stored version moved since the item was
                loaded, or a new item reuses an existing id.
        """
        stored = self._snapshots.get(item.id.value)
        stored_version = stored["version"] if stored is not None else None
        # A freshly created item was never stored; its pending facts start at version 1
        expected = None if item.loaded_version == 1 and stored is None else item.loaded_version
        if stored_version != expected:
            raise ConcurrencyError(item.id.value, expected, stored_version)
        self._snapshots[item.id.value] = item.to_primitives()

    async def delete(self, id: Identifier) -> None:
        self._snapshots.pop(id.value, None)

    def __len__(self) -> int:
        return len(self._snapshots)
