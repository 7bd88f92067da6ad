"""Inventory use cases.

Each command loads the aggregate, applies one operation, saves it and only
then drains and publishes the recorded facts. Expected failures come back
as a CommandResult with an ErrorKind instead of an exception.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime

from pydantic import ValidationError

from stockrelay.bus.publisher import ReliablePublisher
from stockrelay.core.errors import (
    ConcurrencyError,
    DomainError,
    ErrorKind,
    InfrastructureError,
)
from stockrelay.core.event import DomainEvent
from stockrelay.core.identifiers import Identifier
from stockrelay.core.logging import get_logger
from stockrelay.inventory.repository import StockItemRepository
from stockrelay.inventory.stock_item import StockItem


@dataclass(frozen=True)
class CommandResult:
    """Outcome of an inventory command.

    Attributes:
        ok: True when the operation was applied and saved.
        error: Failure category when ok is False, or UNAVAILABLE when the
            change was saved but its facts could not be published.
        message: Human-readable failure description.
        events: Facts recorded by the operation.
        stock_item: The aggregate after the operation, when available.
    """

    ok: bool
    error: ErrorKind | None = None
    message: str = ""
    events: list[DomainEvent] = field(default_factory=list)
    stock_item: StockItem | None = None

    @classmethod
    def failure(cls, kind: ErrorKind, message: str) -> "CommandResult":
        return cls(ok=False, error=kind, message=message)


class StockItemService:
    """Application service for stock items.

    Args:
        repository: Where stock items are loaded from and saved to.
        publisher: Receives the drained facts after every successful save.
            Without one, facts are drained and returned but not sent.
    """

    def __init__(
        self,
        repository: StockItemRepository,
        publisher: ReliablePublisher | None = None,
    ) -> None:
        self._repository = repository
        self._publisher = publisher
        self._log = get_logger("stockrelay.inventory")

    async def create_stock_item(
        self, id: Identifier | str, name: str, initial_quantity: int
    ) -> CommandResult:
        try:
            item = StockItem.create(id, name, initial_quantity)
        except ValidationError as e:
            return self._rejected("create_stock_item", str(id), ErrorKind.VALIDATION, e)
        return await self._commit("create_stock_item", item)

    async def get_stock_item(self, id: Identifier | str) -> StockItem | None:
        try:
            item_id = id if isinstance(id, Identifier) else Identifier(id)
        except ValidationError:
            return None
        return await self._repository.find(item_id)

    async def add_stock(
        self, id: Identifier | str, quantity: int, reason: str | None = None
    ) -> CommandResult:
        return await self._execute("add_stock", id, lambda item: item.add_stock(quantity, reason))

    async def adjust_stock(
        self, id: Identifier | str, delta: int, reason: str | None = None
    ) -> CommandResult:
        return await self._execute("adjust_stock", id, lambda item: item.adjust_stock(delta, reason))

    async def reserve_stock(
        self,
        id: Identifier | str,
        quantity: int,
        reservation_id: str,
        expires_at: datetime | None = None,
        reason: str | None = None,
    ) -> CommandResult:
        return await self._execute(
            "reserve_stock",
            id,
            lambda item: item.reserve(quantity, reservation_id, expires_at=expires_at, reason=reason),
        )

    async def release_reservation(
        self, id: Identifier | str, reservation_id: str, reason: str | None = None
    ) -> CommandResult:
        return await self._execute(
            "release_reservation",
            id,
            lambda item: item.release_reservation(reservation_id, reason),
        )

    async def release_expired_reservations(
        self, id: Identifier | str, now: datetime | None = None
    ) -> CommandResult:
        return await self._execute(
            "release_expired_reservations",
            id,
            lambda item: item.release_expired_reservations(now),
        )

    async def _execute(
        self,
        command: str,
        id: Identifier | str,
        operation: Callable[[StockItem], object],
    ) -> CommandResult:
        try:
            item_id = id if isinstance(id, Identifier) else Identifier(id)
        except ValidationError as e:
            return self._rejected(command, str(id), ErrorKind.VALIDATION, e)

        item = await self._repository.find(item_id)
        if item is None:
            return self._rejected(
                command, item_id.value, ErrorKind.NOT_FOUND, f"Stock item not found: {item_id}"
            )

        try:
            operation(item)
        except DomainError as e:
            return self._rejected(command, item_id.value, e.kind, e)
        except ValidationError as e:
            return self._rejected(command, item_id.value, ErrorKind.VALIDATION, e)

        return await self._commit(command, item)

    async def _commit(self, command: str, item: StockItem) -> CommandResult:
        try:
            await self._repository.save(item)
        except ConcurrencyError as e:
            return self._rejected(command, item.id.value, ErrorKind.CONFLICT, e)

        events = item.drain_events()
        if self._publisher is not None and events:
            try:
                await self._publisher.publish(events)
            except InfrastructureError as e:
                self._log.error(
                    f"{command} saved but its events were not published: {e}",
                    extra={"aggregate_id": item.id.value, "error": str(e)},
                )
                return CommandResult(
                    ok=True,
                    error=ErrorKind.UNAVAILABLE,
                    message=str(e),
                    events=events,
                    stock_item=item,
                )

        self._log.info(
            f"{command} applied to stock item {item.id}",
            extra={"aggregate_id": item.id.value, "events": len(events)},
        )
        return CommandResult(ok=True, events=events, stock_item=item)

    def _rejected(
        self, command: str, aggregate_id: str, kind: ErrorKind, error: Exception | str
    ) -> CommandResult:
        self._log.warning(
            f"{command} rejected ({kind.value}): {error}",
            extra={"aggregate_id": aggregate_id, "error_kind": kind.value},
        )
        return CommandResult.failure(kind, str(error))
