"""Inventory-side fact subscribers."""

from stockrelay.core.event import DomainEvent
from stockrelay.core.logging import get_logger
from stockrelay.core.subscriber import Subscriber
from stockrelay.inventory.events import StockItemCreated


class StockItemCreatedLogger(Subscriber):
    """Logs every stock item that enters the inventory."""

    subscribed_to = [StockItemCreated.EVENT_NAME]

    def __init__(self, name: str | None = None) -> None:
        super().__init__(name)
        self._log = get_logger("stockrelay.inventory")
        self.seen: list[StockItemCreated] = []

    def handle(self, event: DomainEvent) -> None:
        if not isinstance(event, StockItemCreated):
            raise TypeError(f"Expected StockItemCreated, got {type(event).__name__}")
        self.seen.append(event)
        self._log.info(
            f"Stock item created: {event.name} ({event.quantity} units)",
            extra={
                "event_id": event.event_id.value,
                "event_type": event.event_name,
                "aggregate_id": event.aggregate_id.value,
                "subscriber": self.name,
            },
        )
