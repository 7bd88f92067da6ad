"""Facts recorded by the StockItem aggregate."""

from enum import Enum

from pydantic import model_validator

from stockrelay.core.errors import InconsistentAdjustmentError
from stockrelay.core.event import DomainEvent
from stockrelay.core.identifiers import Identifier, Quantity


class AdjustmentType(str, Enum):
    ADDITION = "ADDITION"
    REDUCTION = "REDUCTION"
    CORRECTION = "CORRECTION"


class StockItemCreated(DomainEvent):
    """A stock item entered the inventory with its initial quantity."""

    EVENT_NAME = "inventory.stock_item.created"

    name: str
    quantity: Quantity


class StockItemReserved(DomainEvent):
    """Stock was reserved, or an existing reservation was resized.

    reserved_quantity is the reservation's quantity after the operation,
    not the change.
    """

    EVENT_NAME = "inventory.stock_item.reserved"

    stock_item_id: Identifier
    reserved_quantity: Quantity
    reservation_identifier: str


class StockItemReservationReleased(DomainEvent):
    EVENT_NAME = "inventory.stock_item.reservation_released"

    stock_item_id: Identifier
    released_quantity: Quantity
    reservation_identifier: str
    reason: str | None = None


class StockQuantityAdjusted(DomainEvent):
    """The total quantity of a stock item changed.

    The record must be arithmetically consistent: new_quantity equals
    original_quantity plus (ADDITION) or minus (REDUCTION, CORRECTION)
    adjustment_quantity, and a reduction never exceeds the original.
    """

    EVENT_NAME = "inventory.stock_item.quantity_adjusted"

    stock_item_id: Identifier
    original_quantity: Quantity
    new_quantity: Quantity
    adjustment_quantity: Quantity
    adjustment_type: AdjustmentType
    reason: str | None = None

    @model_validator(mode="after")
    def ensure_valid_adjustment(self) -> "StockQuantityAdjusted":
        original = self.original_quantity.value
        delta = self.adjustment_quantity.value
        if self.adjustment_type is not AdjustmentType.ADDITION and delta > original:
            raise InconsistentAdjustmentError("Cannot reduce quantity below zero")

        expected = original + delta if self.adjustment_type is AdjustmentType.ADDITION else original - delta
        if expected != self.new_quantity.value:
            raise InconsistentAdjustmentError(
                "Adjustment quantities are not mathematically consistent: "
                f"{original} {self.adjustment_type.value} {delta} != {self.new_quantity.value}"
            )
        return self


INVENTORY_EVENTS: tuple[type[DomainEvent], ...] = (
    StockItemCreated,
    StockItemReserved,
    StockItemReservationReleased,
    StockQuantityAdjusted,
)
