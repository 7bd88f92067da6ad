"""Inventory capability: stock items and their reservations."""

from stockrelay.inventory.events import (
    INVENTORY_EVENTS,
    AdjustmentType,
    StockItemCreated,
    StockItemReservationReleased,
    StockItemReserved,
    StockQuantityAdjusted,
)
from stockrelay.inventory.repository import InMemoryStockItemRepository, StockItemRepository
from stockrelay.inventory.service import CommandResult, StockItemService
from stockrelay.inventory.stock_item import Reservation, StockItem, StockItemName
from stockrelay.inventory.subscribers import StockItemCreatedLogger

__all__ = [
    "INVENTORY_EVENTS",
    "AdjustmentType",
    "CommandResult",
    "InMemoryStockItemRepository",
    "Reservation",
    "StockItem",
    "StockItemCreated",
    "StockItemCreatedLogger",
    "StockItemName",
    "StockItemRepository",
    "StockItemReservationReleased",
    "StockItemReserved",
    "StockItemService",
    "StockQuantityAdjusted",
]
