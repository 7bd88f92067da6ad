"""Fact types known to a StockRelay process."""

from stockrelay.core.registry import EventRegistry
from stockrelay.inventory.events import INVENTORY_EVENTS
from stockrelay.logistics.events import LOGISTICS_EVENTS


def create_default_registry() -> EventRegistry:
    """Build a registry holding every inventory and logistics fact type."""
    return EventRegistry((*INVENTORY_EVENTS, *LOGISTICS_EVENTS))
