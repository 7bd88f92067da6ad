"""StockRelay - stock reservations with reliable fact delivery between capabilities."""

from stockrelay.backends import InMemoryBroker, RedisStreamsConnector
from stockrelay.bus import ConnectionManager, DurableConsumer, ReliablePublisher
from stockrelay.catalog import create_default_registry
from stockrelay.config import RelaySettings
from stockrelay.core import (
    AggregateRoot,
    CircuitBreaker,
    DomainEvent,
    EventRegistry,
    Identifier,
    Quantity,
    Subscriber,
)
from stockrelay.inventory import StockItem, StockItemService
from stockrelay.logistics import Package

__version__ = "0.1.0"

__all__ = [
    # Core
    "AggregateRoot",
    "DomainEvent",
    "Identifier",
    "Quantity",
    "EventRegistry",
    "Subscriber",
    "CircuitBreaker",
    # Delivery
    "ConnectionManager",
    "ReliablePublisher",
    "DurableConsumer",
    "RelaySettings",
    "create_default_registry",
    # Backends
    "InMemoryBroker",
    "RedisStreamsConnector",
    # Capabilities
    "StockItem",
    "StockItemService",
    "Package",
    # Meta
    "__version__",
]
