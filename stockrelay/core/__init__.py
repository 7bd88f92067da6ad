"""Core components for StockRelay.

This module exposes the primary types shared by every capability:

Types:
    Identifier: UUID v4 value object.
    Quantity: Bounded non-negative integer value object.
    DomainEvent: Immutable fact recorded by an aggregate.
    AggregateRoot: Base for entities that buffer facts until drained.
    EventRegistry: Maps fact type names to reconstruction functions.
    CircuitBreaker: Failure-isolating wrapper around any fallible call.
    Subscriber: Abstract base class for fact handlers.

Errors:
    See stockrelay.core.errors for the full hierarchy.
"""

from stockrelay.core.aggregate import AggregateRoot
from stockrelay.core.circuit_breaker import CircuitBreaker, CircuitState
from stockrelay.core.errors import (
    ChannelUnavailableError,
    CircuitOpenError,
    ConcurrencyError,
    DomainError,
    ErrorKind,
    InfrastructureError,
    InsufficientStockError,
    MalformedEventError,
    PublishError,
    ReconnectExhaustedError,
    ReservationNotFoundError,
    StockRelayError,
    UnknownEventTypeError,
)
from stockrelay.core.event import DomainEvent
from stockrelay.core.identifiers import MAX_QUANTITY, Identifier, Quantity
from stockrelay.core.registry import EventRegistry, RegisteredEvent
from stockrelay.core.subscriber import Subscriber

__all__ = [
    "AggregateRoot",
    "ChannelUnavailableError",
    "CircuitBreaker",
    "CircuitOpenError",
    "CircuitState",
    "ConcurrencyError",
    "DomainError",
    "DomainEvent",
    "ErrorKind",
    "EventRegistry",
    "Identifier",
    "InfrastructureError",
    "InsufficientStockError",
    "MAX_QUANTITY",
    "MalformedEventError",
    "PublishError",
    "Quantity",
    "ReconnectExhaustedError",
    "RegisteredEvent",
    "ReservationNotFoundError",
    "StockRelayError",
    "Subscriber",
    "UnknownEventTypeError",
]
