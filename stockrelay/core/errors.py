"""Exception hierarchy for StockRelay.

Domain errors describe operations that are logically impossible and are
never retried. Infrastructure errors describe broker or network trouble;
transient ones are retried with backoff, terminal ones fail fast.
"""

from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from stockrelay.core.event import DomainEvent


class ErrorKind(Enum):
    """Category of a failed command, used by result values."""

    VALIDATION = "validation"
    INSUFFICIENT_STOCK = "insufficient_stock"
    NOT_FOUND = "not_found"
    BELOW_RESERVED = "below_reserved"
    INCONSISTENT_ADJUSTMENT = "inconsistent_adjustment"
    INVARIANT = "invariant"
    INVALID_STATE = "invalid_state"
    CONFLICT = "conflict"
    UNAVAILABLE = "unavailable"


class StockRelayError(Exception):
    """Base class for every error raised by StockRelay."""


# =============================================================================
# Domain errors
# =============================================================================


class DomainError(StockRelayError):
    """A business or validation rule rejected an operation."""

    kind: ErrorKind = ErrorKind.INVARIANT


class InvalidQuantityError(DomainError):
    """Raised when an operation receives a quantity it cannot accept."""

    kind = ErrorKind.VALIDATION


class InvalidReservationError(DomainError):
    """Raised when reservation details are unusable (empty id, past expiry)."""

    kind = ErrorKind.VALIDATION


class InsufficientStockError(DomainError):
    """Raised when a reservation asks for more than is available.

    Attributes:
        available: Quantity that could still be reserved.
        requested: Quantity the caller asked for.
    """

    kind = ErrorKind.INSUFFICIENT_STOCK

    def __init__(self, available: int, requested: int) -> None:
        self.available = available
        self.requested = requested
        super().__init__(f"Insufficient stock: available {available}, requested {requested}")


class ReservationNotFoundError(DomainError):
    kind = ErrorKind.NOT_FOUND

    def __init__(self, reservation_id: str) -> None:
        self.reservation_id = reservation_id
        super().__init__(f"Reservation not found: {reservation_id!r}")


class StockBelowReservedError(DomainError):
    """Raised when a stock reduction would leave less than is reserved."""

    kind = ErrorKind.BELOW_RESERVED

    def __init__(self, new_total: int, reserved: int) -> None:
        self.new_total = new_total
        self.reserved = reserved
        super().__init__(
            f"Cannot reduce stock below reserved quantity: new total {new_total}, "
            f"reserved {reserved}"
        )


class InconsistentAdjustmentError(DomainError):
    kind = ErrorKind.INCONSISTENT_ADJUSTMENT


class InvariantViolationError(DomainError):
    kind = ErrorKind.INVARIANT


class InvalidPackageStateError(DomainError):
    kind = ErrorKind.INVALID_STATE


class ConcurrencyError(StockRelayError):
    """Raised by a repository when the stored version moved underneath a save."""

    kind = ErrorKind.CONFLICT

    def __init__(self, aggregate_id: str, expected: int | None, actual: int | None) -> None:
        self.aggregate_id = aggregate_id
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Concurrent modification of {aggregate_id}: expected version {expected}, "
            f"found {actual}"
        )


# =============================================================================
# Registry and wire errors
# =============================================================================


class UnknownEventTypeError(StockRelayError, KeyError):
    """Raised when a fact type name was never registered."""

    def __init__(self, event_name: str) -> None:
        self.event_name = event_name
        super().__init__(f"Unknown event type: {event_name}")

    def __str__(self) -> str:
        return self.args[0]


class MalformedEventError(StockRelayError):
    """Raised when wire data cannot be turned into a typed fact."""

    def __init__(self, event_name: str, reason: str) -> None:
        self.event_name = event_name
        self.reason = reason
        super().__init__(f"Malformed {event_name or 'event'}: {reason}")


# =============================================================================
# Infrastructure errors
# =============================================================================


class InfrastructureError(StockRelayError):
    """Base class for broker and connection failures."""

    kind = ErrorKind.UNAVAILABLE


class TransportError(InfrastructureError, ConnectionError):
    """A transport operation failed on a channel that is no longer usable."""


class ChannelUnavailableError(InfrastructureError):
    """No live channel exists right now; a reconnect may still succeed."""


class ReconnectExhaustedError(InfrastructureError):
    """The connection manager gave up reconnecting."""

    def __init__(self, attempts: int) -> None:
        self.attempts = attempts
        super().__init__(f"Broker unreachable after {attempts} reconnection attempts")


class CircuitOpenError(InfrastructureError):
    """Raised without invoking the wrapped operation while the breaker is open."""

    def __init__(self, retry_after: float) -> None:
        self.retry_after = retry_after
        super().__init__(f"Circuit breaker is OPEN (retry in {retry_after:.2f}s)")


class DeadLetterFailedError(InfrastructureError):
    """A fact exhausted its retries and the dead-letter send failed too.

    Attributes:
        event: The fact that could not be delivered.
        original: The last delivery error.
        dead_letter_error: The error raised by the dead-letter send.
    """

    def __init__(
        self,
        event: "DomainEvent",
        original: BaseException,
        dead_letter_error: BaseException,
    ) -> None:
        self.event = event
        self.original = original
        self.dead_letter_error = dead_letter_error
        super().__init__(
            f"{event.event_name} {event.event_id} lost: {original} "
            f"(dead-letter failed: {dead_letter_error})"
        )


class PublishError(InfrastructureError):
    """One or more facts in a batch could neither be delivered nor dead-lettered."""

    def __init__(self, failures: list[DeadLetterFailedError]) -> None:
        self.failures = failures
        first = failures[0]
        super().__init__(
            f"{len(failures)} event(s) could not be published; first failure: {first.original}"
        )

    @property
    def events(self) -> list["DomainEvent"]:
        return [failure.event for failure in self.failures]
