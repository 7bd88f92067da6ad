"""StockItem aggregate: on-hand quantity plus named reservations."""

from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, RootModel, field_validator

from stockrelay.core.aggregate import AggregateRoot
from stockrelay.core.errors import (
    InsufficientStockError,
    InvalidQuantityError,
    InvalidReservationError,
    InvariantViolationError,
    ReservationNotFoundError,
    StockBelowReservedError,
)
from stockrelay.core.identifiers import Identifier, Quantity
from stockrelay.inventory.events import (
    AdjustmentType,
    StockItemCreated,
    StockItemReservationReleased,
    StockItemReserved,
    StockQuantityAdjusted,
)

MAX_NAME_LENGTH = 100
EXPIRED = "expired"


class StockItemName(RootModel[str]):
    """Display name, trimmed, 1 to 100 characters."""

    model_config = ConfigDict(frozen=True)

    @field_validator("root")
    @classmethod
    def validate_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Stock item name cannot be empty")
        if len(v) > MAX_NAME_LENGTH:
            raise ValueError(f"Stock item name too long (max {MAX_NAME_LENGTH} characters)")
        return v

    @property
    def value(self) -> str:
        return self.root

    def __str__(self) -> str:
        return self.root

    def __hash__(self) -> int:
        return hash(self.root)


class Reservation(BaseModel):
    """A named hold on part of a stock item's quantity."""

    model_config = ConfigDict(frozen=True)

    reservation_id: str
    quantity: Quantity
    reserved_at: datetime
    expires_at: datetime | None = None
    reason: str | None = None

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at <= now


def _as_quantity(value: Quantity | int) -> Quantity:
    return value if isinstance(value, Quantity) else Quantity(value)


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=UTC)


class StockItem(AggregateRoot):
    """Tracks the total quantity of one item and the reservations held on it.

    Invariants, checked after every mutation:
    - reserved_quantity never exceeds total_quantity
    - reserved_quantity is zero when no reservation is held

    Every operation validates fully before it changes anything, so a
    rejected operation leaves the state and the pending facts untouched.
    """

    def __init__(
        self,
        id: Identifier,
        name: StockItemName,
        total_quantity: Quantity,
        reserved_quantity: Quantity | None = None,
        reservations: Mapping[str, Reservation] | None = None,
        version: int = 1,
    ) -> None:
        super().__init__(version)
        self._id = id
        self._name = name
        self._total = total_quantity
        self._reserved = reserved_quantity or Quantity.zero()
        self._reservations: dict[str, Reservation] = dict(reservations or {})
        self._check_invariants(self._total, self._reserved, self._reservations)

    @classmethod
    def create(
        cls,
        id: Identifier | str,
        name: StockItemName | str,
        initial_quantity: Quantity | int,
    ) -> "StockItem":
        """Create a stock item and record StockItemCreated.

        Raises:
            pydantic.ValidationError: If the id, name or quantity is invalid.
        """
        item_id = id if isinstance(id, Identifier) else Identifier(id)
        item_name = name if isinstance(name, StockItemName) else StockItemName(name)
        quantity = _as_quantity(initial_quantity)

        item = cls(item_id, item_name, quantity)
        item.record(StockItemCreated(aggregate_id=item_id, name=item_name.value, quantity=quantity))
        return item

    # -------------------------------------------------------------------------
    # Read model
    # -------------------------------------------------------------------------

    @property
    def id(self) -> Identifier:
        return self._id

    @property
    def name(self) -> StockItemName:
        return self._name

    @property
    def total_quantity(self) -> Quantity:
        return self._total

    @property
    def reserved_quantity(self) -> Quantity:
        return self._reserved

    @property
    def available_quantity(self) -> Quantity:
        return self._total.subtract(self._reserved)

    @property
    def reservations(self) -> dict[str, Reservation]:
        return dict(self._reservations)

    def get_reservation(self, reservation_id: str) -> Reservation | None:
        return self._reservations.get(reservation_id)

    # -------------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------------

    def reserve(
        self,
        quantity: Quantity | int,
        reservation_id: str,
        expires_at: datetime | None = None,
        reason: str | None = None,
        now: datetime | None = None,
    ) -> None:
        """Create a reservation, or resize an existing one.

        An existing reservation that has already expired is released first
        (recording StockItemReservationReleased with reason "expired") and
        the request is treated as new. A live reservation is updated by the
        difference between its old and new quantity, so the old quantity
        counts as available to the update.

        Raises:
            InvalidQuantityError: If quantity is zero.
            InvalidReservationError: If the id is empty or expires_at has passed.
            InsufficientStockError: If the request exceeds what is available.
        """
        now = _as_utc(now or datetime.now(UTC))
        quantity = _as_quantity(quantity)
        if not reservation_id or not reservation_id.strip():
            raise InvalidReservationError("Reservation id cannot be empty")
        if expires_at is not None:
            expires_at = _as_utc(expires_at)
            if expires_at <= now:
                raise InvalidReservationError("Reservation expiry must be in the future")

        existing = self._reservations.get(reservation_id)
        expired = existing if existing is not None and existing.is_expired(now) else None
        live = existing if expired is None else None

        reserved = self._reserved
        if expired is not None:
            reserved = reserved.subtract(expired.quantity)
        available = self._total.value - reserved.value
        if live is not None:
            available += live.quantity.value

        if quantity.value > available:
            raise InsufficientStockError(available, quantity.value)
        if quantity.is_zero():
            raise InvalidQuantityError("Reservation quantity must be positive")

        if live is not None:
            new_reserved = reserved.subtract(live.quantity).add(quantity)
        else:
            new_reserved = reserved.add(quantity)
        new_reservations = dict(self._reservations)
        new_reservations[reservation_id] = Reservation(
            reservation_id=reservation_id,
            quantity=quantity,
            reserved_at=now,
            expires_at=expires_at,
            reason=reason,
        )
        self._check_invariants(self._total, new_reserved, new_reservations)

        events = []
        if expired is not None:
            events.append(self._released_event(expired, EXPIRED))
        events.append(
            StockItemReserved(
                aggregate_id=self._id,
                stock_item_id=self._id,
                reserved_quantity=quantity,
                reservation_identifier=reservation_id,
            )
        )

        self._reserved = new_reserved
        self._reservations = new_reservations
        for event in events:
            self.record(event)

    def release_reservation(self, reservation_id: str, reason: str | None = None) -> Reservation:
        """Release a reservation and return it.

        Raises:
            ReservationNotFoundError: If no reservation has this id.
        """
        reservation = self._reservations.get(reservation_id)
        if reservation is None:
            raise ReservationNotFoundError(reservation_id)
        self._release(reservation, reason)
        return reservation

    def release_expired_reservations(self, now: datetime | None = None) -> list[Reservation]:
        """Release every reservation whose expiry has passed."""
        now = _as_utc(now or datetime.now(UTC))
        expired = [r for r in self._reservations.values() if r.is_expired(now)]
        for reservation in expired:
            self._release(reservation, EXPIRED)
        return expired

    def add_stock(self, quantity: Quantity | int, reason: str | None = None) -> None:
        """Increase the total quantity.

        Raises:
            InvalidQuantityError: If quantity is zero.
        """
        quantity = _as_quantity(quantity)
        if quantity.is_zero():
            raise InvalidQuantityError("Quantity to add must be positive")
        new_total = self._total.add(quantity)
        self._apply_adjustment(new_total, quantity, AdjustmentType.ADDITION, reason)

    def adjust_stock(self, delta: int, reason: str | None = None) -> None:
        """Change the total quantity by a signed amount.

        Raises:
            InvalidQuantityError: If delta is zero or the result would be negative.
            StockBelowReservedError: If a reduction would leave less than is reserved.
        """
        if delta == 0:
            raise InvalidQuantityError("Adjustment must be non-zero")
        new_value = self._total.value + delta
        if new_value < 0:
            raise InvalidQuantityError(
                f"Adjustment would make quantity negative: {self._total.value} + ({delta})"
            )
        if delta < 0 and new_value < self._reserved.value:
            raise StockBelowReservedError(new_value, self._reserved.value)

        adjustment_type = AdjustmentType.ADDITION if delta > 0 else AdjustmentType.REDUCTION
        self._apply_adjustment(Quantity(new_value), Quantity(abs(delta)), adjustment_type, reason)

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _apply_adjustment(
        self,
        new_total: Quantity,
        amount: Quantity,
        adjustment_type: AdjustmentType,
        reason: str | None,
    ) -> None:
        self._check_invariants(new_total, self._reserved, self._reservations)
        event = StockQuantityAdjusted(
            aggregate_id=self._id,
            stock_item_id=self._id,
            original_quantity=self._total,
            new_quantity=new_total,
            adjustment_quantity=amount,
            adjustment_type=adjustment_type,
            reason=reason,
        )
        self._total = new_total
        self.record(event)

    def _release(self, reservation: Reservation, reason: str | None) -> None:
        new_reserved = self._reserved.subtract(reservation.quantity)
        new_reservations = {
            rid: r for rid, r in self._reservations.items() if rid != reservation.reservation_id
        }
        self._check_invariants(self._total, new_reserved, new_reservations)
        event = self._released_event(reservation, reason)

        self._reserved = new_reserved
        self._reservations = new_reservations
        self.record(event)

    def _released_event(
        self, reservation: Reservation, reason: str | None
    ) -> StockItemReservationReleased:
        return StockItemReservationReleased(
            aggregate_id=self._id,
            stock_item_id=self._id,
            released_quantity=reservation.quantity,
            reservation_identifier=reservation.reservation_id,
            reason=reason,
        )

    @staticmethod
    def _check_invariants(
        total: Quantity,
        reserved: Quantity,
        reservations: Mapping[str, Reservation],
    ) -> None:
        if reserved > total:
            raise InvariantViolationError(
                f"Reserved quantity {reserved} exceeds total quantity {total}"
            )
        if not reservations and not reserved.is_zero():
            raise InvariantViolationError(
                f"Reserved quantity is {reserved} but no reservations are held"
            )
        held = sum(r.quantity.value for r in reservations.values())
        if held != reserved.value:
            raise InvariantViolationError(
                f"Reserved quantity {reserved} does not match reservations held ({held})"
            )

    # -------------------------------------------------------------------------
    # Snapshots
    # -------------------------------------------------------------------------

    def to_primitives(self) -> dict[str, Any]:
        return {
            "id": self._id.value,
            "name": self._name.value,
            "totalQuantity": self._total.value,
            "reservedQuantity": self._reserved.value,
            "reservations": [
                {
                    "reservationId": r.reservation_id,
                    "quantity": r.quantity.value,
                    "reservedAt": r.reserved_at.isoformat(),
                    "expiresAt": r.expires_at.isoformat() if r.expires_at else None,
                    "reason": r.reason,
                }
                for r in self._reservations.values()
            ],
            "version": self.version,
        }

    @classmethod
    def from_primitives(cls, primitives: Mapping[str, Any]) -> "StockItem":
        """Rebuild a stock item from a snapshot without recording facts."""
        reservations = {}
        for raw in primitives.get("reservations", []):
            reservation = Reservation(
                reservation_id=raw["reservationId"],
                quantity=Quantity(raw["quantity"]),
                reserved_at=datetime.fromisoformat(raw["reservedAt"]),
                expires_at=datetime.fromisoformat(raw["expiresAt"]) if raw.get("expiresAt") else None,
                reason=raw.get("reason"),
            )
            reservations[reservation.reservation_id] = reservation

        return cls(
            Identifier(primitives["id"]),
            StockItemName(primitives["name"]),
            Quantity(primitives["totalQuantity"]),
            Quantity(primitives.get("reservedQuantity", 0)),
            reservations,
            version=primitives.get("version", 1),
        )
