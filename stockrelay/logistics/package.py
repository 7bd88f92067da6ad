"""Package aggregate: the shipment created for a stock reservation."""

import secrets
import string
from collections.abc import Mapping
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import ConfigDict, RootModel, field_validator

from stockrelay.core.aggregate import AggregateRoot
from stockrelay.core.errors import InvalidPackageStateError
from stockrelay.core.identifiers import Identifier
from stockrelay.logistics.events import PackageDelivered, PackageLocationUpdated, PackageRegistered

TRACKING_NUMBER_LENGTH = 10
_TRACKING_ALPHABET = string.ascii_uppercase + string.digits


class TrackingNumber(RootModel[str]):
    """Ten upper-case letters or digits."""

    model_config = ConfigDict(frozen=True)

    @field_validator("root")
    @classmethod
    def validate_format(cls, v: str) -> str:
        if len(v) != TRACKING_NUMBER_LENGTH or any(c not in _TRACKING_ALPHABET for c in v):
            raise ValueError(
                f"Tracking number must be {TRACKING_NUMBER_LENGTH} characters of A-Z and 0-9: {v!r}"
            )
        return v

    @classmethod
    def generate(cls) -> "TrackingNumber":
        return cls("".join(secrets.choice(_TRACKING_ALPHABET) for _ in range(TRACKING_NUMBER_LENGTH)))

    @property
    def value(self) -> str:
        return self.root

    def __str__(self) -> str:
        return self.root

    def __hash__(self) -> int:
        return hash(self.root)


class PackageStatus(str, Enum):
    REGISTERED = "REGISTERED"
    IN_TRANSIT = "IN_TRANSIT"
    DELIVERED = "DELIVERED"


class Package(AggregateRoot):
    """A shipment moving through REGISTERED -> IN_TRANSIT -> DELIVERED."""

    def __init__(
        self,
        id: Identifier,
        tracking_number: TrackingNumber,
        reservation_id: str,
        status: PackageStatus = PackageStatus.REGISTERED,
        location: str | None = None,
        delivered_at: datetime | None = None,
        version: int = 1,
    ) -> None:
        super().__init__(version)
        self._id = id
        self._tracking_number = tracking_number
        self._reservation_id = reservation_id
        self._status = status
        self._location = location
        self._delivered_at = delivered_at

    @classmethod
    def register(
        cls,
        id: Identifier | str,
        tracking_number: TrackingNumber | str,
        reservation_id: str,
    ) -> "Package":
        package_id = id if isinstance(id, Identifier) else Identifier(id)
        number = (
            tracking_number
            if isinstance(tracking_number, TrackingNumber)
            else TrackingNumber(tracking_number)
        )
        if not reservation_id:
            raise ValueError("Reservation id cannot be empty")

        package = cls(package_id, number, reservation_id)
        package.record(
            PackageRegistered(
                aggregate_id=package_id,
                tracking_number=number.value,
                reservation_id=reservation_id,
            )
        )
        return package

    @property
    def id(self) -> Identifier:
        return self._id

    @property
    def tracking_number(self) -> TrackingNumber:
        return self._tracking_number

    @property
    def reservation_id(self) -> str:
        return self._reservation_id

    @property
    def status(self) -> PackageStatus:
        return self._status

    @property
    def location(self) -> str | None:
        return self._location

    @property
    def delivered_at(self) -> datetime | None:
        return self._delivered_at

    def registration(self) -> PackageRegistered:
        """Rebuild the fact register() recorded, equal to it by origin and payload."""
        return PackageRegistered(
            aggregate_id=self._id,
            tracking_number=self._tracking_number.value,
            reservation_id=self._reservation_id,
        )

    def mark_in_transit(self) -> None:
        """Hand the package to the carrier. Records no fact."""
        self._require(PackageStatus.REGISTERED, "ship")
        self._status = PackageStatus.IN_TRANSIT

    def update_location(self, location: str) -> None:
        self._require(PackageStatus.IN_TRANSIT, "update the location of")
        event = PackageLocationUpdated(aggregate_id=self._id, location=location)
        self._location = event.location
        self.record(event)

    def mark_delivered(self, delivered_at: datetime | None = None) -> None:
        self._require(PackageStatus.IN_TRANSIT, "deliver")
        event = PackageDelivered(
            aggregate_id=self._id,
            delivered_at=delivered_at or datetime.now(UTC),
        )
        self._status = PackageStatus.DELIVERED
        self._delivered_at = event.delivered_at
        self.record(event)

    def _require(self, status: PackageStatus, action: str) -> None:
        if self._status is not status:
            raise InvalidPackageStateError(
                f"Cannot {action} package {self._tracking_number} in status {self._status.value}"
            )

    def to_primitives(self) -> dict[str, Any]:
        return {
            "id": self._id.value,
            "trackingNumber": self._tracking_number.value,
            "reservationId": self._reservation_id,
            "status": self._status.value,
            "location": self._location,
            "deliveredAt": self._delivered_at.isoformat() if self._delivered_at else None,
            "version": self.version,
        }

    @classmethod
    def from_primitives(cls, primitives: Mapping[str, Any]) -> "Package":
        delivered_at = primitives.get("deliveredAt")
        return cls(
            Identifier(primitives["id"]),
            TrackingNumber(primitives["trackingNumber"]),
            primitives["reservationId"],
            status=PackageStatus(primitives.get("status", PackageStatus.REGISTERED.value)),
            location=primitives.get("location"),
            delivered_at=datetime.fromisoformat(delivered_at) if delivered_at else None,
            version=primitives.get("version", 1),
        )
