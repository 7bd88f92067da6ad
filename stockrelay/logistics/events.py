"""Facts recorded by the Package aggregate."""

from datetime import datetime

from pydantic import field_validator

from stockrelay.core.event import DomainEvent


class PackageRegistered(DomainEvent):
    """A package was registered to ship the stock held by a reservation."""

    EVENT_NAME = "logistics.package.registered"

    tracking_number: str
    reservation_id: str


class PackageLocationUpdated(DomainEvent):
    EVENT_NAME = "logistics.package.location_updated"

    location: str

    @field_validator("location")
    @classmethod
    def validate_location(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Location cannot be empty")
        return v


class PackageDelivered(DomainEvent):
    EVENT_NAME = "logistics.package.delivered"

    delivered_at: datetime


LOGISTICS_EVENTS: tuple[type[DomainEvent], ...] = (
    PackageRegistered,
    PackageLocationUpdated,
    PackageDelivered,
)
