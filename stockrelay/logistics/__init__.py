"""Logistics capability: packages shipped for stock reservations."""

from stockrelay.logistics.events import (
    LOGISTICS_EVENTS,
    PackageDelivered,
    PackageLocationUpdated,
    PackageRegistered,
)
from stockrelay.logistics.package import Package, PackageStatus, TrackingNumber
from stockrelay.logistics.repository import InMemoryPackageRepository, PackageRepository
from stockrelay.logistics.service import PackageResult, PackageService
from stockrelay.logistics.subscribers import CreatePackageOnStockReserved, PackageDeliveryTracker

__all__ = [
    "LOGISTICS_EVENTS",
    "CreatePackageOnStockReserved",
    "InMemoryPackageRepository",
    "Package",
    "PackageDelivered",
    "PackageDeliveryTracker",
    "PackageLocationUpdated",
    "PackageRegistered",
    "PackageRepository",
    "PackageResult",
    "PackageService",
    "PackageStatus",
    "TrackingNumber",
]
