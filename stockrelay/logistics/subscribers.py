"""Logistics reactions to facts."""

from stockrelay.bus.publisher import ReliablePublisher
from stockrelay.core.event import DomainEvent
from stockrelay.core.identifiers import Identifier
from stockrelay.core.logging import get_logger
from stockrelay.core.subscriber import Subscriber
from stockrelay.inventory.events import StockItemReserved
from stockrelay.logistics.events import PackageRegistered
from stockrelay.logistics.package import Package, PackageStatus, TrackingNumber
from stockrelay.logistics.repository import PackageRepository


def _context(event: DomainEvent, subscriber: Subscriber) -> dict[str, str]:
    return {
        "event_id": event.event_id.value,
        "event_type": event.event_name,
        "aggregate_id": event.aggregate_id.value,
        "subscriber": subscriber.name,
    }


class CreatePackageOnStockReserved(Subscriber):
    """Registers one package per stock reservation.

    A reservation that already has its package is not registered again.
    While that package is still REGISTERED its registration fact is
    published again, because a failed publish after the save leaves no
    other trace of it; downstream handlers must tolerate the duplicate.
    """

    subscribed_to = [StockItemReserved.EVENT_NAME]

    def __init__(
        self,
        repository: PackageRepository,
        publisher: ReliablePublisher | None = None,
        name: str | None = None,
    ) -> None:
        super().__init__(name)
        self._repository = repository
        self._publisher = publisher
        self._log = get_logger("stockrelay.logistics")

    async def handle(self, event: DomainEvent) -> None:
        if not isinstance(event, StockItemReserved):
            raise TypeError(f"Expected StockItemReserved, got {type(event).__name__}")

        context = _context(event, self)
        existing = await self._repository.find_by_reservation(event.reservation_identifier)
        if existing is not None:
            self._log.info(
                f"Package {existing.tracking_number} already registered for "
                f"reservation {event.reservation_identifier}",
                extra=context,
            )
            if existing.status is PackageStatus.REGISTERED:
                await self._publish([existing.registration()])
            return

        package = Package.register(
            Identifier.random(),
            TrackingNumber.generate(),
            event.reservation_identifier,
        )
        await self._repository.save(package)
        await self._publish(package.drain_events())

        self._log.info(
            f"Registered package {package.tracking_number} for "
            f"reservation {event.reservation_identifier}",
            extra=context,
        )

    async def _publish(self, events: list[DomainEvent]) -> None:
        if self._publisher is not None:
            await self._publisher.publish(events)


class PackageDeliveryTracker(Subscriber):
    """Hands every newly registered package to the carrier (IN_TRANSIT).

    Packages that already left REGISTERED are skipped, so duplicate
    registration facts are harmless.
    """

    subscribed_to = [PackageRegistered.EVENT_NAME]

    def __init__(self, repository: PackageRepository, name: str | None = None) -> None:
        super().__init__(name)
        self._repository = repository
        self._log = get_logger("stockrelay.logistics")

    async def handle(self, event: DomainEvent) -> None:
        if not isinstance(event, PackageRegistered):
            raise TypeError(f"Expected PackageRegistered, got {type(event).__name__}")

        context = _context(event, self)
        package = await self._repository.find(event.aggregate_id)
        if package is None:
            self._log.warning(
                f"Package {event.aggregate_id} not found for delivery tracking", extra=context
            )
            return
        if package.status is not PackageStatus.REGISTERED:
            self._log.info(
                f"Package {package.tracking_number} already {package.status.value}", extra=context
            )
            return

        package.mark_in_transit()
        await self._repository.save(package)
        self._log.info(f"Package {package.tracking_number} is in transit", extra=context)
