"""Package use cases: moving a shipment along after registration.

Same shape as the inventory service: load, apply, save, then drain and
publish. Failures come back as a PackageResult carrying an ErrorKind.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime

from pydantic import ValidationError

from stockrelay.bus.publisher import ReliablePublisher
from stockrelay.core.errors import (
    ConcurrencyError,
    DomainError,
    ErrorKind,
    InfrastructureError,
)
from stockrelay.core.event import DomainEvent
from stockrelay.core.identifiers import Identifier
from stockrelay.core.logging import get_logger
from stockrelay.logistics.package import Package
from stockrelay.logistics.repository import PackageRepository


@dataclass(frozen=True)
class PackageResult:
    ok: bool
    error: ErrorKind | None = None
    message: str = ""
    events: list[DomainEvent] = field(default_factory=list)
    package: Package | None = None


class PackageService:
    """Application service for packages.

    Args:
        repository: Where packages are loaded from and saved to.
        publisher: Receives the drained facts after every successful save.
    """

    def __init__(
        self,
        repository: PackageRepository,
        publisher: ReliablePublisher | None = None,
    ) -> None:
        self._repository = repository
        self._publisher = publisher
        self._log = get_logger("stockrelay.logistics")

    async def get_package(self, id: Identifier | str) -> Package | None:
        try:
            package_id = id if isinstance(id, Identifier) else Identifier(id)
        except ValidationError:
            return None
        return await self._repository.find(package_id)

    async def ship(self, id: Identifier | str) -> PackageResult:
        return await self._execute("ship", id, lambda p: p.mark_in_transit())

    async def update_location(self, id: Identifier | str, location: str) -> PackageResult:
        return await self._execute("update_location", id, lambda p: p.update_location(location))

    async def mark_delivered(
        self, id: Identifier | str, delivered_at: datetime | None = None
    ) -> PackageResult:
        return await self._execute("mark_delivered", id, lambda p: p.mark_delivered(delivered_at))

    async def _execute(
        self,
        command: str,
        id: Identifier | str,
        operation: Callable[[Package], object],
    ) -> PackageResult:
        try:
            package_id = id if isinstance(id, Identifier) else Identifier(id)
        except ValidationError as e:
            return self._rejected(command, str(id), ErrorKind.VALIDATION, e)

        package = await self._repository.find(package_id)
        if package is None:
            return self._rejected(
                command, package_id.value, ErrorKind.NOT_FOUND, f"Package not found: {package_id}"
            )

        try:
            operation(package)
        except DomainError as e:
            return self._rejected(command, package_id.value, e.kind, e)
        except ValidationError as e:
            return self._rejected(command, package_id.value, ErrorKind.VALIDATION, e)

        try:
            await self._repository.save(package)
        except ConcurrencyError as e:
            return self._rejected(command, package_id.value, ErrorKind.CONFLICT, e)

        events = package.drain_events()
        context = {"aggregate_id": package_id.value, "events": len(events)}
        if self._publisher is not None and events:
            try:
                await self._publisher.publish(events)
            except InfrastructureError as e:
                self._log.error(
                    f"{command} saved but its events were not published: {e}",
                    extra={**context, "error": str(e)},
                )
                return PackageResult(
                    ok=True,
                    error=ErrorKind.UNAVAILABLE,
                    message=str(e),
                    events=events,
                    package=package,
                )

        self._log.info(f"{command} applied to package {package.tracking_number}", extra=context)
        return PackageResult(ok=True, events=events, package=package)

    def _rejected(
        self, command: str, aggregate_id: str, kind: ErrorKind, error: Exception | str
    ) -> PackageResult:
        self._log.warning(
            f"{command} rejected ({kind.value}): {error}",
            extra={"aggregate_id": aggregate_id, "error_kind": kind.value},
        )
        return PackageResult(ok=False, error=kind, message=str(error))
