"""Package persistence."""

from typing import Any, Protocol

from stockrelay.core.errors import ConcurrencyError
from stockrelay.core.identifiers import Identifier
from stockrelay.logistics.package import Package


class PackageRepository(Protocol):
    """Storage for packages, looked up by id or by the reservation they ship.

    save() must reject a write when the stored version is not the one the
    package was loaded at, and a second package for the same reservation.
    """

    async def find(self, id: Identifier) -> Package | None: ...

    async def find_by_reservation(self, reservation_id: str) -> Package | None: ...

    async def find_all(self) -> list[Package]: ...

    async def save(self, package: Package) -> None: ...


class InMemoryPackageRepository:
    """Snapshot store for packages, indexed by reservation."""

    def __init__(self) -> None:
        self._snapshots: dict[str, dict[str, Any]] = {}
        self._by_reservation: dict[str, str] = {}

    async def find(self, id: Identifier) -> Package | None:
        snapshot = self._snapshots.get(id.value)
        return Package.from_primitives(snapshot) if snapshot is not None else None

    async def find_by_reservation(self, reservation_id: str) -> Package | None:
        package_id = self._by_reservation.get(reservation_id)
        if package_id is None:
            return None
        return Package.from_primitives(self._snapshots[package_id])

    async def find_all(self) -> list[Package]:
        return [Package.from_primitives(s) for s in self._snapshots.values()]

    async def save(self, package: Package) -> None:
        """Store the package.

        Raises:
            ConcurrencyError: If the stored version moved since the package
                was loaded, or a new package reuses an id or reservation.
        """
        stored = self._snapshots.get(package.id.value)
        stored_version = stored["version"] if stored is not None else None
        expected = None if package.loaded_version == 1 and stored is None else package.loaded_version
        if stored_version != expected:
            raise ConcurrencyError(package.id.value, expected, stored_version)

        owner = self._by_reservation.get(package.reservation_id)
        if owner is not None and owner != package.id.value:
            raise ConcurrencyError(package.id.value, None, None)

        self._snapshots[package.id.value] = package.to_primitives()
        self._by_reservation[package.reservation_id] = package.id.value

    def __len__(self) -> int:
        return len(self._snapshots)
