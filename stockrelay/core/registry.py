"""Event type registry: maps a type name to its reconstruction function."""

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from stockrelay.core.errors import UnknownEventTypeError
from stockrelay.core.event import DomainEvent

EventFactory = Callable[[Mapping[str, Any]], DomainEvent]

DEFAULT_EVENT_VERSION = "1.0.0"


@dataclass(frozen=True)
class RegisteredEvent:
    """A registry entry."""

    name: str
    factory: EventFactory
    version: str


class EventRegistry:
    """Table of fact types known to this process.

    One instance is built at process start (see stockrelay.catalog) and
    passed explicitly to whatever needs it, typically the publisher (for
    schema versions) and the consumer (for reconstruction).
    """

    def __init__(self, event_classes: Iterable[type[DomainEvent]] = ()) -> None:
        self._entries: dict[str, RegisteredEvent] = {}
        for event_cls in event_classes:
            self.register(event_cls)

    def register(self, event_cls: type[DomainEvent], version: str | None = None) -> None:
        """Register an event class under its EVENT_NAME.

        Registering the same name again overwrites the earlier entry.
        """
        if not event_cls.EVENT_NAME:
            raise ValueError(f"{event_cls.__name__} does not declare EVENT_NAME")
        self.register_factory(
            event_cls.EVENT_NAME,
            event_cls.from_primitives,
            version or event_cls.EVENT_VERSION,
        )

    def register_factory(
        self,
        name: str,
        factory: EventFactory,
        version: str = DEFAULT_EVENT_VERSION,
    ) -> None:
        self._entries[name] = RegisteredEvent(name=name, factory=factory, version=version)

    def resolve(self, name: str) -> RegisteredEvent:
        """Look up a type name.

        Raises:
            UnknownEventTypeError: If the name was never registered.
        """
        try:
            return self._entries[name]
        except KeyError:
            raise UnknownEventTypeError(name) from None

    def reconstruct(self, name: str, primitives: Mapping[str, Any]) -> DomainEvent:
        return self.resolve(name).factory(primitives)

    def version_of(self, name: str, default: str = DEFAULT_EVENT_VERSION) -> str:
        entry = self._entries.get(name)
        return entry.version if entry is not None else default

    def registered(self) -> list[tuple[str, str]]:
        """Return (name, version) pairs in registration order."""
        return [(entry.name, entry.version) for entry in self._entries.values()]

    def __contains__(self, name: object) -> bool:
        return name in self._entries

    def __len__(self) -> int:
        return len(self._entries)
