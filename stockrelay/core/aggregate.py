"""Aggregate root base class for StockRelay."""

from stockrelay.core.event import DomainEvent


class AggregateRoot:
    """Base class for stateful entities that record facts.

    Mutations call record() for every fact they produce. Facts stay
    buffered, in recording order, until the persistence/publishing
    collaborator drains them after a successful write.

    The version starts at 1 and increases by exactly one per recorded
    fact, so it doubles as an optimistic-concurrency counter.
    """

    def __init__(self, version: int = 1) -> None:
        self._pending_events: list[DomainEvent] = []
        self._version = version

    @property
    def version(self) -> int:
        return self._version

    @property
    def loaded_version(self) -> int:
        """Version before any pending (undrained) facts were recorded."""
        return self._version - len(self._pending_events)

    @property
    def pending_events(self) -> tuple[DomainEvent, ...]:
        return tuple(self._pending_events)

    def record(self, event: DomainEvent) -> None:
        self._pending_events.append(event)
        self._version += 1

    def drain_events(self) -> list[DomainEvent]:
        """Return and clear all facts recorded since the last drain."""
        events = self._pending_events
        self._pending_events = []
        return events
