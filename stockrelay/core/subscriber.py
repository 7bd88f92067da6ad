"""Subscriber base class for StockRelay fact consumers."""

from abc import ABC, abstractmethod
from typing import Awaitable, ClassVar

from stockrelay.core.event import DomainEvent


class Subscriber(ABC):
    """Base class for fact handlers in another capability.

    Each Subscriber declares which fact types it wants via the
    `subscribed_to` class attribute. The consumer gives every
    (subscriber, fact type) pair its own durable queue, named from the
    fact type and the subscriber's name, so the name must stay stable
    across deployments.

    Note: Validation of `subscribed_to` happens in the consumer during
    binding, not in the Subscriber itself.
    """

    subscribed_to: ClassVar[list[str]] = []

    def __init__(self, name: str | None = None) -> None:
        """Initialize the Subscriber.

        Args:
            name: Optional name for the subscriber. Defaults to the class name.
        """
        self.name = name or self.__class__.__name__

    @abstractmethod
    def handle(self, event: DomainEvent) -> None | Awaitable[None]:
        """Handle a delivered fact.

        Raising marks the delivery as failed; the consumer retries it and
        eventually dead-letters it. Handlers must tolerate re-delivery.
        """
        ...
