"""Transport protocols for broker access.

A Connector opens a connection to a broker and hands back a Channel. The
ConnectionManager is the only component that calls a Connector; the
publisher and consumer borrow the Channel it currently holds for the
duration of one call.

Routing follows topic-exchange semantics: messages are published to an
exchange with a routing key, and every queue bound to that exchange with
a matching pattern receives its own copy.
"""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

# Signature of the callback a Connector invokes when its connection drops.
# The argument is the error that caused the drop, or None for a clean close.
ConnectionLostCallback = Callable[[Exception | None], None]


@dataclass(frozen=True)
class Delivery:
    """A message handed to a consumer, pending acknowledgment.

    Attributes:
        queue: Queue the message was read from.
        delivery_tag: Transport-specific handle used for ack/nack.
        body: Raw message bytes.
        redelivered: True if the message was delivered before and not acked.
    """

    queue: str
    delivery_tag: str
    body: bytes
    redelivered: bool = False


class Channel(Protocol):
    """Protocol defining the broker operations used by StockRelay."""

    async def declare_exchange(self, exchange: str) -> None:
        """Declare a durable topic exchange. Idempotent."""
        ...

    async def declare_queue(self, queue: str, exchange: str, routing_key: str) -> None:
        """Declare a durable queue and bind it to an exchange. Idempotent."""
        ...

    async def publish(self, exchange: str, routing_key: str, body: bytes) -> None:
        """Publish a persistent message."""
        ...

    async def get(self, queue: str, timeout: float = 1.0) -> Delivery | None:
        """Receive the next message from a queue.

        Returns:
            The next Delivery, or None if timeout expires with nothing available.
        """
        ...

    async def ack(self, delivery: Delivery) -> None:
        """Acknowledge a delivery so the broker forgets it."""
        ...

    async def nack(self, delivery: Delivery, requeue: bool = False) -> None:
        """Reject a delivery, optionally returning it to the queue."""
        ...

    async def close(self) -> None:
        ...


class Connector(Protocol):
    """Opens broker connections for the ConnectionManager."""

    async def connect(self, on_lost: ConnectionLostCallback) -> Channel:
        """Open a connection and return a channel on it.

        The connector must call on_lost at most once, when the connection
        drops unexpectedly. It must not call it for a close() requested by
        the caller.
        """
        ...


def topic_matches(pattern: str, routing_key: str) -> bool:
    """Match a routing key against a topic binding pattern.

    Words are separated by dots. "*" matches exactly one word and "#"
    matches zero or more words.
    """
    return _match(pattern.split("."), routing_key.split("."))


def _match(pattern: list[str], words: list[str]) -> bool:
    if not pattern:
        return not words
    head, rest = pattern[0], pattern[1:]
    if head == "#":
        return any(_match(rest, words[i:]) for i in range(len(words) + 1))
    if not words:
        return False
    if head == "*" or head == words[0]:
        return _match(rest, words[1:])
    return False
