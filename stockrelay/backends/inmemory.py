"""In-memory topic broker using asyncio.Queue for each durable queue.

This broker is suitable for development and testing. It behaves like a
small topic-exchange broker: queues are named, outlive the connections
that declared them, and deliveries that were never acknowledged go back
to their queue when the channel that received them is lost. Nothing
survives the process.
"""

import asyncio
import itertools
import json
from collections import defaultdict
from dataclasses import dataclass
from typing import Any

from stockrelay.backends.base import ConnectionLostCallback, Delivery, topic_matches
from stockrelay.core.errors import TransportError


@dataclass(frozen=True)
class PublishedMessage:
    """Record of one publish, kept for inspection."""

    exchange: str
    routing_key: str
    body: bytes

    def json(self) -> Any:
        return json.loads(self.body)


@dataclass(frozen=True)
class _QueuedMessage:
    body: bytes
    redelivered: bool = False


class InMemoryBroker:
    """Process-local broker implementing the Connector protocol.

    Attributes:
        available: When False, connect() is refused, simulating an outage.
        connect_attempts: Number of connect() calls received.
    """

    def __init__(self) -> None:
        self._exchanges: set[str] = set()
        self._bindings: dict[str, list[tuple[str, str]]] = defaultdict(list)
        self._queues: dict[str, asyncio.Queue[_QueuedMessage]] = {}
        self._unacked: dict[str, tuple[str, _QueuedMessage, "InMemoryChannel"]] = {}
        self._tags = itertools.count(1)
        self._channels: list[InMemoryChannel] = []
        self._published: list[PublishedMessage] = []
        self.available = True
        self.connect_attempts = 0

    async def connect(self, on_lost: ConnectionLostCallback) -> "InMemoryChannel":
        self.connect_attempts += 1
        if not self.available:
            raise ConnectionRefusedError("In-memory broker is unavailable")
        channel = InMemoryChannel(self, on_lost)
        self._channels.append(channel)
        return channel

    def drop_connections(self, error: Exception | None = None) -> None:
        """Sever every open channel as if the network went away."""
        for channel in list(self._channels):
            channel._lose(error or ConnectionResetError("Connection reset by broker"))

    @property
    def open_channels(self) -> int:
        return len(self._channels)

    def messages(self, exchange: str, routing_key: str | None = None) -> list[PublishedMessage]:
        """Return every message published to an exchange, oldest first."""
        return [
            m
            for m in self._published
            if m.exchange == exchange and (routing_key is None or m.routing_key == routing_key)
        ]

    def has_queue(self, queue: str) -> bool:
        return queue in self._queues

    def queue_size(self, queue: str) -> int:
        """Return messages ready for delivery on a queue (unacked excluded)."""
        return self._queues[queue].qsize()

    def unacked_count(self, queue: str | None = None) -> int:
        return sum(1 for q, _, _ in self._unacked.values() if queue is None or q == queue)

    def bindings(self, exchange: str) -> list[tuple[str, str]]:
        return list(self._bindings.get(exchange, []))

    def _route(self, exchange: str, routing_key: str, body: bytes) -> int:
        self._published.append(PublishedMessage(exchange, routing_key, body))
        routed = 0
        for pattern, queue in self._bindings.get(exchange, []):
            if topic_matches(pattern, routing_key):
                self._queues[queue].put_nowait(_QueuedMessage(body))
                routed += 1
        return routed

    def _requeue_for(self, channel: "InMemoryChannel") -> None:
        for tag, (queue, message, owner) in list(self._unacked.items()):
            if owner is channel:
                del self._unacked[tag]
                self._queues[queue].put_nowait(_QueuedMessage(message.body, redelivered=True))

    def _forget(self, channel: "InMemoryChannel") -> None:
        self._requeue_for(channel)
        if channel in self._channels:
            self._channels.remove(channel)


class InMemoryChannel:
    """Channel on an InMemoryBroker."""

    def __init__(self, broker: InMemoryBroker, on_lost: ConnectionLostCallback) -> None:
        self._broker = broker
        self._on_lost = on_lost
        self._closed = False

    @property
    def is_open(self) -> bool:
        return not self._closed

    def _ensure_open(self) -> None:
        if self._closed:
            raise TransportError("Channel is closed")

    async def declare_exchange(self, exchange: str) -> None:
        self._ensure_open()
        self._broker._exchanges.add(exchange)

    async def declare_queue(self, queue: str, exchange: str, routing_key: str) -> None:
        self._ensure_open()
        if exchange not in self._broker._exchanges:
            raise TransportError(f"Exchange not declared: {exchange}")
        self._broker._queues.setdefault(queue, asyncio.Queue())
        binding = (routing_key, queue)
        if binding not in self._broker._bindings[exchange]:
            self._broker._bindings[exchange].append(binding)

    async def publish(self, exchange: str, routing_key: str, body: bytes) -> None:
        self._ensure_open()
        if exchange not in self._broker._exchanges:
            raise TransportError(f"Exchange not declared: {exchange}")
        self._broker._route(exchange, routing_key, body)

    async def get(self, queue: str, timeout: float = 1.0) -> Delivery | None:
        self._ensure_open()
        pending = self._broker._queues.get(queue)
        if pending is None:
            raise TransportError(f"Queue not declared: {queue}")
        try:
            message = await asyncio.wait_for(pending.get(), timeout)
        except TimeoutError:
            return None
        if self._closed:
            pending.put_nowait(message)
            raise TransportError("Channel closed while waiting for a message")

        tag = str(next(self._broker._tags))
        self._broker._unacked[tag] = (queue, message, self)
        return Delivery(
            queue=queue,
            delivery_tag=tag,
            body=message.body,
            redelivered=message.redelivered,
        )

    async def ack(self, delivery: Delivery) -> None:
        self._ensure_open()
        self._take(delivery)

    async def nack(self, delivery: Delivery, requeue: bool = False) -> None:
        self._ensure_open()
        queue, message, _ = self._take(delivery)
        if requeue:
            self._broker._queues[queue].put_nowait(_QueuedMessage(message.body, redelivered=True))

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._broker._forget(self)

    def _take(self, delivery: Delivery) -> tuple[str, _QueuedMessage, "InMemoryChannel"]:
        entry = self._broker._unacked.get(delivery.delivery_tag)
        if entry is None or entry[2] is not self:
            raise TransportError(f"Unknown delivery tag: {delivery.delivery_tag}")
        del self._broker._unacked[delivery.delivery_tag]
        return entry

    def _lose(self, error: Exception | None) -> None:
        if self._closed:
            return
        self._closed = True
        self._broker._forget(self)
        self._on_lost(error)
