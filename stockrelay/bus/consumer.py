"""Durable fact consumer.

For every (subscriber, fact type) pair the consumer declares one durable
queue named "{type}.{subscriber}" bound to the main exchange with the
type name as routing key, so each subscriber receives every fact of the
types it wants regardless of who else is listening.

Per delivery:
1. Parse the envelope (bare or nested under "data").
2. Rebuild the typed fact through the registry. Malformed messages are
   dead-lettered at once; retrying them cannot help.
3. Invoke the handler, retrying up to max_retries times with linear
   backoff.
4. Ack after the handler returns. When retries are exhausted, dead-letter
   the message tagged with the subscriber's name, then ack. If the
   dead-letter send fails the delivery is requeued instead.
"""

import asyncio
import inspect
from collections import defaultdict
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from stockrelay.backends.base import Channel, Delivery
from stockrelay.bus.connection import ConnectionManager
from stockrelay.bus.envelope import (
    MALFORMED_MESSAGE,
    MAX_RETRIES_EXCEEDED,
    build_dead_letter,
    dead_letter_routing_key,
    decode,
    encode,
    unwrap,
)
from stockrelay.bus.publisher import DEFAULT_DEAD_LETTER_EXCHANGE, DEFAULT_EXCHANGE
from stockrelay.core.errors import (
    ChannelUnavailableError,
    MalformedEventError,
    ReconnectExhaustedError,
    UnknownEventTypeError,
)
from stockrelay.core.event import DomainEvent
from stockrelay.core.logging import get_logger
from stockrelay.core.registry import EventRegistry
from stockrelay.core.subscriber import Subscriber


@dataclass
class ConsumerStats:
    """Statistics from a consumer run."""

    processed: int = 0
    retries: int = 0
    dead_lettered: int = 0
    malformed: int = 0
    requeued: int = 0
    transport_errors: int = 0
    handler_errors: dict[str, int] = field(default_factory=lambda: defaultdict(int))


@dataclass(frozen=True)
class QueueBinding:
    """One durable queue feeding one subscriber with one fact type."""

    queue: str
    event_name: str
    subscriber: Subscriber


def queue_name(event_name: str, subscriber: Subscriber) -> str:
    return f"{event_name}.{subscriber.name}"


class DurableConsumer:
    """Delivers facts from durable queues to subscribers.

    Args:
        connection: Provides the channel; borrowed for each poll.
        registry: Rebuilds typed facts from wire data.
        exchange: Main topic exchange the queues are bound to.
        dead_letter_exchange: Destination for messages that cannot be handled.
        max_retries: Handler retries after the first failed attempt.
        retry_delay: Seconds; retry n waits retry_delay * n.
        poll_timeout: Seconds each receive waits for a message.
        handler_timeout: Seconds a single handler invocation may take.
    """

    def __init__(
        self,
        connection: ConnectionManager,
        registry: EventRegistry,
        exchange: str = DEFAULT_EXCHANGE,
        dead_letter_exchange: str = DEFAULT_DEAD_LETTER_EXCHANGE,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        poll_timeout: float = 1.0,
        handler_timeout: float = 30.0,
    ) -> None:
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        self._connection = connection
        self._registry = registry
        self.exchange = exchange
        self.dead_letter_exchange = dead_letter_exchange
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.poll_timeout = poll_timeout
        self.handler_timeout = handler_timeout
        self._log = get_logger("stockrelay.consumer")
        self._stats = ConsumerStats()
        self._bindings: list[QueueBinding] = []
        self._tasks: list[asyncio.Task[None]] = []
        self._running = False

    @property
    def stats(self) -> ConsumerStats:
        return self._stats

    @property
    def bindings(self) -> list[QueueBinding]:
        return list(self._bindings)

    @property
    def running(self) -> bool:
        return self._running

    def _validate_subscribers(self, subscribers: Sequence[Subscriber]) -> None:
        for subscriber in subscribers:
            if not isinstance(subscriber.subscribed_to, list):
                raise TypeError(
                    f"{subscriber.name}.subscribed_to must be a list[str], "
                    f"got {type(subscriber.subscribed_to).__name__}"
                )
            for item in subscriber.subscribed_to:
                if not isinstance(item, str):
                    raise TypeError(
                        f"{subscriber.name}.subscribed_to must contain only strings, "
                        f"found {type(item).__name__}: {item!r}"
                    )
                # Fail at startup rather than on the first message
                self._registry.resolve(item)

    async def bind(self, subscribers: Sequence[Subscriber]) -> list[QueueBinding]:
        """Declare exchanges and one durable queue per (subscriber, fact type)."""
        self._validate_subscribers(subscribers)
        await self._connection.connect()
        channel = self._connection.get_channel()
        await channel.declare_exchange(self.exchange)
        await channel.declare_exchange(self.dead_letter_exchange)

        bindings = []
        for subscriber in subscribers:
            for event_name in subscriber.subscribed_to:
                binding = QueueBinding(queue_name(event_name, subscriber), event_name, subscriber)
                await channel.declare_queue(binding.queue, self.exchange, event_name)
                bindings.append(binding)
                if binding not in self._bindings:
                    self._bindings.append(binding)
                self._log.info(
                    f"Listening to: {event_name}",
                    extra={"queue": binding.queue, "subscriber": subscriber.name},
                )
        return bindings

    async def start(self, subscribers: Sequence[Subscriber]) -> None:
        """Bind and start one consume loop per queue."""
        bindings = await self.bind(subscribers)
        self._running = True
        loop = asyncio.get_running_loop()
        for binding in bindings:
            self._tasks.append(loop.create_task(self._consume(binding), name=binding.queue))

    async def stop(self) -> None:
        self._running = False
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    async def wait(self) -> None:
        """Wait for the consume loops; re-raises the first one that failed."""
        await asyncio.gather(*self._tasks)

    async def _consume(self, binding: QueueBinding) -> None:
        while self._running:
            try:
                await self.poll(binding)
            except ReconnectExhaustedError as e:
                self._log.error(
                    f"Stopping consumer for {binding.queue}: {e}",
                    extra={"queue": binding.queue, "subscriber": binding.subscriber.name},
                )
                raise
            except ChannelUnavailableError:
                await asyncio.sleep(self.poll_timeout)
            except Exception as e:
                self._stats.transport_errors += 1
                self._log.error(
                    f"Receive failed on {binding.queue}: {e}",
                    extra={"queue": binding.queue, "error": str(e)},
                )
                await asyncio.sleep(self.poll_timeout)

    async def poll(self, binding: QueueBinding, timeout: float | None = None) -> bool:
        """Receive and process at most one message from a queue.

        Returns:
            True if a message was received, False on timeout.
        """
        channel = self._connection.get_channel()
        delivery = await channel.get(binding.queue, timeout=timeout or self.poll_timeout)
        if delivery is None:
            return False
        await self.process(channel, binding, delivery)
        return True

    async def process(self, channel: Channel, binding: QueueBinding, delivery: Delivery) -> None:
        subscriber = binding.subscriber
        data: dict[str, Any] | None = None
        try:
            data = unwrap(decode(delivery.body))
            event = self._reconstruct(data, binding.event_name)
        except (MalformedEventError, UnknownEventTypeError) as e:
            self._stats.malformed += 1
            self._log.error(
                f"Malformed message on {binding.queue}: {e}",
                extra={"queue": binding.queue, "subscriber": subscriber.name, "error": str(e)},
            )
            raw = data if data is not None else delivery.body.decode("utf-8", errors="replace")
            await self._dead_letter(channel, binding, delivery, raw, e, MALFORMED_MESSAGE)
            return

        context = {
            "event_id": event.event_id.value,
            "event_type": event.event_name,
            "aggregate_id": event.aggregate_id.value,
            "subscriber": subscriber.name,
            "queue": binding.queue,
        }
        max_attempts = self.max_retries + 1
        last_error: Exception | None = None

        for attempt in range(1, max_attempts + 1):
            self._log.info(
                f"Processing event: {event.event_name} (attempt {attempt})",
                extra={**context, "attempt": attempt},
            )
            try:
                await self._invoke_handler(subscriber, event)
            except Exception as e:
                last_error = e
                self._stats.handler_errors[subscriber.name] += 1
                self._log.error(
                    f"Error processing event {event.event_name} (attempt {attempt}): {e}",
                    extra={**context, "attempt": attempt, "error": str(e)},
                )
                if attempt < max_attempts:
                    self._stats.retries += 1
                    await asyncio.sleep(self.retry_delay * attempt)
                continue

            await channel.ack(delivery)
            self._stats.processed += 1
            self._log.info(f"Successfully processed event: {event.event_name}", extra=context)
            return

        self._log.error(
            f"Event {event.event_name} permanently failed after retries. "
            "Sending to dead letter exchange.",
            extra=context,
        )
        await self._dead_letter(channel, binding, delivery, data, last_error, MAX_RETRIES_EXCEEDED)

    def _reconstruct(self, data: dict[str, Any], fallback_name: str) -> DomainEvent:
        event_name = data.get("type") or fallback_name
        return self._registry.reconstruct(event_name, data)

    async def _invoke_handler(self, subscriber: Subscriber, event: DomainEvent) -> None:
        """Invoke handler with timeout."""
        result = subscriber.handle(event)
        if inspect.isawaitable(result):
            try:
                await asyncio.wait_for(result, timeout=self.handler_timeout)
            except TimeoutError:
                raise TimeoutError(
                    f"Handler {subscriber.name} timed out after {self.handler_timeout}s"
                )

    async def _dead_letter(
        self,
        channel: Channel,
        binding: QueueBinding,
        delivery: Delivery,
        data: dict[str, Any] | str | None,
        error: BaseException,
        reason: str,
    ) -> None:
        message = build_dead_letter(data, error, reason, subscriber=binding.subscriber.name)
        routing_key = dead_letter_routing_key(binding.event_name)
        try:
            await channel.publish(self.dead_letter_exchange, routing_key, encode(message))
        except Exception as dl_error:
            # Keep the message rather than lose it; it comes back later
            self._stats.requeued += 1
            self._log.error(
                f"Failed to send failed event to dead letter exchange: {dl_error}",
                extra={
                    "queue": binding.queue,
                    "subscriber": binding.subscriber.name,
                    "routing_key": routing_key,
                    "error": str(dl_error),
                },
            )
            await channel.nack(delivery, requeue=True)
            return

        await channel.ack(delivery)
        self._stats.dead_lettered += 1
        self._log.warning(
            f"Dead-lettered message from {binding.queue}: {reason}",
            extra={
                "queue": binding.queue,
                "subscriber": binding.subscriber.name,
                "routing_key": routing_key,
                "failure_reason": reason,
            },
        )
