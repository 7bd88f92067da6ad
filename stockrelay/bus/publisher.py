"""Reliable fact publisher.

Each fact is published independently: it is sent up to max_retries
times with linear backoff, and if every attempt fails it is routed to
the dead-letter exchange. A fact that can be neither delivered nor
dead-lettered is reported to the caller through PublishError once the
rest of the batch has been attempted.
"""

import asyncio
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime

from stockrelay.bus.connection import ConnectionManager
from stockrelay.bus.envelope import (
    MAX_RETRIES_EXCEEDED,
    build_dead_letter,
    build_envelope,
    dead_letter_routing_key,
    encode,
)
from stockrelay.core.circuit_breaker import CircuitBreaker
from stockrelay.core.errors import (
    CircuitOpenError,
    DeadLetterFailedError,
    PublishError,
    ReconnectExhaustedError,
)
from stockrelay.core.event import DomainEvent
from stockrelay.core.logging import get_logger
from stockrelay.core.registry import EventRegistry

DEFAULT_EXCHANGE = "domain_events"
DEFAULT_DEAD_LETTER_EXCHANGE = "domain_events.dead-letter"

# Errors that must not be retried: the operation was never attempted
_TERMINAL_ERRORS = (CircuitOpenError, ReconnectExhaustedError)


@dataclass
class PublisherStats:
    published: int = 0
    retries: int = 0
    dead_lettered: int = 0
    failed: int = 0


class ReliablePublisher:
    """Publishes facts to a topic exchange with retries and dead-lettering.

    Args:
        connection: Provides the channel for each attempt.
        registry: Supplies the schema version stamped into each envelope.
        exchange: Main topic exchange; the routing key is the fact type name.
        dead_letter_exchange: Destination for facts that exhausted retries.
        publisher_name: Recorded in envelope metadata.
        max_retries: Total send attempts per fact before dead-lettering.
        retry_delay: Seconds; attempt n waits retry_delay * n before n + 1.
        circuit_breaker: Wraps every send attempt on the main exchange.
        clock: Returns the current UTC time (publishedAt stamps).
    """

    def __init__(
        self,
        connection: ConnectionManager,
        registry: EventRegistry,
        exchange: str = DEFAULT_EXCHANGE,
        dead_letter_exchange: str = DEFAULT_DEAD_LETTER_EXCHANGE,
        publisher_name: str = "stockrelay",
        max_retries: int = 3,
        retry_delay: float = 1.0,
        circuit_breaker: CircuitBreaker | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        if max_retries < 1:
            raise ValueError("max_retries must be >= 1")
        self._connection = connection
        self._registry = registry
        self.exchange = exchange
        self.dead_letter_exchange = dead_letter_exchange
        self.publisher_name = publisher_name
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.circuit_breaker = circuit_breaker or CircuitBreaker(name="publisher")
        self._clock = clock or (lambda: datetime.now(UTC))
        self._log = get_logger("stockrelay.publisher")
        self._stats = PublisherStats()

    @property
    def stats(self) -> PublisherStats:
        return self._stats

    async def start(self) -> None:
        """Connect and declare the main and dead-letter exchanges."""
        await self._connection.connect()
        channel = self._connection.get_channel()
        await channel.declare_exchange(self.exchange)
        await channel.declare_exchange(self.dead_letter_exchange)
        self._log.info(
            f"Publisher started on exchange: {self.exchange}",
            extra={"exchange": self.exchange, "dead_letter_exchange": self.dead_letter_exchange},
        )

    async def publish(self, events: Sequence[DomainEvent]) -> None:
        """Publish facts in order, each independently.

        Raises:
            PublishError: If any fact could be neither delivered nor
                dead-lettered. Raised after the whole batch was attempted.
            CircuitOpenError: If the breaker is open; nothing further is sent.
            ReconnectExhaustedError: If the broker connection was abandoned.
        """
        failures: list[DeadLetterFailedError] = []
        for event in events:
            try:
                await self._publish_one(event)
            except DeadLetterFailedError as e:
                self._stats.failed += 1
                failures.append(e)

        if failures:
            raise PublishError(failures) from failures[0].original

    async def _publish_one(self, event: DomainEvent) -> None:
        version = self._registry.version_of(event.event_name, default=type(event).EVENT_VERSION)
        last_error: Exception | None = None
        attempt = 1

        while True:
            body = encode(
                build_envelope(
                    event,
                    version=version,
                    publisher=self.publisher_name,
                    attempt=attempt,
                    published_at=self._clock(),
                )
            )
            try:
                await self.circuit_breaker.call(lambda: self._send(event.event_name, body))
            except _TERMINAL_ERRORS as e:
                self._log.error(
                    f"Publish of {event.event_name} aborted: {e}",
                    extra=self._context(event, attempt, error=str(e)),
                )
                raise
            except Exception as e:
                last_error = e
                self._log.warning(
                    f"Publish of {event.event_name} failed (attempt {attempt}/{self.max_retries}): {e}",
                    extra=self._context(event, attempt, error=str(e)),
                )
                if attempt >= self.max_retries:
                    break
                await asyncio.sleep(self.retry_delay * attempt)
                attempt += 1
                self._stats.retries += 1
            else:
                self._stats.published += 1
                self._log.info(
                    f"Published event: {event.event_name}",
                    extra=self._context(event, attempt),
                )
                return

        await self._dead_letter(event, version, attempt, last_error)

    async def _send(self, routing_key: str, body: bytes) -> None:
        channel = self._connection.get_channel()
        await channel.publish(self.exchange, routing_key, body)

    async def _dead_letter(
        self,
        event: DomainEvent,
        version: str,
        attempt: int,
        error: Exception,
    ) -> None:
        now = self._clock()
        envelope = build_envelope(
            event,
            version=version,
            publisher=self.publisher_name,
            attempt=attempt,
            published_at=now,
        )
        message = build_dead_letter(envelope["data"], error, MAX_RETRIES_EXCEEDED, now=now)
        routing_key = dead_letter_routing_key(event.event_name)

        try:
            channel = self._connection.get_channel()
            await channel.publish(self.dead_letter_exchange, routing_key, encode(message))
        except Exception as dl_error:
            self._log.error(
                f"Failed to dead-letter {event.event_name}: {dl_error}",
                extra=self._context(event, attempt, error=str(dl_error), routing_key=routing_key),
            )
            raise DeadLetterFailedError(event, error, dl_error) from dl_error

        self._stats.dead_lettered += 1
        self._log.error(
            f"Event {event.event_name} sent to dead letter exchange after {attempt} attempts",
            extra=self._context(event, attempt, error=str(error), routing_key=routing_key),
        )

    @staticmethod
    def _context(event: DomainEvent, attempt: int, **extra: object) -> dict[str, object]:
        return {
            "event_id": event.event_id.value,
            "event_type": event.event_name,
            "aggregate_id": event.aggregate_id.value,
            "attempt": attempt,
            **extra,
        }
