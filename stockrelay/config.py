"""Runtime configuration for StockRelay.

Settings are read from environment variables prefixed with STOCKRELAY_,
for example STOCKRELAY_MAX_RETRIES=5 or STOCKRELAY_BROKER_URL=redis://...
All delays are in seconds.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from stockrelay.backends.base import Connector
from stockrelay.bus.connection import ConnectionManager
from stockrelay.bus.consumer import DurableConsumer
from stockrelay.bus.publisher import ReliablePublisher
from stockrelay.core.circuit_breaker import CircuitBreaker
from stockrelay.core.registry import EventRegistry

MAX_RECOVERY_TIMEOUT = 3600.0


class RelaySettings(BaseSettings):
    """Options consumed by the delivery layer."""

    model_config = SettingsConfigDict(
        env_prefix="STOCKRELAY_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    broker_url: str = "redis://localhost:6379"
    exchange: str = "domain_events"
    dead_letter_exchange: str = "domain_events.dead-letter"
    publisher_name: str = "stockrelay"

    # Publish and consume retries
    max_retries: int = Field(default=3, ge=1)
    retry_delay: float = Field(default=1.0, ge=0)

    # Circuit breaker around publish attempts
    failure_threshold: int = Field(default=5, ge=1)
    # Seconds, not milliseconds: STOCKRELAY_RECOVERY_TIMEOUT=60 is one minute.
    # Capped at an hour so a millisecond value fails loudly at startup.
    recovery_timeout: float = Field(default=60.0, ge=0, le=MAX_RECOVERY_TIMEOUT)
    success_threshold: int = Field(default=3, ge=1)

    # Connection manager
    max_reconnect_attempts: int = Field(default=10, ge=0)
    base_reconnect_delay: float = Field(default=1.0, ge=0)

    # Consumer loop
    poll_timeout: float = Field(default=1.0, gt=0)
    handler_timeout: float = Field(default=30.0, gt=0)

    # Redis Streams transport
    claim_min_idle_ms: int = Field(default=30_000, ge=0)

    log_level: str = "INFO"

    def circuit_breaker(self, name: str = "publisher") -> CircuitBreaker:
        return CircuitBreaker(
            failure_threshold=self.failure_threshold,
            recovery_timeout=self.recovery_timeout,
            success_threshold=self.success_threshold,
            name=name,
        )

    def connection_manager(self, connector: Connector) -> ConnectionManager:
        return ConnectionManager(
            connector,
            max_reconnect_attempts=self.max_reconnect_attempts,
            base_reconnect_delay=self.base_reconnect_delay,
        )

    def publisher(self, connection: ConnectionManager, registry: EventRegistry) -> ReliablePublisher:
        return ReliablePublisher(
            connection,
            registry,
            exchange=self.exchange,
            dead_letter_exchange=self.dead_letter_exchange,
            publisher_name=self.publisher_name,
            max_retries=self.max_retries,
            retry_delay=self.retry_delay,
            circuit_breaker=self.circuit_breaker(),
        )

    def consumer(self, connection: ConnectionManager, registry: EventRegistry) -> DurableConsumer:
        return DurableConsumer(
            connection,
            registry,
            exchange=self.exchange,
            dead_letter_exchange=self.dead_letter_exchange,
            max_retries=self.max_retries,
            retry_delay=self.retry_delay,
            poll_timeout=self.poll_timeout,
            handler_timeout=self.handler_timeout,
        )
