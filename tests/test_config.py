"""Tests for environment-driven settings."""

import pytest
from pydantic import ValidationError

from stockrelay.backends.inmemory import InMemoryBroker
from stockrelay.catalog import create_default_registry
from stockrelay.config import RelaySettings
from stockrelay.core.circuit_breaker import CircuitState


def test_defaults():
    settings = RelaySettings()
    assert settings.exchange == "domain_events"
    assert settings.dead_letter_exchange == "domain_events.dead-letter"
    assert settings.max_retries == 3
    assert settings.retry_delay == 1.0
    assert settings.failure_threshold == 5
    assert settings.recovery_timeout == 60.0
    assert settings.success_threshold == 3


def test_reads_prefixed_environment(monkeypatch):
    monkeypatch.setenv("STOCKRELAY_MAX_RETRIES", "7")
    monkeypatch.setenv("STOCKRELAY_EXCHANGE", "facts")
    monkeypatch.setenv("STOCKRELAY_RETRY_DELAY", "0.25")

    settings = RelaySettings()

    assert settings.max_retries == 7
    assert settings.exchange == "facts"
    assert settings.retry_delay == 0.25


def test_factories_carry_settings():
    settings = RelaySettings(
        max_retries=5,
        retry_delay=0.5,
        failure_threshold=2,
        max_reconnect_attempts=4,
        handler_timeout=3.0,
        exchange="facts",
    )
    registry = create_default_registry()
    connection = settings.connection_manager(InMemoryBroker())
    publisher = settings.publisher(connection, registry)
    consumer = settings.consumer(connection, registry)

    assert connection.max_reconnect_attempts == 4
    assert publisher.max_retries == 5
    assert publisher.exchange == "facts"
    assert publisher.circuit_breaker.failure_threshold == 2
    assert publisher.circuit_breaker.state is CircuitState.CLOSED
    assert consumer.max_retries == 5
    assert consumer.handler_timeout == 3.0
    assert consumer.retry_delay == 0.5


def test_recovery_timeout_is_seconds(monkeypatch):
    monkeypatch.setenv("STOCKRELAY_RECOVERY_TIMEOUT", "90")
    assert RelaySettings().circuit_breaker().recovery_timeout == 90.0


def test_recovery_timeout_in_milliseconds_is_rejected(monkeypatch):
    monkeypatch.setenv("STOCKRELAY_RECOVERY_TIMEOUT", "60000")
    with pytest.raises(ValidationError) as exc_info:
        RelaySettings()
    assert "recovery_timeout" in str(exc_info.value)
