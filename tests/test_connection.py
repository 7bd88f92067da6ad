"""Tests for the broker connection manager."""

import asyncio

import pytest

from stockrelay.backends.inmemory import InMemoryBroker
from stockrelay.bus.connection import ConnectionManager
from stockrelay.core.errors import ChannelUnavailableError, ReconnectExhaustedError


class SlowConnector(InMemoryBroker):
    """In-memory broker whose connect() takes a while."""

    def __init__(self, delay: float) -> None:
        super().__init__()
        self._delay = delay

    async def connect(self, on_lost):
        await asyncio.sleep(self._delay)
        return await super().connect(on_lost)


async def wait_until(predicate, timeout: float = 2.0) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.005)


class TestConnect:
    async def test_get_channel_before_connect_fails_fast(self):
        manager = ConnectionManager(InMemoryBroker())
        with pytest.raises(ChannelUnavailableError):
            manager.get_channel()

    async def test_connect_is_idempotent(self):
        broker = InMemoryBroker()
        manager = ConnectionManager(broker)

        await manager.connect()
        channel = manager.get_channel()
        await manager.connect()

        assert manager.get_channel() is channel
        assert broker.connect_attempts == 1
        await manager.close()

    @pytest.mark.timeout(5)
    async def test_concurrent_callers_share_one_attempt(self):
        broker = SlowConnector(delay=0.05)
        manager = ConnectionManager(broker)

        await asyncio.gather(*(manager.connect() for _ in range(5)))

        assert broker.connect_attempts == 1
        assert broker.open_channels == 1
        await manager.close()

    async def test_initial_connect_failure_propagates(self):
        broker = InMemoryBroker()
        broker.available = False
        manager = ConnectionManager(broker)

        with pytest.raises(ConnectionRefusedError):
            await manager.connect()
        assert not manager.is_connected


class TestReconnect:
    @pytest.mark.timeout(5)
    async def test_reconnects_after_connection_loss(self):
        broker = InMemoryBroker()
        manager = ConnectionManager(broker, max_reconnect_attempts=3, base_reconnect_delay=0.01)
        await manager.connect()
        first = manager.get_channel()

        broker.drop_connections()
        with pytest.raises(ChannelUnavailableError):
            manager.get_channel()

        await wait_until(lambda: manager.is_connected)
        assert manager.get_channel() is not first
        assert manager.reconnect_attempts == 0
        await manager.close()

    @pytest.mark.timeout(5)
    async def test_backoff_keeps_trying_until_broker_returns(self):
        broker = InMemoryBroker()
        manager = ConnectionManager(broker, max_reconnect_attempts=5, base_reconnect_delay=0.01)
        await manager.connect()

        broker.available = False
        broker.drop_connections()
        await wait_until(lambda: broker.connect_attempts >= 3)
        broker.available = True

        await wait_until(lambda: manager.is_connected)
        assert not manager.gave_up
        await manager.close()

    @pytest.mark.timeout(5)
    async def test_gives_up_after_max_attempts(self):
        broker = InMemoryBroker()
        manager = ConnectionManager(broker, max_reconnect_attempts=3, base_reconnect_delay=0.01)
        await manager.connect()

        broker.available = False
        broker.drop_connections()
        await manager.reconnect_task

        assert manager.gave_up
        assert broker.connect_attempts == 4
        with pytest.raises(ReconnectExhaustedError) as exc_info:
            manager.get_channel()
        assert exc_info.value.attempts == 3

    @pytest.mark.timeout(5)
    async def test_explicit_connect_recovers_after_giving_up(self):
        broker = InMemoryBroker()
        manager = ConnectionManager(broker, max_reconnect_attempts=1, base_reconnect_delay=0.01)
        await manager.connect()
        broker.available = False
        broker.drop_connections()
        await manager.reconnect_task
        assert manager.gave_up

        broker.available = True
        await manager.connect()

        assert not manager.gave_up
        assert manager.get_channel() is not None
        await manager.close()

    @pytest.mark.timeout(5)
    async def test_close_does_not_trigger_reconnect(self):
        broker = InMemoryBroker()
        manager = ConnectionManager(broker, base_reconnect_delay=0.01)
        await manager.connect()

        await manager.close()
        await asyncio.sleep(0.05)

        assert manager.reconnect_task is None
        assert broker.connect_attempts == 1
        assert broker.open_channels == 0

    @pytest.mark.timeout(5)
    async def test_close_cancels_pending_reconnect(self):
        broker = InMemoryBroker()
        manager = ConnectionManager(broker, base_reconnect_delay=10)
        await manager.connect()
        broker.drop_connections()
        task = manager.reconnect_task

        await manager.close()

        assert task.done()
        assert broker.connect_attempts == 1
