"""Broker connection manager.

The ConnectionManager owns the single logical connection and channel to
the broker. It is the only component allowed to create or replace the
channel; everything else borrows it for one call via get_channel().
"""

import asyncio

from stockrelay.backends.base import Channel, Connector
from stockrelay.core.errors import ChannelUnavailableError, ReconnectExhaustedError
from stockrelay.core.logging import get_logger

# Reconnect defaults
DEFAULT_MAX_RECONNECT_ATTEMPTS = 10
DEFAULT_BASE_RECONNECT_DELAY = 1.0


class ConnectionManager:
    """Connect, watch for connection loss, and reconnect with backoff.

    After an unexpected loss the manager clears its channel and retries in
    the background, waiting base_reconnect_delay * 2**n before attempt n
    (n starting at 0). Once max_reconnect_attempts are spent it gives up,
    and the next get_channel() raises ReconnectExhaustedError.

    Args:
        connector: Opens broker connections.
        max_reconnect_attempts: Background reconnect attempts after a loss.
        base_reconnect_delay: Seconds before the first reconnect attempt.
    """

    def __init__(
        self,
        connector: Connector,
        max_reconnect_attempts: int = DEFAULT_MAX_RECONNECT_ATTEMPTS,
        base_reconnect_delay: float = DEFAULT_BASE_RECONNECT_DELAY,
    ) -> None:
        self._connector = connector
        self.max_reconnect_attempts = max_reconnect_attempts
        self.base_reconnect_delay = base_reconnect_delay
        self._log = get_logger("stockrelay.connection")

        self._channel: Channel | None = None
        self._generation = 0
        self._conn_lock = asyncio.Lock()
        self._reconnect_attempts = 0
        self._reconnect_task: asyncio.Task[None] | None = None
        self._gave_up = False
        self._closing = False

    @property
    def is_connected(self) -> bool:
        return self._channel is not None

    @property
    def gave_up(self) -> bool:
        return self._gave_up

    @property
    def reconnect_attempts(self) -> int:
        return self._reconnect_attempts

    @property
    def reconnect_task(self) -> asyncio.Task[None] | None:
        return self._reconnect_task

    async def connect(self) -> None:
        """Open the connection unless one is already live.

        Concurrent callers share a single attempt: whoever arrives while a
        connect is in flight waits for it instead of starting another.
        """
        # Fast path: already connected
        if self._channel is not None:
            return

        async with self._conn_lock:
            # Re-check after acquiring lock - another coroutine may have connected
            if self._channel is not None:
                return

            self._closing = False
            generation = self._generation + 1

            def on_lost(error: Exception | None) -> None:
                self._handle_connection_lost(generation, error)

            channel = await self._connector.connect(on_lost)

            self._generation = generation
            self._channel = channel
            self._reconnect_attempts = 0
            self._gave_up = False
            self._log.info("Broker connected", extra={"generation": generation})

    def get_channel(self) -> Channel:
        """Return the live channel.

        Raises:
            ReconnectExhaustedError: If reconnection was abandoned.
            ChannelUnavailableError: If there is no live channel right now.
        """
        if self._channel is None:
            if self._gave_up:
                raise ReconnectExhaustedError(self._reconnect_attempts)
            raise ChannelUnavailableError("Broker channel not initialized")
        return self._channel

    async def close(self) -> None:
        self._closing = True
        if self._reconnect_task is not None and not self._reconnect_task.done():
            self._reconnect_task.cancel()
            try:
                await self._reconnect_task
            except asyncio.CancelledError:
                pass
        channel, self._channel = self._channel, None
        if channel is not None:
            await channel.close()
            self._log.info("Broker connection closed")

    def _handle_connection_lost(self, generation: int, error: Exception | None) -> None:
        if self._closing or generation != self._generation:
            return

        self._channel = None
        if error is not None:
            self._log.error(f"Broker connection error: {error}", extra={"error": str(error)})
        else:
            self._log.warning("Broker connection closed")

        if self._reconnect_task is None or self._reconnect_task.done():
            self._reconnect_task = asyncio.get_running_loop().create_task(self._reconnect())

    async def _reconnect(self) -> None:
        while self._reconnect_attempts < self.max_reconnect_attempts:
            delay = self.base_reconnect_delay * (2**self._reconnect_attempts)
            self._reconnect_attempts += 1
            self._log.info(
                f"Attempting to reconnect in {delay}s (attempt {self._reconnect_attempts})",
                extra={"attempt": self._reconnect_attempts, "delay": delay},
            )
            await asyncio.sleep(delay)
            if self._closing:
                return
            try:
                await self.connect()
                return
            except Exception as e:
                self._log.error(
                    f"Reconnection failed: {e}",
                    extra={"attempt": self._reconnect_attempts, "error": str(e)},
                )

        self._gave_up = True
        self._log.error(
            "Max reconnection attempts reached",
            extra={"attempt": self._reconnect_attempts},
        )
