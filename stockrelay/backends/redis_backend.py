"""Redis Streams transport.

Broker concepts map onto Redis as follows:
- exchange + routing key -> stream "{exchange}:{routing_key}"
- queue -> consumer group named after the queue on that stream, so every
  queue bound to a routing key receives its own copy of each message
- ack -> XACK
- nack(requeue=True) -> entry stays pending and is reclaimed (XCLAIM)
  once idle for claim_min_idle_ms
- nack(requeue=False) -> XACK, the entry is dropped

Bindings are exact routing keys; topic wildcards are not supported here.
Queue-to-stream bindings are stored in Redis so a new connection can
consume from queues declared by an earlier one.
"""

import logging
from collections.abc import Awaitable, Callable
from typing import Any
from urllib.parse import urlparse, urlunparse
from uuid import uuid4

import redis.asyncio as redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import ResponseError
from redis.exceptions import TimeoutError as RedisTimeoutError

from stockrelay.backends.base import ConnectionLostCallback, Delivery
from stockrelay.core.errors import TransportError

logger = logging.getLogger("stockrelay.redis")

BODY_FIELD = "body"
BINDINGS_KEY = "stockrelay:bindings"


def _sanitize_url(url: str) -> str:
    """Mask password in Redis URL for logging."""
    try:
        parsed = urlparse(url)
        if parsed.password:
            netloc = f"{parsed.username}:****@{parsed.hostname}"
            if parsed.port:
                netloc += f":{parsed.port}"
            return urlunparse(
                (parsed.scheme, netloc, parsed.path, parsed.params, parsed.query, parsed.fragment)
            )
        return f"{parsed.hostname}:{parsed.port or 6379}"
    except ValueError:
        return "<url>"


def stream_key(exchange: str, routing_key: str) -> str:
    return f"{exchange}:{routing_key}"


class RedisStreamsConnector:
    """Connector that opens pooled Redis connections.

    Args:
        redis_url: Redis connection URL.
        consumer_name: Unique consumer name within each group (auto-generated if None).
        pool_size: Connection pool size.
        claim_min_idle_ms: Min idle time before a pending entry is reclaimed.
    """

    def __init__(
        self,
        redis_url: str,
        consumer_name: str | None = None,
        pool_size: int = 10,
        claim_min_idle_ms: int = 30_000,
    ) -> None:
        self._url = redis_url
        self._url_safe = _sanitize_url(redis_url)
        self.consumer_name = consumer_name or f"consumer-{uuid4().hex[:8]}"
        self._pool_size = pool_size
        self._claim_min_idle_ms = claim_min_idle_ms

    async def connect(self, on_lost: ConnectionLostCallback) -> "RedisStreamsChannel":
        pool = redis.ConnectionPool.from_url(
            self._url, max_connections=self._pool_size, decode_responses=True
        )
        client = redis.Redis(connection_pool=pool)

        # Verify new connection works before handing it out
        try:
            await client.ping()
        except Exception:
            await client.aclose()
            raise

        logger.info(f"Connected to Redis at {self._url_safe}")
        return RedisStreamsChannel(
            client,
            consumer_name=self.consumer_name,
            on_lost=on_lost,
            claim_min_idle_ms=self._claim_min_idle_ms,
        )


class RedisStreamsChannel:
    """Channel over one Redis client."""

    def __init__(
        self,
        client: redis.Redis,
        consumer_name: str,
        on_lost: ConnectionLostCallback,
        claim_min_idle_ms: int = 30_000,
    ) -> None:
        self._client = client
        self._consumer_name = consumer_name
        self._on_lost = on_lost
        self._claim_min_idle_ms = claim_min_idle_ms
        self._streams: dict[str, str] = {}
        self._closed = False

    @property
    def is_open(self) -> bool:
        return not self._closed

    async def _call(self, operation: Callable[..., Awaitable[Any]], *args: Any, **kwargs: Any) -> Any:
        """Run a Redis command, reporting connection errors as connection loss."""
        if self._closed:
            raise TransportError("Channel is closed")
        try:
            return await operation(*args, **kwargs)
        except (RedisConnectionError, RedisTimeoutError) as e:
            await self._lose(e)
            raise TransportError(f"Redis connection lost: {e}") from e

    async def declare_exchange(self, exchange: str) -> None:
        # Streams are created lazily by XADD / XGROUP CREATE MKSTREAM
        if self._closed:
            raise TransportError("Channel is closed")

    async def declare_queue(self, queue: str, exchange: str, routing_key: str) -> None:
        if "*" in routing_key or "#" in routing_key:
            raise ValueError(f"Redis transport binds exact routing keys only, got {routing_key!r}")
        stream = stream_key(exchange, routing_key)
        try:
            await self._call(self._client.xgroup_create, stream, queue, id="$", mkstream=True)
            logger.info(f"Created consumer group '{queue}' on '{stream}'")
        except ResponseError as e:
            if "BUSYGROUP" not in str(e):
                raise
            logger.debug(f"Consumer group '{queue}' already exists")
        await self._call(self._client.hset, BINDINGS_KEY, queue, stream)
        self._streams[queue] = stream

    async def publish(self, exchange: str, routing_key: str, body: bytes) -> None:
        stream = stream_key(exchange, routing_key)
        await self._call(self._client.xadd, stream, {BODY_FIELD: body.decode("utf-8")})
        logger.debug(f"Published to {stream}")

    async def _stream_for(self, queue: str) -> str:
        stream = self._streams.get(queue)
        if stream is None:
            stream = await self._call(self._client.hget, BINDINGS_KEY, queue)
            if stream is None:
                raise TransportError(f"Queue not declared: {queue}")
            self._streams[queue] = stream
        return stream

    def _to_delivery(self, queue: str, message: tuple, redelivered: bool) -> Delivery:
        msg_id, fields = message
        return Delivery(
            queue=queue,
            delivery_tag=msg_id,
            body=(fields or {}).get(BODY_FIELD, "").encode("utf-8"),
            redelivered=redelivered,
        )

    async def _recover_pending(self, queue: str, stream: str) -> Delivery | None:
        """Claim a pending entry that has been idle longer than claim_min_idle_ms."""
        try:
            pending = await self._call(
                self._client.xpending_range, stream, queue, min="-", max="+", count=10
            )
        except ResponseError as e:
            logger.warning(f"XPENDING failed on {stream}/{queue}: {e}")
            return None

        for entry in pending:
            if entry["time_since_delivered"] < self._claim_min_idle_ms:
                continue
            claimed = await self._call(
                self._client.xclaim,
                stream,
                queue,
                self._consumer_name,
                min_idle_time=self._claim_min_idle_ms,
                message_ids=[entry["message_id"]],
            )
            if claimed:
                return self._to_delivery(queue, claimed[0], redelivered=True)
        return None

    async def get(self, queue: str, timeout: float = 1.0) -> Delivery | None:
        stream = await self._stream_for(queue)

        recovered = await self._recover_pending(queue, stream)
        if recovered is not None:
            return recovered

        response = await self._call(
            self._client.xreadgroup,
            groupname=queue,
            consumername=self._consumer_name,
            streams={stream: ">"},
            count=1,
            block=max(1, int(timeout * 1000)),
        )
        if not response:
            return None

        _, messages = response[0]
        if not messages:
            return None
        return self._to_delivery(queue, messages[0], redelivered=False)

    async def ack(self, delivery: Delivery) -> None:
        stream = await self._stream_for(delivery.queue)
        await self._call(self._client.xack, stream, delivery.queue, delivery.delivery_tag)

    async def nack(self, delivery: Delivery, requeue: bool = False) -> None:
        if requeue:
            # Left pending; _recover_pending hands it out again once idle
            logger.debug(f"Leaving {delivery.delivery_tag} pending on {delivery.queue}")
            return
        await self.ack(delivery)

    async def delete_stream(self, exchange: str, routing_key: str) -> None:
        """Delete a stream (for testing)."""
        await self._call(self._client.delete, stream_key(exchange, routing_key))

    async def read_stream(self, exchange: str, routing_key: str) -> list[bytes]:
        """Return every body on a stream, oldest first (for inspection)."""
        entries = await self._call(self._client.xrange, stream_key(exchange, routing_key))
        return [fields.get(BODY_FIELD, "").encode("utf-8") for _, fields in entries]

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._client.aclose()
        logger.info("Closed Redis connection")

    async def _lose(self, error: Exception) -> None:
        if self._closed:
            return
        self._closed = True
        logger.warning(f"Redis connection lost: {error}")
        try:
            await self._client.aclose()
        except (RedisConnectionError, OSError) as close_err:
            logger.debug(f"Error closing lost connection: {close_err}")
        self._on_lost(error)
