"""Broker transports for fact delivery."""

from stockrelay.backends.base import Channel, Connector, Delivery, topic_matches
from stockrelay.backends.inmemory import InMemoryBroker, InMemoryChannel, PublishedMessage
from stockrelay.backends.redis_backend import RedisStreamsChannel, RedisStreamsConnector

__all__ = [
    "Channel",
    "Connector",
    "Delivery",
    "InMemoryBroker",
    "InMemoryChannel",
    "PublishedMessage",
    "RedisStreamsChannel",
    "RedisStreamsConnector",
    "topic_matches",
]
