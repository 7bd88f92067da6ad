"""Reliable delivery of facts between capabilities."""

from stockrelay.bus.connection import ConnectionManager
from stockrelay.bus.consumer import ConsumerStats, DurableConsumer, QueueBinding, queue_name
from stockrelay.bus.publisher import PublisherStats, ReliablePublisher

__all__ = [
    "ConnectionManager",
    "ConsumerStats",
    "DurableConsumer",
    "PublisherStats",
    "QueueBinding",
    "ReliablePublisher",
    "queue_name",
]
