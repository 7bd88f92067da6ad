"""Tests for the wire envelope helpers."""

from datetime import UTC, datetime

import pytest

from stockrelay.bus.envelope import (
    MALFORMED_MESSAGE,
    build_dead_letter,
    build_envelope,
    dead_letter_routing_key,
    decode,
    encode,
    unwrap,
)
from stockrelay.core.errors import MalformedEventError
from stockrelay.core.identifiers import Quantity
from stockrelay.inventory.events import StockItemCreated

ITEM_ID = "6f1c0d4e-8a2b-4c3d-9e5f-0a1b2c3d4e5f"
NOW = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)


def created() -> StockItemCreated:
    return StockItemCreated(aggregate_id=ITEM_ID, name="Widget", quantity=Quantity(1))


def test_dead_letter_routing_key():
    assert (
        dead_letter_routing_key("inventory.stock_item.created")
        == "inventory.stock_item.created.failed"
    )


def test_envelope_decodes_back_to_the_same_data():
    message = build_envelope(created(), version="2.0.0", publisher="p", attempt=1, published_at=NOW)
    decoded = decode(encode(message))
    assert decoded == message
    assert decoded["data"]["attributes"]["eventVersion"] == "2.0.0"


@pytest.mark.parametrize("body", [b"", b"not json", b"[1, 2]", b"\xff\xfe"])
def test_decode_rejects_non_objects(body: bytes):
    with pytest.raises(MalformedEventError):
        decode(body)


def test_unwrap_accepts_nested_and_bare_shapes():
    message = build_envelope(created(), version="1.0.0", publisher="p", attempt=1)
    assert unwrap(message) == message["data"]
    assert unwrap(message["data"]) == message["data"]


def test_dead_letter_keeps_data_and_adds_failure_details():
    data = build_envelope(created(), version="1.0.0", publisher="p", attempt=2)["data"]
    try:
        raise ValueError("bad things")
    except ValueError as e:
        error = e

    message = build_dead_letter(data, error, MALFORMED_MESSAGE, subscriber="audit", now=NOW)

    assert message["data"]["id"] == data["id"]
    assert message["data"]["metadata"]["attempt"] == 2
    assert message["data"]["metadata"]["failureReason"] == MALFORMED_MESSAGE
    assert message["data"]["metadata"]["subscriber"] == "audit"
    assert message["metadata"] == {
        "originalMessageId": data["id"],
        "failureReason": MALFORMED_MESSAGE,
        "subscriber": "audit",
    }
    assert message["error"]["message"] == "bad things"
    assert "ValueError: bad things" in message["error"]["stack"]
    assert message["error"]["timestamp"] == NOW.isoformat()
    assert "failureReason" not in data["metadata"]


def test_dead_letter_wraps_raw_bodies():
    message = build_dead_letter("garbage", ValueError("x"), MALFORMED_MESSAGE, now=NOW)
    assert message["data"] == {"raw": "garbage", "metadata": {"failureReason": MALFORMED_MESSAGE}}
    assert message["metadata"] == {"originalMessageId": None, "failureReason": MALFORMED_MESSAGE}
