"""Wire envelope for facts.

Normal message:

    {"data": {"id", "type", "aggregateId", "occurredOn",
              "attributes": {...payload..., "eventVersion"},
              "metadata": {"publishedAt", "publisher", "attempt"}}}

Dead-letter message:

    {"data": {...the failed data block, metadata.failureReason added...},
     "metadata": {"originalMessageId", "failureReason", "subscriber"?},
     "error": {"message", "stack", "timestamp"}}

"subscriber" is present only when a consumer gave up on the message.
"""

import json
import traceback
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

from stockrelay.core.errors import MalformedEventError
from stockrelay.core.event import DomainEvent

DEAD_LETTER_SUFFIX = ".failed"
MAX_RETRIES_EXCEEDED = "max_retries_exceeded"
MALFORMED_MESSAGE = "malformed_message"


def dead_letter_routing_key(event_name: str) -> str:
    return f"{event_name}{DEAD_LETTER_SUFFIX}"


def build_envelope(
    event: DomainEvent,
    *,
    version: str,
    publisher: str,
    attempt: int,
    published_at: datetime | None = None,
) -> dict[str, Any]:
    published_at = published_at or datetime.now(UTC)
    return {
        "data": {
            "id": event.event_id.value,
            "type": event.event_name,
            "aggregateId": event.aggregate_id.value,
            "occurredOn": event.occurred_on.isoformat(),
            "attributes": {**event.to_payload(), "eventVersion": version},
            "metadata": {
                "publishedAt": published_at.isoformat(),
                "publisher": publisher,
                "attempt": attempt,
            },
        }
    }


def build_dead_letter(
    data: Mapping[str, Any] | str | None,
    error: BaseException,
    reason: str,
    *,
    subscriber: str | None = None,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Wrap an envelope's data block (or an unparseable raw body) for dead-lettering."""
    now = now or datetime.now(UTC)
    if isinstance(data, Mapping):
        failed = dict(data)
        metadata = dict(failed.get("metadata") or {})
        original_id = failed.get("id")
    else:
        failed = {"raw": data}
        metadata = {}
        original_id = None

    metadata["failureReason"] = reason
    if subscriber is not None:
        metadata["subscriber"] = subscriber
    failed["metadata"] = metadata

    failure: dict[str, Any] = {"originalMessageId": original_id, "failureReason": reason}
    if subscriber is not None:
        failure["subscriber"] = subscriber

    return {
        "data": failed,
        "metadata": failure,
        "error": {
            "message": str(error),
            "stack": "".join(traceback.format_exception(error)),
            "timestamp": now.isoformat(),
        },
    }


def encode(message: Mapping[str, Any]) -> bytes:
    return json.dumps(message, default=str).encode("utf-8")


def decode(body: bytes) -> dict[str, Any]:
    """Parse a message body.

    Raises:
        MalformedEventError: If the body is not a JSON object.
    """
    try:
        message = json.loads(body)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise MalformedEventError("", f"body is not valid JSON: {e}") from e
    if not isinstance(message, dict):
        raise MalformedEventError("", "body is not a JSON object")
    return message


def unwrap(message: Mapping[str, Any]) -> dict[str, Any]:
    """Return the envelope data block.

    Some producers nest the envelope under "data" and some send it bare;
    both shapes are accepted.
    """
    data = message.get("data")
    if isinstance(data, Mapping):
        return dict(data)
    return dict(message)
