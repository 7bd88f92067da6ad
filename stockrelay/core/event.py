"""Domain event model for StockRelay."""

import json
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from stockrelay.core.errors import DomainError, MalformedEventError
from stockrelay.core.identifiers import Identifier

# Fields every event carries that are not part of its payload
METADATA_FIELDS = frozenset({"aggregate_id", "event_id", "occurred_on"})


def _summarize(error: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in err['loc']) or 'event'}: {err['msg']}"
        for err in error.errors()
    )


class DomainEvent(BaseModel):
    """Immutable fact about one aggregate instance.

    Concrete events declare EVENT_NAME (the routing key on the wire) and
    their payload as regular fields. Payload field names are serialized in
    camelCase.

    Events are:
    - Immutable (frozen after creation)
    - Validated (all fields checked on construction)
    - Compared by origin, type and payload; event_id and occurred_on are
      ignored so a re-recorded fact equals the original.

    Attributes:
        aggregate_id: Identifier of the aggregate that recorded the fact.
        event_id: UUID v4, auto-generated if not provided.
        occurred_on: UTC datetime, auto-generated if not provided.
    """

    EVENT_NAME: ClassVar[str] = ""
    EVENT_VERSION: ClassVar[str] = "1.0.0"

    aggregate_id: Identifier
    event_id: Identifier = Field(default_factory=Identifier.random)
    occurred_on: datetime = Field(default_factory=lambda: datetime.now(UTC))

    model_config = ConfigDict(
        extra="forbid",
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    @field_validator("occurred_on")
    @classmethod
    def validate_occurred_on(cls, v: datetime) -> datetime:
        """Treat naive timestamps as UTC."""
        if v.tzinfo is None:
            return v.replace(tzinfo=UTC)
        return v

    @property
    def event_name(self) -> str:
        return type(self).EVENT_NAME

    def to_payload(self) -> dict[str, Any]:
        """Return the type-specific payload in its JSON-compatible wire shape."""
        return self.model_dump(
            mode="json",
            by_alias=True,
            exclude=set(METADATA_FIELDS),
            exclude_none=True,
        )

    def to_primitives(self) -> dict[str, Any]:
        return {
            "aggregateId": self.aggregate_id.value,
            "eventId": self.event_id.value,
            "occurredOn": self.occurred_on.isoformat(),
            "eventName": self.event_name,
            **self.to_payload(),
        }

    @classmethod
    def from_primitives(cls, primitives: Mapping[str, Any]) -> "DomainEvent":
        """Rebuild a typed event from its flat or envelope form.

        Accepts the flat form produced by to_primitives() as well as the
        envelope data form, where the payload sits under "attributes" and
        the event id and type are carried as "id" and "type".

        Raises:
            MalformedEventError: If required fields are missing or invalid,
                or the declared type does not match this class.
        """
        if not isinstance(primitives, Mapping):
            raise MalformedEventError(cls.EVENT_NAME, "event data must be an object")

        attributes = primitives.get("attributes")
        payload = attributes if isinstance(attributes, Mapping) else primitives

        declared = primitives.get("type") or primitives.get("eventName")
        if declared and declared != cls.EVENT_NAME:
            raise MalformedEventError(
                cls.EVENT_NAME, f"type mismatch: message declares {declared!r}"
            )

        data: dict[str, Any] = {
            "aggregateId": primitives.get("aggregateId"),
            "eventId": primitives.get("id") or primitives.get("eventId"),
            "occurredOn": primitives.get("occurredOn"),
        }
        for name, field in cls.model_fields.items():
            if name in METADATA_FIELDS:
                continue
            alias = field.alias or name
            if alias in payload:
                data[alias] = payload[alias]

        try:
            return cls.model_validate({k: v for k, v in data.items() if v is not None})
        except ValidationError as e:
            raise MalformedEventError(cls.EVENT_NAME, _summarize(e)) from e
        except DomainError as e:
            raise MalformedEventError(cls.EVENT_NAME, str(e)) from e

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DomainEvent):
            return NotImplemented
        return (
            self.aggregate_id == other.aggregate_id
            and self.event_name == other.event_name
            and self.to_payload() == other.to_payload()
        )

    def __hash__(self) -> int:
        return hash(
            (
                self.aggregate_id.value,
                self.event_name,
                json.dumps(self.to_payload(), sort_keys=True),
            )
        )
