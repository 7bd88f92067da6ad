"""Immutable, self-validating value objects shared by every capability."""

import re
from typing import Any
from uuid import uuid4

from pydantic import ConfigDict, RootModel, field_validator

# UUID v4 regex pattern for validation
_UUID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-4[0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)

# Upper bound for any stock quantity
MAX_QUANTITY = 1_000_000_000


class Identifier(RootModel[str]):
    """UUID v4 identifier, normalized to lowercase.

    Equality and hashing are by value, so two identifiers built from the
    same string (in any case) are interchangeable.
    """

    model_config = ConfigDict(frozen=True)

    @field_validator("root")
    @classmethod
    def validate_uuid(cls, v: str) -> str:
        """Ensure the value is a valid UUID v4 string."""
        if not _UUID_PATTERN.match(v):
            raise ValueError(f"Invalid UUID: {v!r}")
        return v.lower()

    @classmethod
    def random(cls) -> "Identifier":
        return cls(str(uuid4()))

    @property
    def value(self) -> str:
        return self.root

    def __str__(self) -> str:
        return self.root

    def __hash__(self) -> int:
        return hash(self.root)


class Quantity(RootModel[int]):
    """Non-negative integer quantity bounded by MAX_QUANTITY.

    Arithmetic returns new instances; a subtraction that would go below
    zero fails the same way constructing a negative quantity does.
    """

    model_config = ConfigDict(frozen=True, strict=True)

    @field_validator("root")
    @classmethod
    def validate_bounds(cls, v: int) -> int:
        if v < 0:
            raise ValueError("Quantity cannot be negative")
        if v > MAX_QUANTITY:
            raise ValueError(f"Quantity too large (max {MAX_QUANTITY})")
        return v

    @classmethod
    def zero(cls) -> "Quantity":
        return cls(0)

    @property
    def value(self) -> int:
        return self.root

    def add(self, other: "Quantity") -> "Quantity":
        return Quantity(self.root + other.root)

    def subtract(self, other: "Quantity") -> "Quantity":
        return Quantity(self.root - other.root)

    def is_greater_than_or_equal(self, other: "Quantity") -> bool:
        return self.root >= other.root

    def is_zero(self) -> bool:
        return self.root == 0

    def _coerce(self, other: Any) -> int:
        if isinstance(other, Quantity):
            return other.root
        if isinstance(other, int) and not isinstance(other, bool):
            return other
        return NotImplemented

    def __lt__(self, other: Any) -> bool:
        value = self._coerce(other)
        return NotImplemented if value is NotImplemented else self.root < value

    def __le__(self, other: Any) -> bool:
        value = self._coerce(other)
        return NotImplemented if value is NotImplemented else self.root <= value

    def __gt__(self, other: Any) -> bool:
        value = self._coerce(other)
        return NotImplemented if value is NotImplemented else self.root > value

    def __ge__(self, other: Any) -> bool:
        value = self._coerce(other)
        return NotImplemented if value is NotImplemented else self.root >= value

    def __int__(self) -> int:
        return self.root

    def __str__(self) -> str:
        return str(self.root)

    def __hash__(self) -> int:
        return hash(self.root)
