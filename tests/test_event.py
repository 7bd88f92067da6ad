"""Tests for the DomainEvent model and the concrete fact types."""

from datetime import UTC, datetime

import pytest
from hypothesis import given
from hypothesis import strategies as st
from pydantic import ValidationError

from stockrelay.core.errors import InconsistentAdjustmentError, MalformedEventError
from stockrelay.core.identifiers import Identifier, Quantity
from stockrelay.inventory.events import (
    AdjustmentType,
    StockItemCreated,
    StockItemReservationReleased,
    StockItemReserved,
    StockQuantityAdjusted,
)
from stockrelay.logistics.events import PackageDelivered, PackageLocationUpdated

ITEM_ID = "6f1c0d4e-8a2b-4c3d-9e5f-0a1b2c3d4e5f"


def reserved(quantity: int = 5, reservation: str = "R1", **kwargs) -> StockItemReserved:
    return StockItemReserved(
        aggregate_id=ITEM_ID,
        stock_item_id=ITEM_ID,
        reserved_quantity=Quantity(quantity),
        reservation_identifier=reservation,
        **kwargs,
    )


class TestDomainEvent:
    def test_defaults_event_id_and_timestamp(self):
        event = reserved()
        assert isinstance(event.event_id, Identifier)
        assert event.occurred_on.tzinfo is not None

    def test_naive_timestamp_is_treated_as_utc(self):
        event = reserved(occurred_on=datetime(2024, 1, 1, 12, 0))
        assert event.occurred_on == datetime(2024, 1, 1, 12, 0, tzinfo=UTC)

    def test_is_immutable(self):
        event = reserved()
        with pytest.raises(ValidationError):
            event.reservation_identifier = "R2"

    def test_rejects_unknown_fields(self):
        with pytest.raises(ValidationError):
            StockItemReserved(
                aggregate_id=ITEM_ID,
                stock_item_id=ITEM_ID,
                reserved_quantity=Quantity(1),
                reservation_identifier="R1",
                surprise=True,
            )

    def test_equality_ignores_event_id_and_timestamp(self):
        a = reserved(occurred_on=datetime(2024, 1, 1, tzinfo=UTC))
        b = reserved(occurred_on=datetime(2025, 6, 1, tzinfo=UTC))
        assert a.event_id != b.event_id
        assert a == b
        assert hash(a) == hash(b)

    def test_different_payload_is_not_equal(self):
        assert reserved(quantity=5) != reserved(quantity=6)
        assert reserved(reservation="R1") != reserved(reservation="R2")

    def test_payload_is_camel_case_without_metadata(self):
        assert reserved().to_payload() == {
            "stockItemId": ITEM_ID,
            "reservedQuantity": 5,
            "reservationIdentifier": "R1",
        }

    def test_optional_none_fields_are_omitted(self):
        event = StockItemReservationReleased(
            aggregate_id=ITEM_ID,
            stock_item_id=ITEM_ID,
            released_quantity=Quantity(3),
            reservation_identifier="R1",
        )
        assert "reason" not in event.to_payload()

    def test_to_primitives_is_flat(self):
        event = reserved()
        primitives = event.to_primitives()
        assert primitives["aggregateId"] == ITEM_ID
        assert primitives["eventId"] == event.event_id.value
        assert primitives["eventName"] == "inventory.stock_item.reserved"
        assert primitives["reservedQuantity"] == 5


class TestFromPrimitives:
    def test_flat_form(self):
        original = reserved()
        rebuilt = StockItemReserved.from_primitives(original.to_primitives())
        assert rebuilt == original
        assert rebuilt.event_id == original.event_id
        assert rebuilt.occurred_on == original.occurred_on

    def test_envelope_form_with_attributes(self):
        original = reserved()
        data = {
            "id": original.event_id.value,
            "type": original.event_name,
            "aggregateId": ITEM_ID,
            "occurredOn": original.occurred_on.isoformat(),
            "attributes": {**original.to_payload(), "eventVersion": "1.0.0"},
        }
        rebuilt = StockItemReserved.from_primitives(data)
        assert rebuilt == original
        assert rebuilt.event_id == original.event_id

    def test_missing_payload_field_fails(self):
        data = reserved().to_primitives()
        del data["reservedQuantity"]
        with pytest.raises(MalformedEventError) as exc_info:
            StockItemReserved.from_primitives(data)
        assert "reservedQuantity" in str(exc_info.value)

    def test_invalid_payload_value_fails(self):
        data = reserved().to_primitives()
        data["reservedQuantity"] = -3
        with pytest.raises(MalformedEventError):
            StockItemReserved.from_primitives(data)

    def test_type_mismatch_fails(self):
        data = reserved().to_primitives()
        with pytest.raises(MalformedEventError):
            StockItemCreated.from_primitives(data)

    def test_non_mapping_fails(self):
        with pytest.raises(MalformedEventError):
            StockItemReserved.from_primitives(["not", "a", "dict"])

    def test_inconsistent_adjustment_on_the_wire_is_malformed(self):
        data = {
            "aggregateId": ITEM_ID,
            "stockItemId": ITEM_ID,
            "originalQuantity": 10,
            "newQuantity": 12,
            "adjustmentQuantity": 5,
            "adjustmentType": "ADDITION",
        }
        with pytest.raises(MalformedEventError):
            StockQuantityAdjusted.from_primitives(data)

    @given(
        quantity=st.integers(min_value=1, max_value=10_000),
        reservation=st.text(min_size=1, max_size=20),
    )
    def test_flat_form_rebuilds_equal_fact(self, quantity: int, reservation: str):
        original = reserved(quantity=quantity, reservation=reservation)
        assert StockItemReserved.from_primitives(original.to_primitives()) == original


class TestStockQuantityAdjusted:
    def adjusted(self, original: int, new: int, amount: int, kind: AdjustmentType):
        return StockQuantityAdjusted(
            aggregate_id=ITEM_ID,
            stock_item_id=ITEM_ID,
            original_quantity=Quantity(original),
            new_quantity=Quantity(new),
            adjustment_quantity=Quantity(amount),
            adjustment_type=kind,
        )

    def test_consistent_addition_and_reduction(self):
        assert self.adjusted(10, 15, 5, AdjustmentType.ADDITION).new_quantity == Quantity(15)
        assert self.adjusted(10, 4, 6, AdjustmentType.REDUCTION).new_quantity == Quantity(4)

    def test_inconsistent_arithmetic_fails(self):
        with pytest.raises(InconsistentAdjustmentError):
            self.adjusted(10, 14, 5, AdjustmentType.ADDITION)

    def test_reduction_beyond_original_fails(self):
        with pytest.raises(InconsistentAdjustmentError):
            self.adjusted(3, 0, 4, AdjustmentType.REDUCTION)

    def test_adjustment_type_serializes_as_string(self):
        payload = self.adjusted(10, 15, 5, AdjustmentType.ADDITION).to_payload()
        assert payload["adjustmentType"] == "ADDITION"


class TestLogisticsEvents:
    def test_location_is_trimmed_and_required(self):
        event = PackageLocationUpdated(aggregate_id=ITEM_ID, location="  Dock 4 ")
        assert event.location == "Dock 4"
        with pytest.raises(ValidationError):
            PackageLocationUpdated(aggregate_id=ITEM_ID, location="  ")

    def test_delivered_at_serializes_as_iso_string(self):
        when = datetime(2024, 3, 1, 9, 30, tzinfo=UTC)
        event = PackageDelivered(aggregate_id=ITEM_ID, delivered_at=when)
        delivered_at = event.to_payload()["deliveredAt"]
        assert isinstance(delivered_at, str)
        assert datetime.fromisoformat(delivered_at.replace("Z", "+00:00")) == when
