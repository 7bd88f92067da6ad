"""Tests for the shared value objects."""

import pytest
from hypothesis import given
from hypothesis import strategies as st
from pydantic import ValidationError

from stockrelay.core.identifiers import MAX_QUANTITY, Identifier, Quantity
from stockrelay.inventory.stock_item import StockItemName
from stockrelay.logistics.package import TrackingNumber


class TestIdentifier:
    def test_accepts_uuid_v4_and_lowercases(self):
        ident = Identifier("6F1C0D4E-8A2B-4C3D-9E5F-0A1B2C3D4E5F")
        assert ident.value == "6f1c0d4e-8a2b-4c3d-9e5f-0a1b2c3d4e5f"

    @pytest.mark.parametrize(
        "value",
        [
            "",
            "not-a-uuid",
            "6f1c0d4e-8a2b-1c3d-9e5f-0a1b2c3d4e5f",  # version 1
            "6f1c0d4e-8a2b-4c3d-7e5f-0a1b2c3d4e5f",  # bad variant
        ],
    )
    def test_rejects_invalid_values(self, value: str):
        with pytest.raises(ValidationError):
            Identifier(value)

    def test_equality_is_by_value(self):
        upper = Identifier("6F1C0D4E-8A2B-4C3D-9E5F-0A1B2C3D4E5F")
        lower = Identifier("6f1c0d4e-8a2b-4c3d-9e5f-0a1b2c3d4e5f")
        assert upper == lower
        assert hash(upper) == hash(lower)
        assert len({upper, lower}) == 1

    def test_random_identifiers_differ(self):
        assert Identifier.random() != Identifier.random()


class TestQuantity:
    @given(value=st.integers(min_value=0, max_value=MAX_QUANTITY))
    def test_accepts_bounded_non_negative_integers(self, value: int):
        assert Quantity(value).value == value

    @pytest.mark.parametrize("value", [-1, MAX_QUANTITY + 1])
    def test_rejects_out_of_range(self, value: int):
        with pytest.raises(ValidationError):
            Quantity(value)

    @pytest.mark.parametrize("value", [1.5, "3", True])
    def test_rejects_non_integers(self, value):
        with pytest.raises(ValidationError):
            Quantity(value)

    def test_arithmetic_returns_new_instances(self):
        a = Quantity(10)
        assert a.add(Quantity(5)) == Quantity(15)
        assert a.subtract(Quantity(4)) == Quantity(6)
        assert a == Quantity(10)

    def test_subtract_below_zero_fails(self):
        with pytest.raises(ValidationError):
            Quantity(3).subtract(Quantity(4))

    def test_comparisons(self):
        assert Quantity(5).is_greater_than_or_equal(Quantity(5))
        assert not Quantity(4).is_greater_than_or_equal(Quantity(5))
        assert Quantity(3) < Quantity(4)
        assert Quantity(3) <= 3
        assert Quantity(5) > 4
        assert Quantity.zero().is_zero()


class TestStockItemName:
    def test_trims_whitespace(self):
        assert StockItemName("  Widget  ").value == "Widget"

    @pytest.mark.parametrize("value", ["", "   ", "x" * 101])
    def test_rejects_empty_or_too_long(self, value: str):
        with pytest.raises(ValidationError):
            StockItemName(value)

    def test_accepts_max_length(self):
        assert len(StockItemName("x" * 100).value) == 100


class TestTrackingNumber:
    def test_generate_produces_valid_numbers(self):
        number = TrackingNumber.generate()
        assert len(number.value) == 10
        assert number.value.isalnum()
        assert number.value == number.value.upper()

    @pytest.mark.parametrize("value", ["ABC", "abcdefghij", "ABCDE-1234", "ABCDEFGHIJK"])
    def test_rejects_bad_format(self, value: str):
        with pytest.raises(ValidationError):
            TrackingNumber(value)
