"""Unit tests for money helpers."""

from decimal import Decimal

from src.marketplace_booking.domain.value_objects.money import (
    from_minor_units,
    percent_of,
    round_money,
    to_decimal,
    to_minor_units,
)


class TestMoney:
    """Test cases for fixed-point money helpers."""

    def test_round_half_up(self):
        assert round_money(Decimal("6.825")) == Decimal("6.83")
        assert round_money(Decimal("2.275")) == Decimal("2.28")
        assert round_money(Decimal("2.274")) == Decimal("2.27")

    def test_float_input_goes_through_str(self):
        """0.1 + 0.2 style drift does not leak into amounts."""
        assert to_decimal(0.1) == Decimal("0.1")
        assert round_money(1.005) == Decimal("1.01")

    def test_percent_of(self):
        assert percent_of(Decimal("45.50"), Decimal("0.15")) == Decimal("6.83")
        assert percent_of(Decimal("200.00"), Decimal("0.50")) == Decimal("100.00")

    def test_minor_units(self):
        assert to_minor_units(Decimal("54.61")) == 5461
        assert from_minor_units(5461) == Decimal("54.61")
        assert from_minor_units(0) == Decimal("0.00")
