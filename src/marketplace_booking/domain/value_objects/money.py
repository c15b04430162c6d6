"""Fixed-point money helpers.

Amounts are ``Decimal`` values quantized to cents with round-half-up.
Floats never enter the arithmetic; rates are converted via ``str`` first.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Union

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

Numeric = Union[Decimal, int, float, str]


def to_decimal(value: Numeric) -> Decimal:
    """Convert a number to Decimal without inheriting binary float drift."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_money(value: Numeric) -> Decimal:
    """Round an amount to two decimal places, half-up."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def percent_of(amount: Numeric, rate: Numeric) -> Decimal:
    """Return ``amount * rate`` rounded to cents."""
    return round_money(to_decimal(amount) * to_decimal(rate))


def to_minor_units(amount: Numeric) -> int:
    """Convert an amount to integer cents."""
    return int(round_money(amount) * 100)


def from_minor_units(cents: int) -> Decimal:
    """Convert integer cents back to a Decimal amount."""
    return (Decimal(cents) / 100).quantize(CENT)
