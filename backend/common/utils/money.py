"""Rounding helpers for amounts that leave the pricing engine."""

from decimal import Decimal, ROUND_HALF_UP

TWO_PLACES = Decimal("0.01")


def to_money(value) -> Decimal:
    """Quantize a float/Decimal/str amount to 2 decimal places."""
    if value is None:
        value = 0
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def round2(value) -> float:
    """Round to 2 decimals for JSON payloads."""
    return float(to_money(value))
