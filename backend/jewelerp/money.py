# Overview: Decimal helpers for rupee amounts, weights and percentages.

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP

CURRENCY_QUANT = Decimal("0.01")
WEIGHT_QUANT = Decimal("0.001")
RUPEE_QUANT = Decimal("1")

ZERO = Decimal("0")
HUNDRED = Decimal("100")


def to_decimal(value) -> Decimal:
    """Coerce ints, floats, strings and None into Decimal (None -> 0)."""
    if value is None or value == "":
        return ZERO
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        # str() first so 0.1 stays 0.1 instead of its binary expansion
        return Decimal(str(value))
    return Decimal(value)


def q2(value) -> Decimal:
    """Round a rupee amount to paise."""
    return to_decimal(value).quantize(CURRENCY_QUANT, rounding=ROUND_HALF_UP)


def q3(value) -> Decimal:
    """Round a weight to milligrams."""
    return to_decimal(value).quantize(WEIGHT_QUANT, rounding=ROUND_HALF_UP)


def round_rupee(value) -> Decimal:
    return to_decimal(value).quantize(RUPEE_QUANT, rounding=ROUND_HALF_UP)


def percent_of(amount, percentage) -> Decimal:
    """amount * percentage / 100, unrounded."""
    return to_decimal(amount) * to_decimal(percentage) / HUNDRED


def as_str(value) -> str | None:
    """Serialize Decimal columns for JSON; keeps precision the DB returned."""
    if value is None:
        return None
    return str(value)
