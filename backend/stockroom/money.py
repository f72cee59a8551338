# Overview: Decimal helpers for EUR/DH amounts.

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

TWOPLACES = Decimal("0.01")
ZERO = Decimal("0")


def to_decimal(value) -> Decimal:
    """Coerce int/float/str/Decimal/None to Decimal (None -> 0)."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise InvalidOperation("booleans are not amounts")
    # str() keeps 0.1 as 0.1 instead of its binary expansion
    return Decimal(str(value))


def round2(value) -> Decimal:
    return to_decimal(value).quantize(TWOPLACES, rounding=ROUND_HALF_UP)


def to_float(value) -> float | None:
    """JSON-friendly view of a stored amount."""
    if value is None:
        return None
    return float(value)
