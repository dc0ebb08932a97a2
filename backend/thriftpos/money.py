"""
Fixed-point money helpers.

All monetary amounts are Decimal with two places. Comparisons between sums
use MONEY_TOLERANCE to absorb rounding from per-line tax.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
MONEY_TOLERANCE = Decimal("0.01")


def to_money(value) -> Decimal:
    """Coerce int/float/str/Decimal to a two-place Decimal (half-up)."""
    if value is None:
        raise ValueError("amount is required")
    if isinstance(value, bool):
        raise ValueError("amount must be numeric")
    if isinstance(value, float):
        # str() first so 10.99 stays 10.99 instead of its binary expansion
        value = str(value)
    try:
        amount = Decimal(value)
    except (InvalidOperation, TypeError):
        raise ValueError(f"invalid amount: {value!r}")
    if not amount.is_finite():
        raise ValueError(f"invalid amount: {value!r}")
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def amounts_match(a: Decimal, b: Decimal) -> bool:
    return abs(a - b) <= MONEY_TOLERANCE


def money_to_json(value: Decimal | None) -> float | None:
    if value is None:
        return None
    return float(value)
