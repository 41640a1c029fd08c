"""Decimal helpers for fund amounts"""

from decimal import Decimal, InvalidOperation
from typing import Any

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value: Any) -> Decimal:
    """Coerce a DB/JSON value to a 2-place Decimal (None counts as zero)"""
    if value is None:
        return ZERO
    if isinstance(value, float):
        # SQLite aggregates come back as floats
        value = str(value)
    try:
        amount = Decimal(value)
    except (InvalidOperation, TypeError, ValueError) as e:
        raise ValueError(f"Not a monetary amount: {value!r}") from e
    if not amount.is_finite():
        raise ValueError(f"Not a monetary amount: {value!r}")
    return amount.quantize(CENT)


def format_rm(amount: Decimal) -> str:
    """Render an amount the way notifications show it (RM1,234.50)"""
    return f"RM{to_money(amount):,.2f}"
