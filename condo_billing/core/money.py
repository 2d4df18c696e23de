"""
Money helpers.
All peso amounts are Decimal, rounded HALF_UP to whole centavos.
"""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Any, Iterable

from condo_billing.core.errors import ValidationError

ZERO = Decimal("0")
CENT = Decimal("0.01")


def to_decimal(value: Any) -> Decimal:
    """
    Converts a value to Decimal without going through binary floats.

    Args:
        value: Decimal, int, str or float (floats are converted via str)

    Returns:
        Decimal value (None becomes 0)
    """
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValidationError(f"Not a number: {value!r}")
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"Not a number: {value!r}")


def q2(value: Any) -> Decimal:
    """Rounds to 2 decimal places (HALF_UP)."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def money_sum(values: Iterable[Any]) -> Decimal:
    """Sum of money values as Decimal (empty sum is 0, not int 0)."""
    total = ZERO
    for value in values:
        total += to_decimal(value)
    return total


def format_money(value: Any) -> str:
    """Fixed-point string with 2 decimals, e.g. '3234.85'."""
    return str(q2(value))
