"""
Billing period utilities.
Billing periods are 'YYYY-MM' strings (e.g. '2025-12').
"""

from datetime import date
from typing import List, Tuple

from condo_billing.config import settings
from condo_billing.core.errors import ValidationError


def parse_period(period: str) -> Tuple[int, int]:
    """
    Parses a billing period.

    Args:
        period: Billing period in 'YYYY-MM' format

    Returns:
        Tuple (year, month)
    """
    try:
        year_str, month_str = period.split("-")
        year, month = int(year_str), int(month_str)
    except (AttributeError, ValueError):
        raise ValidationError(f"Invalid billing month format: {period!r} (expected YYYY-MM)")
    if not 1 <= month <= 12 or len(year_str) != 4:
        raise ValidationError(f"Invalid billing month format: {period!r} (expected YYYY-MM)")
    return year, month


def format_period(year: int, month: int) -> str:
    return f"{year:04d}-{month:02d}"


def months_between(start: str, end: str) -> int:
    """Number of calendar months from start to end (negative if end is earlier)."""
    start_year, start_month = parse_period(start)
    end_year, end_month = parse_period(end)
    return (end_year - start_year) * 12 + (end_month - start_month)


def shift_period(period: str, months: int) -> str:
    year, month = parse_period(period)
    index = year * 12 + (month - 1) + months
    return format_period(index // 12, index % 12 + 1)


def next_period(period: str) -> str:
    return shift_period(period, 1)


def previous_period(period: str) -> str:
    return shift_period(period, -1)


def period_range(start: str, count: int) -> List[str]:
    """Returns `count` consecutive periods starting at `start`."""
    return [shift_period(start, i) for i in range(count)]


def statement_date(period: str) -> date:
    """Statement date: the statement day of the billing month."""
    year, month = parse_period(period)
    return date(year, month, settings.statement_day)


def due_date(period: str) -> date:
    """Due date: the due day of the month following the billing month."""
    year, month = parse_period(next_period(period))
    return date(year, month, settings.due_day)


def reading_period_for(period: str) -> str:
    """
    Meter readings used by a bill.
    The bill for month X is computed from readings taken in month X-1.
    """
    return previous_period(period)
