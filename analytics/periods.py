"""Month and date helpers shared by the analytics modules."""

from __future__ import annotations

import calendar
from datetime import date, datetime
from typing import List, Tuple, Union


def parse_month(month: str) -> Tuple[int, int]:
    """Split a "YYYY-MM" string into (year, month)."""
    parts = str(month).strip().split("-")
    if len(parts) < 2:
        raise ValueError(f"Invalid month format: {month}")
    try:
        year = int(parts[0])
        mon = int(parts[1])
    except ValueError:
        raise ValueError(f"Invalid month format: {month}")
    if mon < 1 or mon > 12:
        raise ValueError(f"Invalid month value: {month}")
    return year, mon


def format_month(year: int, month: int) -> str:
    return f"{year:04d}-{month:02d}"


def shift_month(month: str, offset: int) -> str:
    """Move a "YYYY-MM" month by `offset` months (negative goes back)."""
    year, mon = parse_month(month)
    index = year * 12 + (mon - 1) + offset
    return format_month(index // 12, index % 12 + 1)


def generate_months(start_month: str, end_month: str) -> List[str]:
    """
    Generate list of months between start and end (inclusive).

    Args:
        start_month: Start month "YYYY-MM"
        end_month: End month "YYYY-MM"

    Returns:
        List of months ["YYYY-MM", ...]
    """
    months = []
    year, month = parse_month(start_month)
    end_year, end_mon = parse_month(end_month)

    while (year, month) <= (end_year, end_mon):
        months.append(format_month(year, month))
        month += 1
        if month > 12:
            month = 1
            year += 1

    return months


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def month_dates(year: int, month: int) -> List[str]:
    """Every ISO date of the month, in order."""
    return [
        date(year, month, day).isoformat()
        for day in range(1, days_in_month(year, month) + 1)
    ]


def month_start(month: str) -> str:
    year, mon = parse_month(month)
    return date(year, mon, 1).isoformat()


def month_end(month: str) -> str:
    """Last calendar day of the month (inclusive bound)."""
    year, mon = parse_month(month)
    return date(year, mon, days_in_month(year, mon)).isoformat()


def next_month_start(month: str) -> str:
    """First day of the following month (exclusive bound)."""
    return month_start(shift_month(month, 1))


def month_of(iso_date: str) -> str:
    """"YYYY-MM" part of an ISO date."""
    return str(iso_date)[:7]


def parse_iso(value: Union[str, date, datetime]) -> datetime:
    """Parse an ISO-8601 date or datetime into a datetime."""
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1]
    return datetime.fromisoformat(text)


def days_between(start: Union[str, date, datetime], end: Union[str, date, datetime]) -> float:
    """Elapsed days from start to end, fractional for datetimes."""
    delta = parse_iso(end) - parse_iso(start)
    return delta.total_seconds() / 86400.0
