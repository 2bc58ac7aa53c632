from __future__ import annotations

import calendar
from datetime import date, datetime
from typing import Optional, Union

MONTH_LABELS = ["Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]
QUARTER_LABELS = ["Q1", "Q2", "Q3", "Q4"]


def parse_local_date(value: Union[str, date, None]) -> Optional[date]:
    """Parse a calendar date without any timezone shift.

    Accepts ``YYYY-MM-DD`` (optionally followed by a time part), ``YYYY-MM``
    and the spreadsheet style ``M/D/YYYY`` or ``M/D/YY``. Anything else is
    treated as missing.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = value.strip()
    if not text:
        return None
    try:
        if "/" in text:
            month_text, day_text, year_text = text.split("/")
            year = int(year_text)
            if len(year_text) == 2:
                year += 2000
            return date(year, int(month_text), int(day_text))
        parts = text[:10].split("-")
        if len(parts) == 2:
            return date(int(parts[0]), int(parts[1]), 1)
        if len(parts) == 3:
            return date(int(parts[0]), int(parts[1]), int(parts[2]))
    except ValueError:
        return None
    return None


def month_key(value: Union[str, date, None]) -> Optional[str]:
    parsed = parse_local_date(value)
    if parsed is None:
        return None
    return f"{parsed.year:04d}-{parsed.month:02d}"


def month_label(key: str) -> str:
    year, month = key.split("-")
    return f"{MONTH_LABELS[int(month) - 1]}'{year[2:]}"


def quarter_of(value: date) -> int:
    return (value.month - 1) // 3 + 1


def quarter_label(value: date) -> str:
    return QUARTER_LABELS[quarter_of(value) - 1]


def month_end(year: int, month: int) -> date:
    return date(year, month, calendar.monthrange(year, month)[1])


def add_months(value: date, months: int) -> date:
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    return date(year, month, 1)
