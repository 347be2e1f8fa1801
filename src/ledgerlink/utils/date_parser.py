"""Date parsing utilities."""

import re
from datetime import date, datetime, timedelta
from typing import Iterable
from dateutil import parser as date_parser

_NUMERIC_DATE = re.compile(r"^\s*(\d{1,4})[/.\-](\d{1,2})[/.\-](\d{1,4})")
_COMPACT_DATE = re.compile(r"^\s*(\d{4})(\d{2})(\d{2})")
_EXCEL_EPOCH = date(1899, 12, 30)


def detect_dayfirst(values: Iterable[str]) -> bool:
    """Decide whether a column of numeric dates is day-first or month-first.

    A component greater than 12 settles the question; when every value is
    ambiguous the European day-first order is assumed.

    Args:
        values: Raw date strings from one file

    Returns:
        True for DD/MM/YYYY, False for MM/DD/YYYY
    """
    for raw in values:
        match = _NUMERIC_DATE.match(str(raw or ""))
        if match is None or len(match.group(1)) == 4:
            continue
        first, second = int(match.group(1)), int(match.group(2))
        if first > 12 >= second:
            return True
        if second > 12 >= first:
            return False
    return True


def parse_date(date_str: str, dayfirst: bool = True) -> date:
    """Parse a statement date string into a date object.

    Supports the layouts banks export:
    - ISO dates: "2024-01-15", "2024-01-15T10:30:00"
    - Compact dates: "20240115"
    - Numeric dates: "15/01/2024", "15.01.24", "01-15-2024" (see dayfirst)
    - Written dates: "15 Jan 2024", "January 15, 2024"

    Args:
        date_str: Date string in one of the formats above
        dayfirst: Whether ambiguous numeric dates put the day first

    Returns:
        Date object

    Raises:
        ValueError: If date string cannot be parsed
    """
    if date_str is None or not str(date_str).strip():
        raise ValueError("Empty date string")
    value = str(date_str).strip()

    compact = _COMPACT_DATE.match(value)
    if compact and (len(value) == 8 or len(value) >= 14 or not value[8].isdigit()):
        try:
            return date(int(compact.group(1)), int(compact.group(2)), int(compact.group(3)))
        except ValueError as e:
            raise ValueError(f"Could not parse date '{value}': {e}")

    numeric = _NUMERIC_DATE.match(value)
    if numeric:
        first, second, third = (int(g) for g in numeric.groups())
        if len(numeric.group(1)) == 4:
            year, month, day = first, second, third
        else:
            day, month = (first, second) if dayfirst else (second, first)
            year = third + 2000 if third < 100 else third
        try:
            return date(year, month, day)
        except ValueError as e:
            raise ValueError(f"Could not parse date '{value}': {e}")

    try:
        dt = date_parser.parse(value, dayfirst=dayfirst)
        return dt.date()
    except (ValueError, TypeError, OverflowError) as e:
        raise ValueError(f"Could not parse date '{value}': {e}")


def parse_ofx_date(value: str) -> date:
    """Parse an OFX timestamp (YYYYMMDD[HHMMSS[.XXX]][[TZ]]) into a date.

    Raises:
        ValueError: If the value does not start with a valid YYYYMMDD
    """
    match = _COMPACT_DATE.match(value or "")
    if match is None:
        raise ValueError(f"Could not parse OFX date '{value}'")
    try:
        return date(int(match.group(1)), int(match.group(2)), int(match.group(3)))
    except ValueError as e:
        raise ValueError(f"Could not parse OFX date '{value}': {e}")


def coerce_date(value: object, dayfirst: bool = True) -> date:
    """Turn a spreadsheet cell into a date.

    Accepts datetime/date objects, Excel serial numbers and strings.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        if not 0 < value < 2958466:
            raise ValueError(f"Could not parse date '{value}': serial out of range")
        return _EXCEL_EPOCH + timedelta(days=int(value))
    return parse_date(str(value), dayfirst=dayfirst)


def window(center: date, days: int) -> tuple[date, date]:
    """Return the inclusive (start, end) range of ±days around a date."""
    return center - timedelta(days=days), center + timedelta(days=days)


def days_between(first: date, second: date) -> int:
    """Absolute number of days separating two dates."""
    return abs((first - second).days)
