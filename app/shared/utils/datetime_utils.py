"""
Datetime utilities for consistent date and month handling.

IMPORTANT: Month keys are always "YYYY-MM" and month names are always
lower-case English names ("january"). Use these helpers instead of
formatting dates inline so both addressing schemes stay in sync.
"""

import calendar
import re
from datetime import date, datetime, timedelta, timezone
from typing import List, Optional, Union

MONTH_NAMES = [name.lower() for name in calendar.month_name[1:]]

_MONTH_KEY_RE = re.compile(r"^(\d{4})-(\d{2})$")


def utc_now() -> datetime:
    """
    Get the current UTC time as a timezone-aware datetime.

    Returns:
        Timezone-aware datetime in UTC
    """
    return datetime.now(timezone.utc)


def today() -> date:
    """Current UTC calendar date."""
    return utc_now().date()


def to_date(value: Union[date, datetime, str, None]) -> Optional[date]:
    """
    Coerce a date-like value to a date.

    Accepts date, datetime (timezone dropped) and ISO-8601 strings,
    including a trailing "Z".

    Example:
        >>> to_date("2025-08-15T10:00:00Z")
        datetime.date(2025, 8, 15)
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return datetime.fromisoformat(text).date()
        except ValueError:
            return datetime.strptime(text[:10], "%Y-%m-%d").date()
    raise TypeError(f"Cannot convert {type(value).__name__} to date")


def month_key(value: date) -> str:
    """Return the "YYYY-MM" key for a date."""
    return f"{value.year:04d}-{value.month:02d}"


def month_name(key: str) -> str:
    """Return the lower-case month name for a "YYYY-MM" key."""
    _, month = parse_month_key(key)
    return MONTH_NAMES[month - 1]


def parse_month_key(key: str) -> tuple:
    """
    Split a "YYYY-MM" key into (year, month).

    Raises:
        ValueError: If the key is not a valid month key
    """
    match = _MONTH_KEY_RE.match(key or "")
    if not match:
        raise ValueError(f"Invalid month key: {key!r}")
    year, month = int(match.group(1)), int(match.group(2))
    if not 1 <= month <= 12:
        raise ValueError(f"Invalid month in key: {key!r}")
    return year, month


def is_month_key(key: str) -> bool:
    """Check whether a string is a valid "YYYY-MM" key."""
    try:
        parse_month_key(key)
    except ValueError:
        return False
    return True


def month_start(key: str) -> date:
    year, month = parse_month_key(key)
    return date(year, month, 1)


def month_end(key: str) -> date:
    year, month = parse_month_key(key)
    return date(year, month, calendar.monthrange(year, month)[1])


def day_before(value: date) -> date:
    return value - timedelta(days=1)


def months_of_year(year: int) -> List[str]:
    """All twelve month keys of a year, January first."""
    return [f"{year:04d}-{month:02d}" for month in range(1, 13)]


def days_between(first: date, second: date) -> int:
    """Absolute number of days between two dates."""
    return abs((first - second).days)
