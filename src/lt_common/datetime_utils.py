"""UTC datetime and calendar-month utilities.

Business dates arrive already resolved by the caller; nothing here converts
between time zones. Month helpers are plain calendar arithmetic on dates.
"""

import calendar
from datetime import date, datetime, timezone


def utc_now() -> datetime:
    """Return timezone-aware UTC now."""
    return datetime.now(timezone.utc)


def month_start(day: date) -> date:
    return day.replace(day=1)


def month_end(day: date) -> date:
    return day.replace(day=calendar.monthrange(day.year, day.month)[1])


def previous_month(day: date) -> date:
    """First day of the month before the one containing `day`."""
    if day.month == 1:
        return date(day.year - 1, 12, 1)
    return date(day.year, day.month - 1, 1)


def month_key(day: date) -> str:
    """2026-03-14 -> '2026-03'."""
    return f"{day.year:04d}-{day.month:02d}"


def parse_month_key(key: str) -> date:
    """'2026-03' -> date(2026, 3, 1). Raises ValueError on malformed input."""
    year_str, month_str = key.split("-")
    return date(int(year_str), int(month_str), 1)


def next_month(day: date) -> date:
    """First day of the month after the one containing `day`."""
    if day.month == 12:
        return date(day.year + 1, 1, 1)
    return date(day.year, day.month + 1, 1)
