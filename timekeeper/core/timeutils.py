"""
Wall-clock helpers shared by the resolver, evaluator and aggregator.

All schedule comparisons are done on integer minutes-of-day, never on
"HH:MM" strings.
"""

from __future__ import annotations

import calendar
import re
from datetime import date, datetime, time, timedelta, timezone, tzinfo

from timekeeper.core.exceptions import ValidationError

_HHMM_RE = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")
_OFFSET_RE = re.compile(r"^([+-])(\d{1,2})(?::?(\d{2}))?$")

MINUTES_PER_DAY = 24 * 60
NO_TIME = "--:--"


def parse_hhmm(value: str) -> int:
    """Parse ``"H:MM"`` / ``"HH:MM"`` into minutes after midnight."""
    match = _HHMM_RE.match((value or "").strip())
    if not match:
        raise ValidationError(f"Invalid time of day '{value}', expected HH:MM")
    return int(match.group(1)) * 60 + int(match.group(2))


def format_minutes(minutes: int | None) -> str:
    if minutes is None:
        return NO_TIME
    minutes %= MINUTES_PER_DAY
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def minute_of_day(value: datetime | time) -> int:
    return value.hour * 60 + value.minute


def parse_offset(offset: str) -> timezone:
    """Turn ``"+09:00"`` / ``"-0530"`` into a fixed-offset tzinfo."""
    match = _OFFSET_RE.match((offset or "").strip())
    if not match:
        raise ValidationError(f"Invalid timezone offset '{offset}'")
    sign = 1 if match.group(1) == "+" else -1
    hours = int(match.group(2))
    minutes = int(match.group(3) or 0)
    return timezone(timedelta(hours=sign * hours, minutes=sign * minutes))


def ensure_utc(dt: datetime) -> datetime:
    """Normalise a timestamp to UTC-aware; naive values are taken as UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_local(dt: datetime, tz: tzinfo | None) -> datetime:
    """Local wall-clock view of a punch.

    Naive timestamps coming from storage are UTC; with no ``tz`` the value
    is taken as already being local wall-clock time.
    """
    if tz is None:
        return dt
    return ensure_utc(dt).astimezone(tz)


def elapsed_minutes(start: datetime, end: datetime) -> int:
    """Whole minutes between two instants, floored."""
    return int((ensure_utc(end) - ensure_utc(start)).total_seconds() // 60)


def month_bounds(year: int, month: int, *, min_year: int, max_year: int) -> tuple[date, date]:
    if not min_year <= year <= max_year:
        raise ValidationError(f"Year must be between {min_year} and {max_year}")
    if not 1 <= month <= 12:
        raise ValidationError("Month must be between 1 and 12")
    _, days_in_month = calendar.monthrange(year, month)
    return date(year, month, 1), date(year, month, days_in_month)


def count_weekdays(start: date, end: date) -> int:
    """Count business days (Mon-Fri) in the inclusive range."""
    count = 0
    current = start
    while current <= end:
        if current.weekday() < 5:  # Mon=0 .. Fri=4
            count += 1
        current += timedelta(days=1)
    return count
