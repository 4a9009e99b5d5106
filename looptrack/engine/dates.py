"""Logical-day helpers.

A user's day ends at ``day_cutoff_hour`` in their own timezone, so "today" for a
user who is up at 01:30 with a 3am cutoff is still yesterday's calendar date.
TaskInstance dates are stored as the logical day at (naive) midnight.
"""

from datetime import date, datetime, time as dtime, timedelta, timezone
from typing import Iterable, Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from looptrack.models.constants import DEFAULT_DAY_CUTOFF_HOUR, DEFAULT_TIMEZONE


def to_naive_utc(value: datetime) -> datetime:
    """Convert an aware datetime to naive UTC; naive values are assumed to be UTC already."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def to_midnight(day: Union[date, datetime]) -> datetime:
    if isinstance(day, datetime):
        day = day.date()
    return datetime.combine(day, dtime(0, 0))


def day_bounds(day: date) -> tuple[datetime, datetime]:
    """Half-open interval [midnight, next midnight) of a logical day."""
    start = to_midnight(day)
    return start, start + timedelta(days=1)


def daterange(start: date, end_exclusive: date) -> Iterable[date]:
    cur = start
    while cur < end_exclusive:
        yield cur
        cur = cur + timedelta(days=1)


def parse_day(value: Union[str, date, datetime, None]) -> Optional[date]:
    """Parse a client-supplied day ("YYYY-MM-DD" or an ISO datetime).

    The date part is taken as written: the client already sends logical days.

    Raises:
        ValueError: if the value cannot be parsed
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value:
        raise ValueError(f"invalid date: {value!r}")
    text = value.strip()
    if len(text) == 10:
        return date.fromisoformat(text)
    return datetime.fromisoformat(text.replace("Z", "+00:00")).date()


def parse_timestamp(value: Union[str, datetime, None]) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp into naive UTC."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return to_naive_utc(value)
    if not isinstance(value, str) or not value:
        raise ValueError(f"invalid timestamp: {value!r}")
    return to_naive_utc(datetime.fromisoformat(value.strip().replace("Z", "+00:00")))


def _zone(name: Optional[str]) -> ZoneInfo:
    try:
        return ZoneInfo(name or DEFAULT_TIMEZONE)
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo(DEFAULT_TIMEZONE)


def logical_day(
    instant_utc: datetime,
    tz_name: Optional[str] = DEFAULT_TIMEZONE,
    day_cutoff_hour: int = DEFAULT_DAY_CUTOFF_HOUR,
) -> date:
    """Logical day of a user at a given (naive UTC) instant."""
    aware = instant_utc.replace(tzinfo=timezone.utc) if instant_utc.tzinfo is None else instant_utc
    local = aware.astimezone(_zone(tz_name))
    return (local - timedelta(hours=day_cutoff_hour or 0)).date()


def logical_today(user, now: Optional[datetime] = None) -> date:
    """Logical "today" for a user (anything with ``timezone`` and ``day_cutoff_hour``)."""
    return logical_day(
        now or datetime.utcnow(),
        getattr(user, "timezone", DEFAULT_TIMEZONE),
        getattr(user, "day_cutoff_hour", DEFAULT_DAY_CUTOFF_HOUR),
    )


def days_between(earlier: date, later: date) -> int:
    """Whole days from ``earlier`` midnight to ``later`` midnight."""
    return (to_midnight(later) - to_midnight(earlier)) // timedelta(days=1)
