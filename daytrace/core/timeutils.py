"""
Time helpers
All stored timestamps are timezone-aware UTC datetimes
"""

from datetime import date, datetime, timedelta, timezone
from typing import List, Optional
from zoneinfo import ZoneInfo

HOUR = timedelta(hours=1)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes, convert aware ones to UTC"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_epoch_ms(value: datetime) -> int:
    return int(round(ensure_utc(value).timestamp() * 1000))


def floor_hour(value: datetime) -> datetime:
    return ensure_utc(value).replace(minute=0, second=0, microsecond=0)


def overlap_seconds(
    start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime
) -> float:
    """Length of the intersection of two intervals, never negative"""
    seconds = (min(end_a, end_b) - max(start_a, start_b)).total_seconds()
    return max(0.0, seconds)


def clamp(value: datetime, lower: datetime, upper: datetime) -> datetime:
    return max(lower, min(upper, value))


def local_date(value: datetime, tz_name: Optional[str] = None) -> str:
    """ISO date (YYYY-MM-DD) of ``value`` in the given timezone"""
    tz = ZoneInfo(tz_name) if tz_name else timezone.utc
    return ensure_utc(value).astimezone(tz).date().isoformat()


def is_work_hours(value: datetime, tz_name: Optional[str] = None) -> bool:
    """Weekday between 09:00 and 18:00 local time"""
    tz = ZoneInfo(tz_name) if tz_name else timezone.utc
    local = ensure_utc(value).astimezone(tz)
    return local.weekday() < 5 and 9 <= local.hour < 18


def day_hours(day: date, tz_name: Optional[str] = None) -> List[datetime]:
    """UTC start of every local hour of ``day``

    DST days yield 23 or 25 entries.
    """
    tz = ZoneInfo(tz_name) if tz_name else timezone.utc
    start = datetime(day.year, day.month, day.day, tzinfo=tz).astimezone(timezone.utc)
    next_day = day + timedelta(days=1)
    end = datetime(next_day.year, next_day.month, next_day.day, tzinfo=tz).astimezone(
        timezone.utc
    )
    hours = []
    cursor = start
    while cursor < end:
        hours.append(cursor)
        cursor += HOUR
    return hours


def to_iso(value: datetime) -> str:
    """Fixed-width UTC ISO string; sorts lexicographically in sqlite"""
    return ensure_utc(value).strftime("%Y-%m-%dT%H:%M:%S.%f+00:00")


def from_iso(value: str) -> datetime:
    return ensure_utc(datetime.fromisoformat(value))
