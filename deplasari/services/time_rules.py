"""
Time helpers.
Handles UTC normalisation, month/day ranges and the fixed display offsets
applied to GPS and local timestamps.
"""
from datetime import datetime, date, timedelta
from typing import Optional, Tuple
import pytz
from ..config import settings


def utcnow() -> datetime:
    return datetime.now(tz=pytz.UTC)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Return a timezone-aware UTC datetime.

    Naive values are assumed to already be UTC (SQLite drops tzinfo on the
    way out); aware values are converted.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=pytz.UTC)
    return dt.astimezone(pytz.UTC)


def shift_hours(dt: Optional[datetime], hours: int) -> Optional[datetime]:
    if dt is None:
        return None
    return ensure_utc(dt) + timedelta(hours=hours)


def gps_display_time(dt: Optional[datetime]) -> Optional[datetime]:
    """Presence rows are recorded in UTC; operators read them shifted by the fixed offset."""
    return shift_hours(dt, settings.gps_display_offset_hours)


def month_range(month: Optional[str] = None, now: Optional[datetime] = None) -> Tuple[datetime, datetime]:
    """
    Start (inclusive) and end (exclusive) of a calendar month.

    Args:
        month: "YYYY-MM"; defaults to the month of ``now``
        now: reference time (defaults to current UTC time)

    Returns:
        Tuple of UTC datetimes (first instant of month, first instant of next month)

    Raises:
        ValueError: if ``month`` is not in YYYY-MM format
    """
    if month:
        try:
            year_s, month_s = month.split("-")
            year, mon = int(year_s), int(month_s)
        except ValueError:
            raise ValueError("Invalid month format. Expected YYYY-MM")
        if not 1 <= mon <= 12:
            raise ValueError("Invalid month format. Expected YYYY-MM")
    else:
        ref = ensure_utc(now) if now else utcnow()
        year, mon = ref.year, ref.month
    start = datetime(year, mon, 1, tzinfo=pytz.UTC)
    if mon == 12:
        end = datetime(year + 1, 1, 1, tzinfo=pytz.UTC)
    else:
        end = datetime(year, mon + 1, 1, tzinfo=pytz.UTC)
    return start, end


def day_range(start: date, end: date) -> Tuple[datetime, datetime]:
    """Both days inclusive; the returned end bound is exclusive."""
    start_dt = datetime(start.year, start.month, start.day, tzinfo=pytz.UTC)
    end_dt = datetime(end.year, end.month, end.day, tzinfo=pytz.UTC) + timedelta(days=1)
    return start_dt, end_dt


def resolve_range(
    start: Optional[date] = None,
    end: Optional[date] = None,
    now: Optional[datetime] = None,
) -> Tuple[datetime, datetime]:
    """Explicit day range when both bounds are given, else the current month."""
    if start and end:
        return day_range(start, end)
    return month_range(now=now)


def in_range(dt: Optional[datetime], start: datetime, end: datetime) -> bool:
    if dt is None:
        return False
    value = ensure_utc(dt)
    return ensure_utc(start) <= value < ensure_utc(end)


def hours_between(start: Optional[datetime], end: Optional[datetime]) -> float:
    if start is None or end is None:
        return 0.0
    return (ensure_utc(end) - ensure_utc(start)).total_seconds() / 3600


def whole_hours_between(start: Optional[datetime], end: Optional[datetime]) -> int:
    """Full hours elapsed, truncated toward zero."""
    return int(hours_between(start, end))
