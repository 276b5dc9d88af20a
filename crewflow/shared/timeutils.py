"""Date and time helpers shared by the scheduler and rescheduling flows"""

from datetime import date, datetime, time, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from ..config import DEFAULT_TIMEZONE


def utcnow() -> datetime:
    """Current time as naive UTC, the representation stored in the database"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def local_to_utc(day: date, at: time, tz_name: Optional[str] = None) -> datetime:
    """Convert a wall-clock time in a tenant timezone to naive UTC"""
    tz = ZoneInfo(tz_name or DEFAULT_TIMEZONE)
    local = datetime.combine(day, at).replace(tzinfo=tz)
    return local.astimezone(timezone.utc).replace(tzinfo=None)


def local_today(now_utc: datetime, tz_name: Optional[str] = None) -> date:
    """Calendar date in a tenant timezone for a naive UTC instant"""
    tz = ZoneInfo(tz_name or DEFAULT_TIMEZONE)
    return now_utc.replace(tzinfo=timezone.utc).astimezone(tz).date()


def parse_date(value) -> date:
    """Accept a date, datetime or YYYY-MM-DD string"""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def format_date_human(value) -> str:
    """Monday, March 10"""
    day = parse_date(value)
    return f"{day.strftime('%A')}, {day.strftime('%B')} {day.day}"
