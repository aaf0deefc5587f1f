"""Datetime helpers (timestamps are stored as naive UTC)"""

from datetime import date, datetime, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


def utcnow() -> datetime:
    """Current time as naive UTC, matching what the database stores"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    """Normalize an aware datetime to naive UTC; naive values are assumed UTC"""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def resolve_timezone(name: Optional[str]) -> timezone | ZoneInfo:
    """
    Resolve an IANA timezone name, falling back to UTC.

    Args:
        name: Timezone name such as "Asia/Kolkata", or None

    Returns:
        tzinfo instance
    """
    if not name:
        return timezone.utc
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return timezone.utc


def local_date(value: datetime, tz: timezone | ZoneInfo) -> date:
    """Calendar date of a naive UTC timestamp in the given timezone"""
    return value.replace(tzinfo=timezone.utc).astimezone(tz).date()


def iso_week_start(day: date) -> date:
    """Monday of the ISO-8601 week containing day"""
    return day - timedelta(days=day.weekday())
