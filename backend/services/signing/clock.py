"""Localized timestamps for stamps and drafts (en-AU style)."""

from datetime import datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from core.logger import logger

DEFAULT_TIMEZONE = "Australia/Melbourne"


def local_now(tz_name: str = DEFAULT_TIMEZONE, now: Optional[datetime] = None) -> datetime:
    """``now`` (default: current UTC time) converted to ``tz_name``."""
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    try:
        return now.astimezone(ZoneInfo(tz_name))
    except ZoneInfoNotFoundError:
        logger.warning(f"Unknown timezone {tz_name!r}, using server local time")
        return now.astimezone()


def format_date(moment: datetime) -> str:
    """18/10/2026"""
    return f"{moment.day:02d}/{moment.month:02d}/{moment.year}"


def format_timestamp(moment: datetime) -> str:
    """18/10/2026, 3:04:05 pm"""
    hour = moment.hour % 12 or 12
    meridiem = "am" if moment.hour < 12 else "pm"
    return f"{format_date(moment)}, {hour}:{moment.minute:02d}:{moment.second:02d} {meridiem}"
