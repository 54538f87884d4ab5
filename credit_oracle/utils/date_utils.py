"""Date manipulation utilities"""

import calendar
import logging
from datetime import date, datetime, time, timezone
from typing import Any, Optional

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 60 * 60 * 24
DAYS_PER_MONTH = 30

# Epoch values above this are taken to be milliseconds
_EPOCH_MILLIS_CUTOFF = 10_000_000_000


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite drops tzinfo) and normalize aware ones"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def coerce_timestamp(value: Any, now: Optional[datetime] = None) -> datetime:
    """
    Convert any timestamp representation found in stored documents to an aware UTC datetime.

    Accepts datetime, date, epoch seconds or milliseconds, ISO-8601 strings and
    {"seconds", "nanoseconds"} maps (or their "_seconds", "_nanoseconds" spelling).
    Missing or unparseable values fall back to `now`; this keeps scoring total
    but is a tolerance, not a guarantee of correctness, so every fallback is logged.
    """
    fallback = now or utc_now()

    if value is None:
        return fallback
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        seconds = value / 1000 if abs(value) >= _EPOCH_MILLIS_CUTOFF else value
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            pass
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return ensure_utc(datetime.fromisoformat(text))
        except ValueError:
            pass
    elif isinstance(value, dict) and ("seconds" in value or "_seconds" in value):
        # Admin SDK timestamps serialized through JSON carry underscored keys
        seconds = value.get("seconds", value.get("_seconds")) or 0
        nanos = value.get("nanoseconds", value.get("_nanoseconds")) or 0
        try:
            return datetime.fromtimestamp(float(seconds) + float(nanos) / 1e9, tz=timezone.utc)
        except (OverflowError, OSError, ValueError, TypeError):
            pass

    logger.warning("Unparseable timestamp %r, treating as now", value)
    return fallback


def subtract_months(moment: datetime, months: int) -> datetime:
    """Step back whole calendar months, clamping the day to the target month's length"""
    month_index = moment.year * 12 + (moment.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def days_between(start: datetime, end: datetime) -> float:
    """Fractional days from start to end"""
    return (end - start).total_seconds() / SECONDS_PER_DAY


def months_between(start: datetime, end: datetime) -> float:
    """Fractional 30-day months from start to end"""
    return days_between(start, end) / DAYS_PER_MONTH
