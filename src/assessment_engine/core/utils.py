# src/assessment_engine/core/utils.py
import datetime
import math

import pytz

from src.assessment_engine.core.config import settings


def utcnow() -> datetime.datetime:
    """Naive UTC timestamp, the form stored in every DateTime column."""
    return datetime.datetime.now(pytz.utc).replace(tzinfo=None)


def convert_to_local_time(utc_dt: datetime.datetime, tz_name: str = None) -> datetime.datetime:
    """Render a stored UTC timestamp in the display timezone."""
    if utc_dt is None:
        return None
    local_tz = pytz.timezone(tz_name or settings.DISPLAY_TIMEZONE)
    if utc_dt.tzinfo is None:
        utc_dt = utc_dt.replace(tzinfo=pytz.utc)
    return utc_dt.astimezone(local_tz)


def to_naive_utc(value: datetime.datetime) -> datetime.datetime:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(pytz.utc).replace(tzinfo=None)


def round_half_up(value: float) -> int:
    # Python's round() is banker's rounding; progress figures round .5 up
    return int(math.floor(value + 0.5))


def week_start(value: datetime.datetime) -> datetime.date:
    """ISO week start (Monday) of a timestamp."""
    day = value.date() if isinstance(value, datetime.datetime) else value
    return day - datetime.timedelta(days=day.weekday())
