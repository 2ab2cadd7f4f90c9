"""Timezone-aware time utilities for the game."""

import datetime
from typing import Optional
from zoneinfo import ZoneInfo
from .config import TIMEZONE


def now() -> datetime.datetime:
    """Get current timezone-aware datetime."""
    return datetime.datetime.now(ZoneInfo(TIMEZONE))


def local_date(moment: datetime.datetime) -> datetime.date:
    """Calendar date of a moment in the game timezone."""
    return moment.astimezone(ZoneInfo(TIMEZONE)).date()


def today_key(moment: Optional[datetime.datetime] = None) -> str:
    """Get a day as a string key in the game timezone."""
    return local_date(moment or now()).strftime("%Y-%m-%d")


def parse_day_key(key: str) -> datetime.date:
    return datetime.date.fromisoformat(key)


def next_midnight(moment: datetime.datetime) -> datetime.datetime:
    """The first midnight after `moment` in the game timezone."""
    tz = ZoneInfo(TIMEZONE)
    day = moment.astimezone(tz).date() + datetime.timedelta(days=1)
    return datetime.datetime.combine(day, datetime.time.min, tzinfo=tz)


def to_timestamp(moment: Optional[datetime.datetime]) -> Optional[int]:
    """Epoch seconds for storage; None passes through."""
    if moment is None:
        return None
    return int(moment.timestamp())


def from_timestamp(timestamp: Optional[float]) -> Optional[datetime.datetime]:
    """Timezone-aware datetime from stored epoch seconds."""
    if timestamp is None:
        return None
    return datetime.datetime.fromtimestamp(timestamp, ZoneInfo(TIMEZONE))


def hours_until(moment: datetime.datetime, reference: Optional[datetime.datetime] = None) -> float:
    """Get hours until the given moment."""
    delta = moment - (reference or now())
    return max(0.0, delta.total_seconds() / 3600)
