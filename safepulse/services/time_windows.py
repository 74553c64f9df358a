"""
time_windows.py — Symbolic time ranges → absolute windows and bucket formats.

    >>> w = resolve_window("7d", now)
    >>> w.start          # now - 7 days
    >>> w.bucket         # "daily"

Unknown or missing range tokens fall back to "30d". Nothing here raises.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Literal, Optional

Bucket = Literal["hourly", "daily", "monthly"]

DEFAULT_RANGE = "30d"

_RANGES: dict[str, timedelta] = {
    "24h": timedelta(hours=24),
    "7d":  timedelta(days=7),
    "30d": timedelta(days=30),
    "90d": timedelta(days=90),
    "1y":  timedelta(days=365),
}

_BUCKETS: dict[str, Bucket] = {
    "24h": "hourly",
    "7d":  "daily",
    "30d": "daily",
    "90d": "daily",
    "1y":  "monthly",
}

# strftime patterns, identical to the $dateToString formats used in MongoDB
_BUCKET_FORMATS: dict[Bucket, str] = {
    "hourly":  "%Y-%m-%d %H:00",
    "daily":   "%Y-%m-%d",
    "monthly": "%Y-%m",
}


@dataclass(frozen=True)
class TimeWindow:
    time_range: str
    start: datetime
    bucket: Bucket


def normalize_range(time_range: Optional[str]) -> str:
    return time_range if time_range in _RANGES else DEFAULT_RANGE


def bucket_for(time_range: Optional[str]) -> Bucket:
    return _BUCKETS[normalize_range(time_range)]


def resolve_window(time_range: Optional[str], now: datetime) -> TimeWindow:
    token = normalize_range(time_range)
    return TimeWindow(time_range=token, start=now - _RANGES[token], bucket=_BUCKETS[token])


def bucket_format(bucket: Bucket) -> str:
    """$dateToString format of the time-series group key for ``bucket``."""
    return _BUCKET_FORMATS[bucket]


def as_utc(moment: datetime) -> datetime:
    """Treat naive datetimes as UTC (how BSON dates come back without tz_aware)."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def start_of_day(moment: datetime) -> datetime:
    """UTC midnight of the day containing ``moment``."""
    return as_utc(moment).replace(hour=0, minute=0, second=0, microsecond=0)
