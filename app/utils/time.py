"""Utility functions for time handling.

All timestamps should be UTC and timezone-aware. Persist UTC timestamps as
ISO-8601 strings with timezone offsets (e.g., "+00:00") via iso_now().
"""

from __future__ import annotations

import re
from datetime import date, datetime, timezone, tzinfo
from typing import Any
from zoneinfo import ZoneInfo

# Epoch values above this are treated as milliseconds.
_EPOCH_MILLIS_THRESHOLD = 100_000_000_000
_EPOCH_PATTERN = re.compile(r"^\d{9,13}(\.\d+)?$")
_STATION_FORMATS = ("%Y-%m-%d %H:%M:%S", "%Y-%m-%d+%H:%M:%S", "%Y-%m-%d %H:%M")


def utc_now() -> datetime:
    """Return current UTC time as an aware datetime."""
    return datetime.now(timezone.utc)


def iso_now(*, timespec: str | None = None) -> str:
    """Return current UTC time as an ISO8601 string (timezone-aware)."""
    now = utc_now()
    if timespec:
        return now.isoformat(timespec=timespec)
    return now.isoformat()


def from_epoch(seconds: float) -> datetime:
    """Aware UTC datetime from Unix seconds."""
    return datetime.fromtimestamp(seconds, tz=timezone.utc)


def to_epoch(dt: datetime) -> int:
    """Whole Unix seconds for an aware (or naive UTC) datetime."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp())


def coerce_datetime(value: Any) -> datetime | None:
    """
    Coerce value to datetime, returning None on failure.

    Args:
        value: String or datetime to coerce

    Returns:
        Datetime in timezone.utc or None if invalid
    """
    if value is None:
        return None

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        raw = value.strip()
        if raw.endswith("Z"):
            raw = raw.replace("Z", "+00:00")
        try:
            parsed = datetime.fromisoformat(raw)
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc)
    else:
        parsed = parsed.replace(tzinfo=timezone.utc)

    return parsed


def parse_station_timestamp(value: Any, received_at: datetime) -> datetime:
    """
    Resolve a station-supplied timestamp.

    Accepts the literal ``now`` (receipt time), Unix epoch seconds (or
    milliseconds), ``YYYY-MM-DD HH:MM:SS`` in UTC as sent by Ecowitt/WU
    firmware, and ISO-8601 strings. Anything else falls back to
    ``received_at``.
    """
    if value is None:
        return received_at
    if isinstance(value, datetime):
        return coerce_datetime(value) or received_at
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return _epoch_or_fallback(float(value), received_at)

    raw = str(value).strip()
    if not raw or raw.lower() == "now":
        return received_at
    if _EPOCH_PATTERN.match(raw):
        return _epoch_or_fallback(float(raw), received_at)

    # URL-encoded spaces survive some firmware as '+' or '%20'
    normalized = raw.replace("%20", " ").replace("%3A", ":").replace("%3a", ":")
    for fmt in _STATION_FORMATS:
        try:
            return datetime.strptime(normalized, fmt).replace(tzinfo=timezone.utc)
        except ValueError:
            continue

    return coerce_datetime(normalized) or received_at


def _epoch_or_fallback(seconds: float, received_at: datetime) -> datetime:
    if seconds > _EPOCH_MILLIS_THRESHOLD:
        seconds = seconds / 1000.0
    try:
        return from_epoch(seconds)
    except (OverflowError, OSError, ValueError):
        return received_at


def resolve_timezone(name: str | None) -> tzinfo:
    """ZoneInfo for ``name``; empty or ``UTC`` yields timezone.utc."""
    if not name or name.upper() == "UTC":
        return timezone.utc
    return ZoneInfo(name)


def local_date(dt: datetime, tz: tzinfo) -> date:
    """Calendar date of ``dt`` in ``tz``."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(tz).date()
