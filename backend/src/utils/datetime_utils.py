"""
Datetime utilities for consistent timezone handling across the booking engine.

All instants are normalized to UTC for storage, comparison and serialization.
Display timezones (slot.timezone, appointment.timezone) are carried as IANA
names and only used to interpret naive input.
"""

import logging
from datetime import datetime, timezone, timedelta, tzinfo
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from core.exceptions import InvalidRangeError
from shared_types.availability import TimeWindow

logger = logging.getLogger(__name__)

UTC = timezone.utc


def utc_now() -> datetime:
    """
    Get the current UTC datetime.

    This is the engine's clock; tests patch it per service module.
    """
    return datetime.now(UTC)


def resolve_timezone(name: Optional[str]) -> tzinfo:
    """
    Resolve an IANA timezone name, defaulting to UTC.

    Raises:
        InvalidRangeError: If the name is not a known timezone
    """
    if not name or name.upper() == "UTC":
        return UTC
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise InvalidRangeError(f"Unknown timezone: {name}") from e


def ensure_utc(dt: Optional[datetime], assume_tz: tzinfo = UTC) -> Optional[datetime]:
    """
    Ensure a datetime is timezone-aware and expressed in UTC.

    Args:
        dt: Datetime to normalize
        assume_tz: Timezone a naive datetime is interpreted in

    Returns:
        Timezone-aware UTC datetime, or None if input is None
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=assume_tz)
    return dt.astimezone(UTC)


def parse_datetime_to_utc(v: str | datetime, assume_tz: tzinfo = UTC) -> datetime:
    """
    Parse an ISO-8601 string (or pass through a datetime) and convert to UTC.

    Handles:
    - ISO format with offset (e.g., "2025-01-01T09:00:00+08:00")
    - ISO format with Z (e.g., "2025-01-01T01:00:00Z")
    - ISO format without offset (interpreted in ``assume_tz``)

    Raises:
        InvalidRangeError: If the string cannot be parsed
    """
    if isinstance(v, datetime):
        result = ensure_utc(v, assume_tz)
    else:
        text = v.strip()
        try:
            parsed = datetime.fromisoformat(text.replace('Z', '+00:00'))
        except ValueError as e:
            raise InvalidRangeError(f"Invalid datetime: {v}") from e
        result = ensure_utc(parsed, assume_tz)

    if result is None:
        raise InvalidRangeError("A datetime value is required")
    return result


def resolve_time_window(
    range_start: Optional[str | datetime],
    range_end: Optional[str | datetime],
    timezone_name: Optional[str] = None,
    default_days: int = 14,
    now: Optional[datetime] = None,
) -> TimeWindow:
    """
    Build a validated UTC window from optional bounds.

    A missing start defaults to ``now``; a missing end defaults to the start
    plus ``default_days``.

    Raises:
        InvalidRangeError: If a bound cannot be parsed, the timezone is
            unknown, or the end is not strictly after the start
    """
    tz = resolve_timezone(timezone_name)
    start = parse_datetime_to_utc(range_start, tz) if range_start is not None else (now or utc_now())
    end = parse_datetime_to_utc(range_end, tz) if range_end is not None else start + timedelta(days=default_days)

    if end <= start:
        raise InvalidRangeError(
            "The end of the range must be after the start.",
            range_start=start.isoformat(),
            range_end=end.isoformat(),
        )
    return TimeWindow(start=start, end=end)


def validate_optional_range(
    range_start: Optional[str | datetime],
    range_end: Optional[str | datetime],
    timezone_name: Optional[str] = None,
    allow_equal: bool = False,
) -> tuple[Optional[datetime], Optional[datetime]]:
    """
    Parse a pair of optional bounds and check their order when both are set.

    Used for queue ticket preference windows and list filters, where either
    bound may be left open.
    """
    tz = resolve_timezone(timezone_name)
    start = parse_datetime_to_utc(range_start, tz) if range_start is not None else None
    end = parse_datetime_to_utc(range_end, tz) if range_end is not None else None

    if start is not None and end is not None:
        if end < start or (end == start and not allow_equal):
            raise InvalidRangeError()
    return start, end


def isoformat_utc(dt: Optional[datetime]) -> Optional[str]:
    """Render an instant as an ISO-8601 UTC string (``...Z``)."""
    normalized = ensure_utc(dt)
    if normalized is None:
        return None
    return normalized.isoformat().replace("+00:00", "Z")
