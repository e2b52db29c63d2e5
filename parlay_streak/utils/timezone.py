"""
Time helpers.

All datetimes are stored as naive UTC (the database columns carry no
timezone) and serialised as ISO-8601 with a trailing ``Z``.
"""
from datetime import datetime, timezone
from typing import Optional

# UTC timezone for Python < 3.11 compatibility
try:
    from datetime import UTC
except ImportError:
    UTC = timezone.utc


def utc_now() -> datetime:
    """Current time as a naive UTC datetime (database representation)."""
    return datetime.now(UTC).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    """Normalise an aware or naive datetime to naive UTC."""
    if value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)


def parse_iso_utc(date_str: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO date string (e.g. ESPN's "2025-01-28T00:30Z") to naive UTC.

    Returns None for empty or unparseable input.
    """
    if not date_str:
        return None
    try:
        return to_naive_utc(datetime.fromisoformat(date_str.replace("Z", "+00:00")))
    except ValueError:
        return None


def isoformat_utc(value: Optional[datetime]) -> Optional[str]:
    """Serialise a naive UTC datetime for API responses."""
    if value is None:
        return None
    return to_naive_utc(value).isoformat() + "Z"


def minutes_until(target: datetime, now: Optional[datetime] = None) -> int:
    """Whole minutes from now until target (negative when target is past)."""
    now = now or utc_now()
    return round((to_naive_utc(target) - now).total_seconds() / 60)
