"""
DateTime utility functions for the application.

The database stores naive UTC datetimes; everything inside the outbox engine
compares naive UTC values produced by utcnow().
"""
from datetime import datetime, timezone
from zoneinfo import ZoneInfo

SCHOOL_TIMEZONE = "Pacific/Auckland"


def utcnow():
    """Current time as a naive UTC datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(dt):
    """Normalise an aware datetime to naive UTC; naive values are assumed UTC already."""
    if dt is None or dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def format_datetime_iso(dt):
    """
    Format a naive UTC datetime as an ISO 8601 string with a trailing Z.

    Returns None if dt is None.
    """
    if not dt:
        return None
    return to_naive_utc(dt).isoformat() + "Z"


def format_datetime_local(dt):
    """
    Format a datetime object in the school's local time with readable format.
    Returns format like: "October 15, 2025 02:30:45 PM"

    Args:
        dt: datetime object, ISO string, or None

    Returns:
        str: Formatted datetime string, or None if dt is None
    """
    if not dt:
        return None

    # Handle string input (ISO format)
    if isinstance(dt, str):
        try:
            dt = datetime.fromisoformat(dt.replace('Z', '+00:00'))
        except ValueError:
            return str(dt)  # Return as-is if parsing fails

    # If dt is naive (no timezone), assume it's UTC
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)

    local_dt = dt.astimezone(ZoneInfo(SCHOOL_TIMEZONE))
    return local_dt.strftime("%B %d, %Y %I:%M:%S %p")
