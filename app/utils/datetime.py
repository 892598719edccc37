from __future__ import annotations
from datetime import datetime, UTC
from typing import Optional

__all__ = ["utc_now", "naive_utc_now", "to_naive_utc", "parse_feed_timestamp"]

def utc_now() -> datetime:
    """Return timezone-aware UTC now."""
    return datetime.now(UTC)

def naive_utc_now() -> datetime:
    """Naive UTC now, matching how DateTime columns are stored."""
    return utc_now().replace(tzinfo=None)

def to_naive_utc(dt: datetime | None) -> Optional[datetime]:
    """Convert aware datetime to naive UTC for storage/compare; pass through naive assumed UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(UTC).replace(tzinfo=None)

def parse_feed_timestamp(value) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp from the alert feed into naive UTC.

    Returns None for missing or unparseable values rather than raising.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return to_naive_utc(value)
    if not isinstance(value, str):
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return to_naive_utc(datetime.fromisoformat(text))
    except ValueError:
        return None
