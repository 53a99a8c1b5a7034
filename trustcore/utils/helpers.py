"""
TrustCore - Helper Utilities
============================

Small shared helpers for timestamps and text formatting.
"""

from datetime import datetime, timedelta, timezone
from typing import Callable, Optional


# Timestamps are stored as fixed-width UTC strings so SQLite can compare them lexically
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S.%f"

Clock = Callable[[], datetime]


# =============================================================================
# Time Helpers
# =============================================================================

def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def to_timestamp(dt: datetime) -> str:
    """Serialize a datetime to the storage format (naive values are taken as UTC)."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse a stored timestamp back into an aware UTC datetime."""
    if not value:
        return None
    try:
        parsed = datetime.strptime(value, TIMESTAMP_FORMAT)
    except ValueError:
        parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def window_start(now: datetime, seconds: int) -> str:
    """Storage timestamp for the start of a trailing window ending at `now`."""
    return to_timestamp(now - timedelta(seconds=seconds))


# =============================================================================
# Text Helpers
# =============================================================================

def truncate(text: str, max_length: int, ellipsis: str = "...") -> str:
    """
    Truncate text to a maximum length with optional ellipsis.

    Args:
        text: The text to truncate
        max_length: Maximum length (including ellipsis if added)
        ellipsis: String to append if truncated (default: "...")
    """
    if not text or len(text) <= max_length:
        return text
    return text[:max_length - len(ellipsis)] + ellipsis


__all__ = [
    "TIMESTAMP_FORMAT",
    "Clock",
    "utcnow",
    "to_timestamp",
    "parse_timestamp",
    "window_start",
    "truncate",
]
