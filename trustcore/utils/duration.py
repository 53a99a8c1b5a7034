"""
TrustCore - Duration Parsing Utility
====================================

Parses admin-supplied suspension lengths ("12h", "3d", "permanent").
"""

import re
from datetime import timedelta
from typing import Optional


# (display name, length in seconds, accepted spellings), largest first
_UNITS = (
    ("month", 30 * 86400, ("mo", "month", "months")),
    ("week", 7 * 86400, ("w", "wk", "week", "weeks")),
    ("day", 86400, ("d", "day", "days")),
    ("hour", 3600, ("h", "hr", "hrs", "hour", "hours")),
    ("minute", 60, ("m", "min", "mins", "minute", "minutes")),
)

_UNIT_SECONDS = {alias: seconds for _, seconds, aliases in _UNITS for alias in aliases}

_DURATION_PATTERN = re.compile(r"^(-?\d+)\s*([a-z]+)$")

_PERMANENT = ("permanent", "perm", "forever", "inf")


def parse_duration(text: str) -> Optional[timedelta]:
    """
    Turn "30m", "6h", "3 days", "2w" or "1mo" into a timedelta.

    Months count as 30 days. "permanent" (or perm/forever/inf) gives None.
    Raises ValueError for anything else, including zero or negative lengths.
    """
    text = text.lower().strip()
    if text in _PERMANENT:
        return None

    match = _DURATION_PATTERN.match(text)
    if not match or match.group(2) not in _UNIT_SECONDS:
        raise ValueError(f"Invalid duration format: {text!r}")

    amount = int(match.group(1))
    if amount <= 0:
        raise ValueError("Duration must be a positive number")
    return timedelta(seconds=amount * _UNIT_SECONDS[match.group(2)])


def format_duration(td: Optional[timedelta]) -> str:
    """Render a timedelta in its largest whole unit ("Permanent" for None)."""
    if td is None:
        return "Permanent"

    total = int(td.total_seconds())
    for name, seconds, _ in _UNITS:
        if total >= seconds or seconds == 60:
            count = total // seconds
            return f"{count} {name}{'' if count == 1 else 's'}"


__all__ = [
    "parse_duration",
    "format_duration",
]
