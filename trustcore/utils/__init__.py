"""
TrustCore - Utilities Package
=============================
"""

from .retry import (
    retry_once,
    exponential_backoff,
    RETRYABLE_EXCEPTIONS,
)
from .helpers import (
    utcnow,
    to_timestamp,
    parse_timestamp,
    window_start,
    truncate,
)
from .duration import parse_duration, format_duration
from .rate_limit import RateLimiter

__all__ = [
    "retry_once",
    "exponential_backoff",
    "RETRYABLE_EXCEPTIONS",
    "utcnow",
    "to_timestamp",
    "parse_timestamp",
    "window_start",
    "truncate",
    "parse_duration",
    "format_duration",
    "RateLimiter",
]
