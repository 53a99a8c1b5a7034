"""
TrustCore - API Constants
=========================

Configuration constants for the HTTP API.
"""

# Seconds between rate limiter sweeps
CLEANUP_INTERVAL = 60

# Pagination
DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 200
CONVERSATION_PAGE_SIZE = 100

# Ban duration used when the request names none
DEFAULT_BAN_DURATION = "permanent"

__all__ = [
    "CLEANUP_INTERVAL",
    "DEFAULT_PAGE_SIZE",
    "MAX_PAGE_SIZE",
    "CONVERSATION_PAGE_SIZE",
    "DEFAULT_BAN_DURATION",
]
