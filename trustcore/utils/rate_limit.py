"""
TrustCore - HTTP Request Rate Limiter
=====================================

Per-client sliding-window limiter for the HTTP API. This throttles raw
request volume only; messaging abuse rules live in AbuseGuard and are
backed by the database.
"""

import asyncio
import time
from collections import defaultdict
from typing import Callable, Optional


class RateLimiter:
    """In-memory rate limiter using a one-minute sliding window plus a one-second burst cap."""

    def __init__(
        self,
        requests_per_minute: int = 120,
        burst_limit: int = 20,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.requests_per_minute = requests_per_minute
        self.burst_limit = burst_limit
        self._clock = clock
        self._requests: dict[str, list[float]] = defaultdict(list)
        self._lock = asyncio.Lock()

    async def is_allowed(self, client_id: str) -> tuple[bool, Optional[int]]:
        """
        Check if request is allowed for this client.

        Args:
            client_id: Client identifier (IP or actor ID)

        Returns:
            Tuple of (is_allowed, retry_after_seconds)
        """
        async with self._lock:
            now = self._clock()
            window_start = now - 60

            requests = [ts for ts in self._requests[client_id] if ts > window_start]
            self._requests[client_id] = requests

            if len(requests) >= self.requests_per_minute:
                retry_after = int(min(requests) + 60 - now) + 1
                return False, retry_after

            recent = [ts for ts in requests if ts > now - 1]
            if len(recent) >= self.burst_limit:
                return False, 1

            requests.append(now)
            return True, None

    async def cleanup(self) -> int:
        """Remove clients idle for more than two minutes. Returns the number removed."""
        async with self._lock:
            cutoff = self._clock() - 120
            stale_clients = [
                client_id for client_id, timestamps in self._requests.items()
                if not timestamps or max(timestamps) < cutoff
            ]
            for client_id in stale_clients:
                del self._requests[client_id]
            return len(stale_clients)


__all__ = ["RateLimiter"]
