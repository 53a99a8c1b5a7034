"""
TrustCore - Retry Utilities
===========================

Retry decorators for transient failures.

- `retry_once`: one extra attempt for database writes that lost a race
  with a concurrent writer (ConcurrentUpdateError).
- `exponential_backoff`: bounded retries with jitter for outbound HTTP
  calls such as webhook forwarding.

Rejections (RateLimited, ContentRejected, ...) are never retried.
"""

import asyncio
import random
from functools import wraps
from typing import Callable, Any, Optional

import aiohttp

from trustcore.core.errors import ConcurrentUpdateError
from trustcore.core.logger import logger


# Specific exceptions that should be retried (transient network errors)
RETRYABLE_EXCEPTIONS = (
    aiohttp.ClientError,
    asyncio.TimeoutError,
    ConnectionError,
    TimeoutError,
)


def retry_once(delay: float = 0.05) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """
    Decorator that retries an async function once on ConcurrentUpdateError.

    Example:
        @retry_once()
        async def resolve(self, ...):
            ...
    """

    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            try:
                return await func(*args, **kwargs)
            except ConcurrentUpdateError as e:
                logger.warning("Retry Attempt Failed", [
                    ("Function", func.__name__),
                    ("Attempt", "1/2"),
                    ("Error", str(e)),
                ])
                await asyncio.sleep(delay)
                return await func(*args, **kwargs)

        return wrapper

    return decorator


def exponential_backoff(
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """
    Decorator that retries async functions with exponential backoff.

    Args:
        max_retries: Maximum number of attempts (default: 3)
        base_delay: Initial delay in seconds (default: 1)
        max_delay: Maximum delay cap in seconds (default: 30)

    Delay formula: min(base_delay * 2 ** attempt, max_delay) plus up to 10% jitter.
    """

    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            last_exception: Optional[Exception] = None

            for attempt in range(max_retries):
                try:
                    return await func(*args, **kwargs)

                except RETRYABLE_EXCEPTIONS as e:
                    last_exception = e

                    if attempt == max_retries - 1:
                        logger.error("Retries Exhausted", [
                            ("Function", func.__name__),
                            ("Attempts", max_retries),
                            ("Error", str(e)),
                        ])
                        raise

                    delay: float = min(base_delay * (2**attempt), max_delay)
                    delay += random.uniform(0, delay * 0.1)

                    logger.warning("Retry Attempt Failed", [
                        ("Function", func.__name__),
                        ("Attempt", f"{attempt + 1}/{max_retries}"),
                        ("Error", str(e)),
                        ("Next Delay", f"{delay:.1f}s"),
                    ])

                    await asyncio.sleep(delay)

            if last_exception:
                raise last_exception
            raise RuntimeError(f"{func.__name__} failed without exception")

        return wrapper

    return decorator


__all__ = [
    "RETRYABLE_EXCEPTIONS",
    "retry_once",
    "exponential_backoff",
]
