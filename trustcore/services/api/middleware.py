"""
TrustCore - API Middleware
==========================

Rate limiting, security headers and error mapping for the HTTP API.
"""

import json

from aiohttp import web

from trustcore.core.errors import (
    ConcurrentUpdateError,
    ContentRejected,
    InvalidState,
    NotFound,
    RateLimited,
    TrustCoreError,
    Unauthorized,
)
from trustcore.core.logger import logger
from trustcore.utils.rate_limit import RateLimiter


ACTOR_HEADER = "X-Actor-Id"
RATE_LIMITER_KEY = web.AppKey("rate_limiter", RateLimiter)

# Exception type -> HTTP status (Unauthorized is 401 or 403, see below)
ERROR_STATUS = (
    (NotFound, 404),
    (RateLimited, 429),
    (ContentRejected, 422),
    (InvalidState, 409),
    (ConcurrentUpdateError, 409),
)


def get_client_ip(request: web.Request) -> str:
    """Extract client IP from request, handling proxies."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()

    if request.transport is not None:
        peername = request.transport.get_extra_info("peername")
        if peername:
            return peername[0]

    return "unknown"


@web.middleware
async def rate_limit_middleware(request: web.Request, handler) -> web.StreamResponse:
    """Throttle request volume per client IP; the actor header is caller-supplied."""
    if request.path == "/health":
        return await handler(request)

    client_ip = get_client_ip(request)
    allowed, retry_after = await request.app[RATE_LIMITER_KEY].is_allowed(client_ip)

    if not allowed:
        logger.warning("Rate Limit Exceeded", [
            ("IP", client_ip),
            ("Actor", request.headers.get(ACTOR_HEADER, "anonymous")),
            ("Path", request.path),
            ("Retry-After", f"{retry_after}s"),
        ])
        return web.json_response(
            {"error": "Rate limit exceeded", "rule": "http", "retry_after": retry_after},
            status=429,
            headers={"Retry-After": str(retry_after)},
        )

    return await handler(request)


@web.middleware
async def error_middleware(request: web.Request, handler) -> web.StreamResponse:
    """Translate TrustCore errors into JSON responses with user-visible reasons."""
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except Unauthorized as e:
        status = 403 if request.headers.get(ACTOR_HEADER) else 401
        return web.json_response({"error": e.reason}, status=status)
    except TrustCoreError as e:
        for error_type, status in ERROR_STATUS:
            if isinstance(e, error_type):
                body = {"error": e.reason}
                if isinstance(e, RateLimited):
                    body["rule"] = e.rule
                if isinstance(e, ContentRejected) and e.matched_keywords:
                    body["matched_keywords"] = e.matched_keywords
                return web.json_response(body, status=status)
        logger.error("Unmapped TrustCore Error", [
            ("Type", type(e).__name__),
            ("Path", request.path),
            ("Reason", e.reason),
        ])
        return web.json_response({"error": "Internal server error"}, status=500)
    except (ValueError, json.JSONDecodeError) as e:
        return web.json_response({"error": str(e) or "Invalid request"}, status=400)
    except Exception as e:
        logger.error_tree("Unhandled API Error", e, [
            ("Method", request.method),
            ("Path", request.path),
        ])
        return web.json_response({"error": "Internal server error"}, status=500)


@web.middleware
async def security_headers_middleware(request: web.Request, handler) -> web.StreamResponse:
    """Add security headers to all responses."""
    response = await handler(request)
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    response.headers["Cache-Control"] = "no-store"
    return response


__all__ = [
    "ACTOR_HEADER",
    "RATE_LIMITER_KEY",
    "get_client_ip",
    "rate_limit_middleware",
    "error_middleware",
    "security_headers_middleware",
]
