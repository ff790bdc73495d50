"""
Rate limiting for authentication-sensitive and public submission routes.

Backed by slowapi with in-memory storage, so state is per process; a
deployment with several workers allows `workers * max_requests` per window.

Routes opt in with `@limiter.shared_limit(limit_value(), scope="auth")` (or
`scope="community"`); every route in a scope shares one budget per client
address. Endpoints using the decorator must take a `request: Request`.
"""

from __future__ import annotations

import logging
import time

from fastapi import Request, status
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from . import config

logger = logging.getLogger(__name__)

TOO_MANY_ATTEMPTS = "Too many attempts, please try again later."


def max_requests() -> int:
    return config.env_int("RATE_LIMIT_MAX_REQUESTS", 5)


def window_seconds() -> int:
    return config.env_int("RATE_LIMIT_WINDOW_SECONDS", 60)


def trust_proxy_headers() -> bool:
    return config.env_bool("TRUST_PROXY_HEADERS", False)


def limit_value() -> str:
    return f"{max_requests()}/{window_seconds()} seconds"


def client_address(request: Request) -> str:
    """
    The socket peer, or the first `X-Forwarded-For` hop when the app runs
    behind a proxy it trusts (`TRUST_PROXY_HEADERS=true`).
    """
    if trust_proxy_headers():
        forwarded = request.headers.get("x-forwarded-for", "")
        first = forwarded.split(",", 1)[0].strip()
        if first:
            return first
    return get_remote_address(request)


limiter = Limiter(key_func=client_address)


def _retry_after(request: Request) -> int:
    current = getattr(request.state, "view_rate_limit", None)
    if current is None:
        return window_seconds()
    item, args = current
    reset_at, _ = limiter.limiter.get_window_stats(item, *args)
    return max(int(reset_at - time.time()) + 1, 1)


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    retry_after = _retry_after(request)
    logger.warning(
        "rate_limited limit=%s address=%s method=%s path=%s origin=%s",
        exc.detail,
        client_address(request),
        request.method,
        request.url.path,
        request.headers.get("origin", "-"),
    )
    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content={"detail": TOO_MANY_ATTEMPTS},
        headers={"Retry-After": str(retry_after)},
    )
