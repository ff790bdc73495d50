"""
Auth dependencies for protected FastAPI routes.

Two gates with different trust boundaries, one result type:
- `require_session` reads the refresh token from the `jwt` cookie
  (every failure is a generic 401);
- `require_bearer` reads `Authorization: Bearer <access token>`
  (missing header is 401, a rejected token is 403).
Both resolve the current user row and return a `Principal`.

CORS preflights (`Origin` plus `Access-Control-Request-Method`) are answered
by `CORSMiddleware` before routing and never reach these dependencies. A bare
`OPTIONS` without those headers is routed like any request and gets 405.
"""

from __future__ import annotations

from fastapi import Cookie, Depends, Header

from core.errors import AuthError

from . import service
from .cookies import REFRESH_COOKIE
from .principal import Principal


def _extract_bearer_token(authorization: str | None) -> str:
    raw = (authorization or "").strip()
    parts = raw.split(" ", 1)
    if len(parts) != 2:
        raise AuthError()

    scheme, token = parts[0].strip().lower(), parts[1].strip()
    if scheme != "bearer" or not token:
        raise AuthError()
    return token


async def get_bearer_token(authorization: str | None = Header(default=None)) -> str:
    return _extract_bearer_token(authorization)


async def require_bearer(access_token: str = Depends(get_bearer_token)) -> Principal:
    return await service.principal_from_access_token(access_token)


async def require_session(refresh_token: str | None = Cookie(default=None, alias=REFRESH_COOKIE)) -> Principal:
    if not refresh_token:
        raise AuthError("No authentication token found, authentication denied")
    return await service.principal_from_refresh_token(refresh_token)


async def optional_session(refresh_token: str | None = Cookie(default=None, alias=REFRESH_COOKIE)) -> Principal | None:
    """
    Principal for anonymous-friendly reads; an invalid cookie counts as anonymous.
    """
    if not refresh_token:
        return None
    try:
        return await service.principal_from_refresh_token(refresh_token)
    except AuthError:
        return None
