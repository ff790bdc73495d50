"""
Refresh-token cookie handling.
"""

from __future__ import annotations

from fastapi import Response

from core import config

from . import security

REFRESH_COOKIE = "jwt"


def cookie_secure() -> bool:
    return config.env_bool("COOKIE_SECURE", False)


def set_refresh_cookie(response: Response, refresh_token: str) -> None:
    response.set_cookie(
        key=REFRESH_COOKIE,
        value=refresh_token,
        max_age=security.refresh_token_max_age_seconds(),
        httponly=True,
        samesite="strict",
        secure=cookie_secure(),
    )


def clear_refresh_cookie(response: Response) -> None:
    response.delete_cookie(
        key=REFRESH_COOKIE,
        httponly=True,
        samesite="strict",
        secure=cookie_secure(),
    )
