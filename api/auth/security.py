"""
Auth security helpers: password hashing and token minting/verification.

Three independent secrets are used:
- ACCESS_TOKEN_SECRET: short-lived access tokens carrying a profile snapshot
- REFRESH_TOKEN_SECRET: long-lived refresh tokens carrying only the user id
- JWT_SECRET: single-purpose tokens (password reset, account activation)
"""

from __future__ import annotations

import time
from typing import Any

import bcrypt
import jwt

from core import config

BCRYPT_ROUNDS = 12

ACCESS = "access"
REFRESH = "refresh"
PASSWORD_RESET = "password_reset"
ACTIVATION = "activation"


class AuthSecurityError(RuntimeError):
    pass


def _secret(name: str) -> str:
    # Local defaults keep development simple.
    # In production, set every secret in the environment.
    return config.env_str(name, f"dev-change-this-{name.lower()}")


def access_token_secret() -> str:
    return _secret("ACCESS_TOKEN_SECRET")


def refresh_token_secret() -> str:
    return _secret("REFRESH_TOKEN_SECRET")


def purpose_token_secret() -> str:
    return _secret("JWT_SECRET")


def jwt_algorithm() -> str:
    return config.env_str("JWT_ALG", "HS256")


def access_token_expire_minutes() -> int:
    return config.env_int("ACCESS_TOKEN_EXPIRE_MIN", 15)


def refresh_token_expire_days() -> int:
    return config.env_int("REFRESH_TOKEN_EXPIRE_DAYS", 7)


def refresh_token_max_age_seconds() -> int:
    return refresh_token_expire_days() * 24 * 60 * 60


def reset_token_expire_minutes() -> int:
    return config.env_int("RESET_TOKEN_EXPIRE_MIN", 60)


def activation_token_expire_minutes() -> int:
    return config.env_int("ACTIVATION_TOKEN_EXPIRE_MIN", 60 * 24)


def now_epoch_s() -> int:
    return int(time.time())


def hash_password(plain_password: str) -> str:
    password = (plain_password or "").encode("utf-8")
    if not password:
        raise AuthSecurityError("Password is empty.")
    return bcrypt.hashpw(password, bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode("utf-8")


def verify_password(plain_password: str, password_hash: str | None) -> bool:
    password = (plain_password or "").encode("utf-8")
    hashed = (password_hash or "").encode("utf-8")
    if not password or not hashed:
        return False
    try:
        return bcrypt.checkpw(password, hashed)
    except ValueError:
        return False


def profile_snapshot(user_row: dict) -> dict[str, Any]:
    """
    Authorization-relevant profile fields embedded in access tokens.
    """
    return {
        "username": user_row.get("username"),
        "email": user_row.get("email"),
        "userId": str(user_row["id"]),
        "role": user_row.get("role") or "user",
        "avatar": user_row.get("avatar"),
        "profession": user_row.get("profession"),
        "company": user_row.get("company"),
        "isActivated": bool(user_row.get("is_activated", False)),
        "privacySettings": {
            "showSavedCalculators": bool(user_row.get("show_saved_calculators", False)),
            "showComments": bool(user_row.get("show_comments", False)),
        },
    }


def _encode(payload: dict[str, Any], secret: str, ttl_seconds: int) -> str:
    issued_at = now_epoch_s()
    claims = dict(payload, iat=issued_at, exp=issued_at + ttl_seconds)
    return jwt.encode(claims, secret, algorithm=jwt_algorithm())


def _decode(token: str, secret: str) -> dict[str, Any]:
    raw = (token or "").strip()
    if not raw:
        raise AuthSecurityError("Token is empty.")
    try:
        return jwt.decode(raw, secret, algorithms=[jwt_algorithm()])
    except jwt.InvalidTokenError as exc:
        raise AuthSecurityError("Invalid token.") from exc


def build_access_token(user_row: dict) -> str:
    payload = {
        "UserInfo": profile_snapshot(user_row),
        "sub": str(user_row["id"]),
        "type": ACCESS,
        "ver": int(user_row.get("token_version") or 0),
    }
    return _encode(payload, access_token_secret(), access_token_expire_minutes() * 60)


def decode_access_token(token: str) -> dict[str, Any]:
    payload = _decode(token, access_token_secret())
    if str(payload.get("type") or "").strip().lower() != ACCESS:
        raise AuthSecurityError("Token is not an access token.")
    return payload


def build_refresh_token(user_row: dict) -> str:
    payload = {
        "userId": str(user_row["id"]),
        "type": REFRESH,
        "ver": int(user_row.get("token_version") or 0),
    }
    return _encode(payload, refresh_token_secret(), refresh_token_max_age_seconds())


def decode_refresh_token(token: str) -> dict[str, Any]:
    payload = _decode(token, refresh_token_secret())
    if str(payload.get("type") or "").strip().lower() != REFRESH:
        raise AuthSecurityError("Token is not a refresh token.")
    return payload


def build_purpose_token(purpose: str, user_info: dict[str, Any], *, ttl_minutes: int) -> str:
    payload = {"UserInfo": user_info, "purpose": purpose}
    return _encode(payload, purpose_token_secret(), ttl_minutes * 60)


def decode_purpose_token(token: str, purpose: str) -> dict[str, Any]:
    """
    Verify a single-purpose token and return its `UserInfo` claims.
    """
    payload = _decode(token, purpose_token_secret())
    if payload.get("purpose") != purpose:
        raise AuthSecurityError("Token purpose mismatch.")
    user_info = payload.get("UserInfo")
    if not isinstance(user_info, dict):
        raise AuthSecurityError("Token has no user info.")
    return user_info


def token_version_matches(payload: dict[str, Any], user_row: dict) -> bool:
    try:
        issued_version = int(payload.get("ver", 0))
    except (TypeError, ValueError):
        return False
    return issued_version == int(user_row.get("token_version") or 0)
