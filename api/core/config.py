"""
Environment-driven settings helpers.

Every feature reads its configuration through small getter functions built on
these helpers so values are picked up at call time (tests can monkeypatch the
environment without reloading modules).
"""

from __future__ import annotations

import os

DEFAULT_ALLOWED_ORIGINS = (
    "http://localhost:3000",
    "http://127.0.0.1:3000",
)


def env_str(name: str, default: str = "") -> str:
    return os.environ.get(name, "").strip() or default


def env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def env_bool(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name, "").strip().lower()
    if not raw:
        return default
    return raw in {"1", "true", "yes", "on"}


def env_list(name: str, default: tuple[str, ...] = ()) -> list[str]:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return list(default)
    return [item.strip() for item in raw.split(",") if item.strip()]


def is_production() -> bool:
    return env_str("APP_ENV", "development").lower() == "production"


def allowed_origins() -> list[str]:
    return env_list("ALLOWED_ORIGINS", DEFAULT_ALLOWED_ORIGINS)


def client_url() -> str:
    # Base URL of the web client, used to build links in emails.
    return env_str("CLIENT_URL", "http://localhost:3000").rstrip("/")
