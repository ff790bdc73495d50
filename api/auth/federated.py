"""
Federated (Google) identity token parsing.

The identity token is accepted as issued: its signature is not checked
against Google's keys, only its claims are read.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

import jwt

from .security import AuthSecurityError

_USERNAME_UNSAFE = re.compile(r"[^a-z0-9_]+")


@dataclass(frozen=True)
class FederatedProfile:
    subject: str
    email: str
    name: str
    avatar: str | None
    email_verified: bool


def decode_google_id_token(token: str) -> FederatedProfile:
    raw = (token or "").strip()
    if not raw:
        raise AuthSecurityError("Identity token is empty.")
    try:
        claims = jwt.decode(raw, options={"verify_signature": False})
    except jwt.InvalidTokenError as exc:
        raise AuthSecurityError("Identity token could not be decoded.") from exc

    subject = str(claims.get("sub") or "").strip()
    email = str(claims.get("email") or "").strip().lower()
    if not subject or not email:
        raise AuthSecurityError("Identity token is missing subject or email.")

    return FederatedProfile(
        subject=subject,
        email=email,
        name=str(claims.get("name") or "").strip(),
        avatar=claims.get("picture"),
        email_verified=bool(claims.get("email_verified", False)),
    )


def username_base(profile: FederatedProfile) -> str:
    """
    Derive a username candidate that satisfies the `[a-z0-9_]` rule.
    """
    source = profile.name or profile.email.split("@", 1)[0]
    base = _USERNAME_UNSAFE.sub("_", source.lower()).strip("_")
    return base or "user"
