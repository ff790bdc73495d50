"""
Auth business logic: credential verification, session issuance, token
redemption, and principal resolution for the request gates.
"""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass

import asyncpg
from fastapi import status
from fastapi.concurrency import run_in_threadpool

from core import config, mailer
from core.errors import AuthError, NotFoundOrTransient, PersistenceError, ValidationError, conflict
from core.ids import parse_id

from . import federated, repository, schemas, security
from .principal import Principal

logger = logging.getLogger(__name__)

USERNAME_PATTERN = re.compile(r"^[a-zA-Z0-9_]+$")
EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
MIN_PASSWORD_LENGTH = 6


@dataclass(frozen=True)
class IssuedSession:
    access_token: str
    refresh_token: str
    max_age: int  # epoch milliseconds at which the refresh cookie expires

    def body(self) -> schemas.SessionResponse:
        return schemas.SessionResponse(access_token=self.access_token, max_age=self.max_age)


def _now_ms() -> int:
    return int(time.time() * 1000)


def issue_session(user_row: dict) -> IssuedSession:
    return IssuedSession(
        access_token=security.build_access_token(user_row),
        refresh_token=security.build_refresh_token(user_row),
        max_age=_now_ms() + security.refresh_token_max_age_seconds() * 1000,
    )


def validate_username(username: str) -> None:
    if not USERNAME_PATTERN.match(username or ""):
        raise ValidationError(
            "Special characters is not allowed in username",
            status_code=status.HTTP_423_LOCKED,
        )


def validate_new_password(password: str) -> None:
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")


async def register(payload: schemas.RegisterRequest, *, ip_address: str | None = None) -> IssuedSession:
    username = (payload.username or "").strip()
    email = (payload.email or "").strip()
    password = payload.password or ""

    if not username or not email or not password:
        raise ValidationError()

    # Character check runs before any database access.
    validate_username(username)
    if not EMAIL_PATTERN.match(email):
        raise ValidationError("Invalid email address")
    validate_new_password(password)

    if await repository.get_user_by_username(username) is not None:
        raise conflict("User already exist")
    if await repository.get_user_by_email(email) is not None:
        raise conflict("User already exist")

    password_hash = security.hash_password(password)
    try:
        user_row = await repository.create_user(
            username=username,
            email=email,
            password_hash=password_hash,
            user_ip=ip_address,
        )
    except asyncpg.UniqueViolationError as exc:
        raise conflict("User already exist") from exc
    except (asyncpg.PostgresError, RuntimeError) as exc:
        logger.exception("register_failed username=%s", repository.normalize_username(username))
        raise PersistenceError("Register is failed, please try again") from exc

    logger.info("user_registered user_id=%s", user_row["id"])
    return issue_session(user_row)


async def login(payload: schemas.LoginRequest, *, ip_address: str | None = None) -> IssuedSession:
    if not payload.password:
        raise ValidationError()

    user_row = None
    if payload.username:
        user_row = await repository.get_user_by_username(payload.username)
    if user_row is None and payload.email:
        user_row = await repository.get_user_by_email(payload.email)
    if user_row is None and payload.username and "@" in payload.username:
        # The login form has one "username or email" field.
        user_row = await repository.get_user_by_email(payload.username)

    if user_row is None:
        raise AuthError()
    if not security.verify_password(payload.password, user_row.get("password_hash")):
        raise AuthError()

    await repository.record_user_ip(int(user_row["id"]), ip_address)
    return issue_session(user_row)


async def access_login(payload: schemas.AccessLoginRequest, *, ip_address: str | None = None) -> IssuedSession:
    if not payload.user_token:
        raise ValidationError()

    try:
        claims = security.decode_access_token(payload.user_token)
    except security.AuthSecurityError as exc:
        raise AuthError("Authentication failed") from exc

    user_id = parse_id(claims.get("sub"))
    user_row = await repository.get_user_by_id(user_id) if user_id is not None else None
    if user_row is None or not security.token_version_matches(claims, user_row):
        raise AuthError()

    await repository.record_user_ip(int(user_row["id"]), ip_address)
    return issue_session(user_row)


async def _available_username(base: str) -> str:
    candidate = base
    suffix = 0
    while await repository.get_user_by_username(candidate) is not None:
        suffix += 1
        candidate = f"{base}_{suffix}"
    return candidate


async def google_login(payload: schemas.GoogleLoginRequest, *, ip_address: str | None = None) -> IssuedSession:
    if not payload.google_id_token:
        raise ValidationError()

    try:
        profile = federated.decode_google_id_token(payload.google_id_token)
    except security.AuthSecurityError as exc:
        raise AuthError("Authentication failed") from exc

    user_row = await repository.get_user_by_google_id(profile.subject)
    if user_row is not None:
        await repository.record_user_ip(int(user_row["id"]), ip_address)
        return issue_session(user_row)

    by_email = await repository.get_user_by_email(profile.email)
    if by_email is not None:
        user_row = await repository.link_google_account(
            int(by_email["id"]),
            google_id=profile.subject,
            avatar=profile.avatar,
            is_activated=profile.email_verified,
            user_ip=ip_address,
        )
        if user_row is None:
            raise NotFoundOrTransient()
        logger.info("google_account_linked user_id=%s", user_row["id"])
        return issue_session(user_row)

    username = await _available_username(federated.username_base(profile))
    try:
        user_row = await repository.create_user(
            username=username,
            email=profile.email,
            password_hash=None,
            google_id=profile.subject,
            avatar=profile.avatar,
            is_activated=profile.email_verified,
            user_ip=ip_address,
        )
    except asyncpg.UniqueViolationError as exc:
        raise conflict("User already exist") from exc

    logger.info("user_registered user_id=%s via=google", user_row["id"])
    return issue_session(user_row)


async def refresh_access_token(principal: Principal, *, ip_address: str | None = None) -> schemas.AccessTokenResponse:
    # Re-read the row so role/profile changes since login reach the new token.
    user_row = await repository.get_user_by_id(principal.user_id)
    if user_row is None:
        raise AuthError()
    await repository.record_user_ip(principal.user_id, ip_address)
    return schemas.AccessTokenResponse(access_token=security.build_access_token(user_row))


async def revoke_all_sessions(principal: Principal) -> None:
    if await repository.bump_token_version(principal.user_id) is None:
        raise AuthError()
    logger.info("sessions_revoked user_id=%s", principal.user_id)


async def send_password_reset(payload: schemas.ForgotPasswordRequest) -> dict:
    if not payload.email:
        raise ValidationError()

    user_row = await repository.get_user_by_email(payload.email)
    if user_row is None:
        raise AuthError()

    reset_token = security.build_purpose_token(
        security.PASSWORD_RESET,
        {
            "email": user_row["email"],
            "userId": str(user_row["id"]),
            "ver": int(user_row.get("token_version") or 0),
        },
        ttl_minutes=security.reset_token_expire_minutes(),
    )
    replacements = {
        "username": user_row["username"],
        "email": user_row["email"],
        "resetLink": f"{config.client_url()}/reset-password?t={reset_token}",
    }
    try:
        await run_in_threadpool(
            mailer.send_templated_email,
            template_name="reset-password.html",
            to_email=user_row["email"],
            subject="Alvacus password reset",
            replacements=replacements,
        )
    except mailer.MailerError as exc:
        logger.exception("password_reset_email_failed user_id=%s", user_row["id"])
        raise NotFoundOrTransient() from exc

    return {"message": "success"}


async def reset_password(payload: schemas.ResetPasswordRequest, *, ip_address: str | None = None) -> IssuedSession:
    if not payload.password or not payload.t:
        raise ValidationError()

    try:
        user_info = security.decode_purpose_token(payload.t, security.PASSWORD_RESET)
    except security.AuthSecurityError as exc:
        raise AuthError() from exc

    user_id = parse_id(user_info.get("userId"))
    if user_id is None or not user_info.get("email"):
        raise AuthError()

    user_row = await repository.get_user_by_id(user_id)
    # A completed reset bumps token_version, which retires the link.
    if user_row is None or not security.token_version_matches(user_info, user_row):
        raise AuthError()

    validate_new_password(payload.password)
    updated = await repository.set_password(user_id, security.hash_password(payload.password))
    if updated is None:
        raise PersistenceError("Update user is failed, please try again")

    await repository.record_user_ip(user_id, ip_address)
    logger.info("password_reset user_id=%s", user_id)
    return issue_session(updated)


async def _principal_for(user_id: int | None, claims: dict) -> Principal | None:
    if user_id is None:
        return None
    user_row = await repository.get_user_by_id(user_id)
    if user_row is None or not security.token_version_matches(claims, user_row):
        return None
    return Principal.from_user_row(user_row)


async def principal_from_refresh_token(token: str) -> Principal:
    try:
        claims = security.decode_refresh_token(token)
    except security.AuthSecurityError as exc:
        raise AuthError("Authentication failed") from exc

    principal = await _principal_for(parse_id(claims.get("userId")), claims)
    if principal is None:
        raise AuthError("Authentication failed")
    return principal


async def principal_from_access_token(token: str) -> Principal:
    try:
        claims = security.decode_access_token(token)
    except security.AuthSecurityError as exc:
        raise AuthError("Forbidden", status_code=status.HTTP_403_FORBIDDEN) from exc

    principal = await _principal_for(parse_id(claims.get("sub")), claims)
    if principal is None:
        raise AuthError("Forbidden", status_code=status.HTTP_403_FORBIDDEN)
    return principal
