"""
User profile business logic.
"""

from __future__ import annotations

import logging

import asyncpg
from fastapi.concurrency import run_in_threadpool

from auth import policy, security
from auth import repository as auth_repository
from auth import service as auth_service
from auth.principal import Principal
from core import config, mailer
from core.errors import AuthError, NotFoundOrTransient, PersistenceError, ValidationError, conflict
from core.ids import parse_id, same_id
from core.pagination import ListParams, envelope

from . import repository, schemas

logger = logging.getLogger(__name__)


def public_user(row: dict) -> dict:
    return {
        "id": int(row["id"]),
        "username": row.get("username"),
        "role": row.get("role") or "user",
        "avatar": row.get("avatar"),
        "profession": row.get("profession"),
        "company": row.get("company"),
        "isActivated": bool(row.get("is_activated", False)),
        "privacySettings": {
            "showSavedCalculators": bool(row.get("show_saved_calculators", False)),
            "showComments": bool(row.get("show_comments", False)),
        },
        "createdAt": row.get("created_at"),
    }


async def _load_user(user_id: int) -> dict:
    user_row = await auth_repository.get_user_by_id(user_id)
    if user_row is None:
        raise NotFoundOrTransient("User not found")
    return user_row


async def _owned_user(principal: Principal, user_id: int) -> dict:
    user_row = await auth_repository.get_user_by_id(user_id)
    if user_row is None:
        raise AuthError()
    policy.require(principal, "user:edit", owner_id=user_row["id"])
    return user_row


async def list_users(params: ListParams) -> dict:
    rows = await repository.list_users(search=params.search, limit=params.limit, offset=params.offset)
    count = await repository.count_users(search=params.search)
    return envelope("users", [public_user(r) for r in rows], count=count, params=params)


async def get_user(user_id: int) -> dict:
    return public_user(await _load_user(user_id))


async def edit_user(principal: Principal, user_id: int, payload: schemas.EditUserRequest) -> auth_service.IssuedSession:
    user_row = await _owned_user(principal, user_id)

    username = (payload.username or "").strip() or None
    email = (payload.email or "").strip() or None

    if username and username.lower() != user_row["username"]:
        auth_service.validate_username(username)
        existing = await auth_repository.get_user_by_username(username)
        if existing is not None and not same_id(existing["id"], user_id):
            raise conflict("Username already exist")
    else:
        username = None

    if email and email.lower() != user_row["email"]:
        if not auth_service.EMAIL_PATTERN.match(email):
            raise ValidationError("Invalid email address")
        existing = await auth_repository.get_user_by_email(email)
        if existing is not None and not same_id(existing["id"], user_id):
            raise conflict("Email already exist")
    else:
        email = None

    try:
        updated = await repository.update_profile(
            user_id,
            username=username,
            email=email,
            avatar=payload.avatar or None,
            profession=payload.profession or None,
            company=payload.company or None,
        )
    except asyncpg.UniqueViolationError as exc:
        raise conflict("User already exist") from exc
    if updated is None:
        raise PersistenceError("Update user is failed, please try again")

    # Fresh tokens so the access-token snapshot reflects the edit.
    return auth_service.issue_session(updated)


async def change_password(
    principal: Principal,
    user_id: int,
    payload: schemas.ChangePasswordRequest,
) -> auth_service.IssuedSession:
    if not payload.old_password or not payload.password:
        raise ValidationError()

    user_row = await _owned_user(principal, user_id)
    if not security.verify_password(payload.old_password, user_row.get("password_hash")):
        raise AuthError("Your old password is incorrect")

    auth_service.validate_new_password(payload.password)
    updated = await auth_repository.set_password(user_id, security.hash_password(payload.password))
    if updated is None:
        raise PersistenceError("Update user is failed, please try again")

    logger.info("password_changed user_id=%s", user_id)
    return auth_service.issue_session(updated)


async def change_privacy(principal: Principal, user_id: int, payload: schemas.ChangePrivacyRequest) -> dict:
    if payload.privacy_setting is None:
        raise ValidationError()

    await _owned_user(principal, user_id)
    updated = await repository.update_privacy(
        user_id,
        show_saved_calculators=bool(payload.privacy_setting.show_saved_calculators),
        show_comments=bool(payload.privacy_setting.show_comments),
    )
    if updated is None:
        raise NotFoundOrTransient()

    return {
        "message": "Privacy settings updated",
        "showComments": bool(updated["show_comments"]),
        "showSavedCalculators": bool(updated["show_saved_calculators"]),
    }


async def send_activation_email(principal: Principal) -> dict:
    user_row = await _load_user(principal.user_id)
    activation_token = security.build_purpose_token(
        security.ACTIVATION,
        {"userId": str(user_row["id"]), "isActivated": True},
        ttl_minutes=security.activation_token_expire_minutes(),
    )
    replacements = {
        "username": user_row["username"],
        "activationLink": f"{config.client_url()}/auth/activation?t={activation_token}&uuid={user_row['id']}",
    }
    try:
        await run_in_threadpool(
            mailer.send_templated_email,
            template_name="verification.html",
            to_email=user_row["email"],
            subject="Alvacus account verification",
            replacements=replacements,
        )
    except mailer.MailerError as exc:
        logger.exception("activation_email_failed user_id=%s", user_row["id"])
        raise NotFoundOrTransient() from exc

    return {"message": "Email sent"}


def _activation_token_from_path(raw: str) -> str:
    # Links carry the token as `t=<token>`; accept the bare token too.
    token = (raw or "").strip()
    if token.startswith("t="):
        token = token[2:]
    return token


async def activate(raw_token: str) -> dict:
    token = _activation_token_from_path(raw_token)
    if not token:
        raise ValidationError()

    try:
        user_info = security.decode_purpose_token(token, security.ACTIVATION)
    except security.AuthSecurityError as exc:
        raise AuthError() from exc

    user_id = parse_id(user_info.get("userId"))
    if user_id is None:
        raise AuthError()

    updated = await repository.set_activation(user_id, is_activated=bool(user_info.get("isActivated", False)))
    if updated is None:
        raise AuthError()

    logger.info("user_activated user_id=%s", user_id)
    return {"message": "success"}


async def delete_user(
    principal: Principal,
    user_id: int,
    *,
    delete_calculators: bool = False,
    delete_comments: bool = False,
) -> dict:
    user_row = await auth_repository.get_user_by_id(user_id)
    if user_row is None:
        raise AuthError()
    policy.require(principal, "user:delete", owner_id=user_row["id"])

    deleted = await repository.delete_user(
        user_id,
        delete_calculators=delete_calculators,
        delete_comments=delete_comments,
    )
    if not deleted:
        raise NotFoundOrTransient()

    logger.info(
        "user_deleted user_id=%s by=%s calculators=%s comments=%s",
        user_id,
        principal.user_id,
        delete_calculators,
        delete_comments,
    )
    return {"message": "User removed"}


def _notification(row: dict) -> dict:
    return {
        "id": int(row["id"]),
        "type": row["type"],
        "text": row["text"],
        "link": row["link"],
        "isRead": bool(row["is_read"]),
        "createdAt": row["created_at"],
    }


async def notifications(principal: Principal, params: ListParams) -> dict:
    rows = await repository.list_notifications(principal.user_id, limit=params.limit, offset=params.offset)
    count = await repository.count_notifications(principal.user_id)
    return envelope("notifications", [_notification(r) for r in rows], count=count, params=params)


async def mark_notification_read(principal: Principal, notification_id: int) -> dict:
    if not await repository.mark_notification_read(principal.user_id, notification_id):
        raise NotFoundOrTransient("Notification not found")
    return {"message": "Notification updated"}


async def commented_calculators(principal: Principal | None, user_id: int, params: ListParams) -> dict:
    user_row = await _load_user(user_id)
    policy.require(
        principal,
        "user:view-comments",
        owner_id=user_row["id"],
        show_comments=bool(user_row.get("show_comments")),
    )

    rows = await repository.list_commented_calculators(user_id, limit=params.limit, offset=params.offset)
    count = await repository.count_commented_calculators(user_id)
    items = [
        {
            "calculatorId": int(r["calculator_id"]),
            "title": r["title"],
            "slug": r["slug"],
            "type": r["type"],
            "commentId": int(r["comment_id"]),
            "text": r["text"],
            "createdAt": r["created_at"],
        }
        for r in rows
    ]
    return envelope("commentedCalculators", items, count=count, params=params)
