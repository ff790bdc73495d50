"""
Auth persistence helpers (users table, credential side).
"""

from __future__ import annotations

from core import db

USER_COLUMNS = """
    id, username, email, password_hash, google_id, user_ip, slug, avatar,
    profession, company, role, is_activated, show_saved_calculators,
    show_comments, token_version, created_at, updated_at
"""


def normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()


def normalize_username(username: str | None) -> str:
    return (username or "").strip().lower()


async def create_user(
    *,
    username: str,
    email: str,
    password_hash: str | None,
    google_id: str | None = None,
    avatar: str | None = None,
    is_activated: bool = True,
    user_ip: str | None = None,
) -> dict:
    row = await db.fetch_one(
        f"""
        INSERT INTO users (username, email, password_hash, google_id, avatar,
                           is_activated, user_ip, slug)
        VALUES ($1, $2, $3, $4, $5, $6, $7, $1)
        RETURNING {USER_COLUMNS}
        """,
        normalize_username(username),
        normalize_email(email),
        password_hash,
        google_id,
        avatar,
        is_activated,
        user_ip,
    )
    if row is None:
        raise RuntimeError("Failed to create user.")
    return row


async def get_user_by_id(user_id: int) -> dict | None:
    return await db.fetch_one(
        f"""
        SELECT {USER_COLUMNS}
        FROM users
        WHERE id = $1
        """,
        user_id,
    )


async def get_user_by_username(username: str) -> dict | None:
    return await db.fetch_one(
        f"""
        SELECT {USER_COLUMNS}
        FROM users
        WHERE lower(username) = lower($1)
        """,
        normalize_username(username),
    )


async def get_user_by_email(email: str) -> dict | None:
    return await db.fetch_one(
        f"""
        SELECT {USER_COLUMNS}
        FROM users
        WHERE lower(email) = lower($1)
        """,
        normalize_email(email),
    )


async def get_user_by_google_id(google_id: str) -> dict | None:
    return await db.fetch_one(
        f"""
        SELECT {USER_COLUMNS}
        FROM users
        WHERE google_id = $1
        """,
        google_id,
    )


async def record_user_ip(user_id: int, user_ip: str | None) -> None:
    await db.execute(
        """
        UPDATE users
        SET user_ip = $2,
            updated_at = now()
        WHERE id = $1
        """,
        user_id,
        user_ip,
    )


async def link_google_account(
    user_id: int,
    *,
    google_id: str,
    avatar: str | None,
    is_activated: bool,
    user_ip: str | None,
) -> dict | None:
    return await db.fetch_one(
        f"""
        UPDATE users
        SET google_id = $2,
            avatar = COALESCE($3, avatar),
            is_activated = $4,
            user_ip = $5,
            updated_at = now()
        WHERE id = $1
        RETURNING {USER_COLUMNS}
        """,
        user_id,
        google_id,
        avatar,
        is_activated,
        user_ip,
    )


async def set_password(user_id: int, password_hash: str) -> dict | None:
    """
    Store a new password hash and bump the token version so every token
    issued before the change stops verifying.
    """
    return await db.fetch_one(
        f"""
        UPDATE users
        SET password_hash = $2,
            token_version = token_version + 1,
            updated_at = now()
        WHERE id = $1
        RETURNING {USER_COLUMNS}
        """,
        user_id,
        password_hash,
    )


async def bump_token_version(user_id: int) -> dict | None:
    return await db.fetch_one(
        f"""
        UPDATE users
        SET token_version = token_version + 1,
            updated_at = now()
        WHERE id = $1
        RETURNING {USER_COLUMNS}
        """,
        user_id,
    )
