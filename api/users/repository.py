"""
User profile persistence (raw SQL).

Credential lookups live in `auth/repository.py`; this module covers the
profile, privacy, activation, deletion and activity views.
"""

from __future__ import annotations

from auth.repository import USER_COLUMNS, normalize_email, normalize_username
from core import db


async def list_users(*, search: str = "", limit: int, offset: int) -> list[dict]:
    return await db.fetch_all(
        """
        SELECT id, username, role, avatar, profession, company, is_activated,
               show_saved_calculators, show_comments, created_at
        FROM users
        WHERE ($1 = '' OR username ILIKE ('%' || $1 || '%'))
        ORDER BY created_at DESC, id DESC
        LIMIT $2
        OFFSET $3
        """,
        search,
        limit,
        offset,
    )


async def count_users(*, search: str = "") -> int:
    return await db.fetch_count(
        """
        SELECT count(*)
        FROM users
        WHERE ($1 = '' OR username ILIKE ('%' || $1 || '%'))
        """,
        search,
    )


async def update_profile(
    user_id: int,
    *,
    username: str | None = None,
    email: str | None = None,
    avatar: str | None = None,
    profession: str | None = None,
    company: str | None = None,
) -> dict | None:
    """
    Partial overwrite: a None argument keeps the stored value.
    """
    return await db.fetch_one(
        f"""
        UPDATE users
        SET username = COALESCE($2, username),
            slug = COALESCE($2, slug),
            email = COALESCE($3, email),
            avatar = COALESCE($4, avatar),
            profession = COALESCE($5, profession),
            company = COALESCE($6, company),
            updated_at = now()
        WHERE id = $1
        RETURNING {USER_COLUMNS}
        """,
        user_id,
        normalize_username(username) if username else None,
        normalize_email(email) if email else None,
        avatar,
        profession,
        company,
    )


async def update_privacy(user_id: int, *, show_saved_calculators: bool, show_comments: bool) -> dict | None:
    return await db.fetch_one(
        f"""
        UPDATE users
        SET show_saved_calculators = $2,
            show_comments = $3,
            updated_at = now()
        WHERE id = $1
        RETURNING {USER_COLUMNS}
        """,
        user_id,
        show_saved_calculators,
        show_comments,
    )


async def set_activation(user_id: int, *, is_activated: bool) -> dict | None:
    return await db.fetch_one(
        f"""
        UPDATE users
        SET is_activated = $2,
            updated_at = now()
        WHERE id = $1
        RETURNING {USER_COLUMNS}
        """,
        user_id,
        is_activated,
    )


async def delete_user(user_id: int, *, delete_calculators: bool, delete_comments: bool) -> bool:
    """
    Delete a user and, only when asked, everything they authored.
    Returns False when the user did not exist.
    """
    async with db.transaction() as conn:
        if delete_calculators:
            await conn.execute("DELETE FROM calculators WHERE author_id = $1", user_id)
        if delete_comments:
            await conn.execute("DELETE FROM comments WHERE author_id = $1", user_id)
        status = await conn.execute("DELETE FROM users WHERE id = $1", user_id)
    return db.affected_rows(status) > 0


async def list_notifications(user_id: int, *, limit: int, offset: int) -> list[dict]:
    return await db.fetch_all(
        """
        SELECT id, type, text, link, is_read, created_at
        FROM notifications
        WHERE user_id = $1
        ORDER BY created_at DESC, id DESC
        LIMIT $2
        OFFSET $3
        """,
        user_id,
        limit,
        offset,
    )


async def count_notifications(user_id: int) -> int:
    return await db.fetch_count(
        "SELECT count(*) FROM notifications WHERE user_id = $1",
        user_id,
    )


async def mark_notification_read(user_id: int, notification_id: int) -> bool:
    status = await db.execute(
        """
        UPDATE notifications
        SET is_read = true
        WHERE id = $1
          AND user_id = $2
        """,
        notification_id,
        user_id,
    )
    return db.affected_rows(status) > 0


async def list_commented_calculators(user_id: int, *, limit: int, offset: int) -> list[dict]:
    """
    Calculators the user commented on, newest comment first.
    """
    return await db.fetch_all(
        """
        SELECT *
        FROM (
          SELECT DISTINCT ON (c.calculator_id)
            c.calculator_id, calc.title, calc.slug, calc.type,
            c.id AS comment_id, c.text, c.created_at
          FROM comments c
          JOIN calculators calc ON calc.id = c.calculator_id
          WHERE c.author_id = $1
          ORDER BY c.calculator_id, c.created_at DESC
        ) latest
        ORDER BY latest.created_at DESC
        LIMIT $2
        OFFSET $3
        """,
        user_id,
        limit,
        offset,
    )


async def count_commented_calculators(user_id: int) -> int:
    return await db.fetch_count(
        "SELECT count(DISTINCT calculator_id) FROM comments WHERE author_id = $1",
        user_id,
    )


async def add_notification(
    conn,
    user_id: int,
    *,
    type: str,
    text: str,
    link: str,
) -> None:
    """
    Queue a notification inside the caller's transaction. Skipped silently
    when the recipient no longer exists (authors are referenced by id only).
    """
    await conn.execute(
        """
        INSERT INTO notifications (user_id, type, text, link)
        SELECT $1::bigint, $2::text, $3::text, $4::text
        WHERE EXISTS (SELECT 1 FROM users WHERE id = $1::bigint)
        """,
        user_id,
        type,
        text,
        link,
    )
