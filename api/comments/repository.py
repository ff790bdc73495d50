"""
Comment, reply and like persistence (raw SQL).
"""

from __future__ import annotations

from core import db
from users.repository import add_notification

COMMENT_COLUMNS = """
    cm.id, cm.calculator_id, cm.author_id, cm.text, cm.created_at, cm.updated_at,
    u.username AS author_username, u.avatar AS author_avatar,
    u.profession AS author_profession, u.company AS author_company,
    ARRAY(
      SELECT l.user_id FROM comment_likes l
      WHERE l.comment_id = cm.id
      ORDER BY l.created_at, l.user_id
    ) AS like_user_ids
"""

ORDER_BY = {
    "recent": "cm.created_at DESC, cm.id DESC",
    "popular": "cardinality(cm.like_user_ids) DESC, cm.created_at DESC",
    "a-z": "cm.text ASC",
    "z-a": "cm.text DESC",
}


async def list_comments(calc_id: int, *, sort: str, limit: int, offset: int) -> list[dict]:
    order_by = ORDER_BY.get(sort, ORDER_BY["recent"])
    return await db.fetch_all(
        f"""
        SELECT *
        FROM (
          SELECT {COMMENT_COLUMNS}
          FROM comments cm
          LEFT JOIN users u ON u.id = cm.author_id
          WHERE cm.calculator_id = $1
        ) cm
        ORDER BY {order_by}
        LIMIT $2
        OFFSET $3
        """,
        calc_id,
        limit,
        offset,
    )


async def count_comments(calc_id: int) -> int:
    return await db.fetch_count("SELECT count(*) FROM comments WHERE calculator_id = $1", calc_id)


async def get_comment(comment_id: int) -> dict | None:
    return await db.fetch_one(
        f"""
        SELECT {COMMENT_COLUMNS}
        FROM comments cm
        LEFT JOIN users u ON u.id = cm.author_id
        WHERE cm.id = $1
        """,
        comment_id,
    )


async def list_replies(comment_ids: list[int]) -> list[dict]:
    if not comment_ids:
        return []
    return await db.fetch_all(
        """
        SELECT r.id, r.comment_id, r.author_id, r.text, r.created_at, r.updated_at,
               u.username AS author_username, u.avatar AS author_avatar,
               u.profession AS author_profession, u.company AS author_company
        FROM comment_replies r
        LEFT JOIN users u ON u.id = r.author_id
        WHERE r.comment_id = ANY($1::bigint[])
        ORDER BY r.comment_id, r.id
        """,
        comment_ids,
    )


async def create_comment(calc_id: int, author_id: int, text: str, *, notification: dict | None = None) -> int:
    async with db.transaction() as conn:
        comment_id = await conn.fetchval(
            """
            INSERT INTO comments (calculator_id, author_id, text)
            VALUES ($1, $2, $3)
            RETURNING id
            """,
            calc_id,
            author_id,
            text,
        )
        if notification is not None:
            await add_notification(conn, **notification)
    return int(comment_id)


async def create_reply(comment_id: int, author_id: int, text: str, *, notification: dict | None = None) -> int:
    async with db.transaction() as conn:
        reply_id = await conn.fetchval(
            """
            INSERT INTO comment_replies (comment_id, author_id, text)
            VALUES ($1, $2, $3)
            RETURNING id
            """,
            comment_id,
            author_id,
            text,
        )
        await conn.execute("UPDATE comments SET updated_at = now() WHERE id = $1", comment_id)
        if notification is not None:
            await add_notification(conn, **notification)
    return int(reply_id)


async def like_comment(comment_id: int, user_id: int, *, notification: dict | None = None) -> bool:
    """
    Returns False when the user already liked the comment; nothing changes then.
    """
    async with db.transaction() as conn:
        status = await conn.execute(
            """
            INSERT INTO comment_likes (comment_id, user_id)
            VALUES ($1, $2)
            ON CONFLICT DO NOTHING
            """,
            comment_id,
            user_id,
        )
        if db.affected_rows(status) == 0:
            return False
        if notification is not None:
            await add_notification(conn, **notification)
    return True


async def unlike_comment(comment_id: int, user_id: int) -> bool:
    status = await db.execute(
        "DELETE FROM comment_likes WHERE comment_id = $1 AND user_id = $2",
        comment_id,
        user_id,
    )
    return db.affected_rows(status) > 0


async def delete_comment(comment_id: int) -> bool:
    status = await db.execute("DELETE FROM comments WHERE id = $1", comment_id)
    return db.affected_rows(status) > 0


async def delete_reply(comment_id: int, reply_id: int) -> bool:
    status = await db.execute(
        "DELETE FROM comment_replies WHERE id = $1 AND comment_id = $2",
        reply_id,
        comment_id,
    )
    return db.affected_rows(status) > 0
