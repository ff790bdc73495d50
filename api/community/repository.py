"""
Report and contact-message persistence (raw SQL).
"""

from __future__ import annotations

from typing import Any

from core import db

REPORT_COLUMNS = """
    id, username, email, title, subject, message, calculator_title,
    calculator_id, comment_content, comment_id, comment_report_reasons,
    is_report_seen, created_at, updated_at
"""

CONTACT_COLUMNS = """
    id, username, email, subject, message, is_contact_seen, created_at, updated_at
"""


async def create_report(
    *,
    username: str,
    email: str,
    title: str,
    subject: str | None = None,
    message: str | None = None,
    calculator_title: str | None = None,
    calculator_id: str | None = None,
    comment_content: str | None = None,
    comment_id: str | None = None,
    comment_report_reasons: list[Any] | None = None,
) -> dict:
    row = await db.fetch_one(
        f"""
        INSERT INTO reports (
          username, email, title, subject, message, calculator_title,
          calculator_id, comment_content, comment_id, comment_report_reasons
        )
        VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10)
        RETURNING {REPORT_COLUMNS}
        """,
        username,
        email,
        title,
        subject,
        message,
        calculator_title,
        calculator_id,
        comment_content,
        comment_id,
        comment_report_reasons,
    )
    if row is None:
        raise RuntimeError("Failed to create report")
    return row


async def list_reports(*, seen: bool, search: str = "", limit: int, offset: int) -> list[dict]:
    return await db.fetch_all(
        f"""
        SELECT {REPORT_COLUMNS}
        FROM reports
        WHERE is_report_seen = $1
          AND ($2 = '' OR username ILIKE ('%' || $2 || '%'))
        ORDER BY created_at DESC, id DESC
        LIMIT $3
        OFFSET $4
        """,
        seen,
        search,
        limit,
        offset,
    )


async def count_reports(*, seen: bool, search: str = "") -> int:
    return await db.fetch_count(
        """
        SELECT count(*)
        FROM reports
        WHERE is_report_seen = $1
          AND ($2 = '' OR username ILIKE ('%' || $2 || '%'))
        """,
        seen,
        search,
    )


async def set_report_seen(report_id: int, *, is_seen: bool) -> bool:
    status = await db.execute(
        """
        UPDATE reports
        SET is_report_seen = $2,
            updated_at = now()
        WHERE id = $1
        """,
        report_id,
        is_seen,
    )
    return db.affected_rows(status) > 0


async def delete_report(report_id: int) -> bool:
    status = await db.execute("DELETE FROM reports WHERE id = $1", report_id)
    return db.affected_rows(status) > 0


async def create_contact(*, username: str, email: str, subject: str, message: str) -> dict:
    row = await db.fetch_one(
        f"""
        INSERT INTO contacts (username, email, subject, message)
        VALUES ($1, $2, $3, $4)
        RETURNING {CONTACT_COLUMNS}
        """,
        username,
        email,
        subject,
        message,
    )
    if row is None:
        raise RuntimeError("Failed to create contact")
    return row


async def list_contacts(*, seen: bool, search: str = "", limit: int, offset: int) -> list[dict]:
    return await db.fetch_all(
        f"""
        SELECT {CONTACT_COLUMNS}
        FROM contacts
        WHERE is_contact_seen = $1
          AND ($2 = '' OR message ILIKE ('%' || $2 || '%'))
        ORDER BY created_at DESC, id DESC
        LIMIT $3
        OFFSET $4
        """,
        seen,
        search,
        limit,
        offset,
    )


async def count_contacts(*, seen: bool, search: str = "") -> int:
    return await db.fetch_count(
        """
        SELECT count(*)
        FROM contacts
        WHERE is_contact_seen = $1
          AND ($2 = '' OR message ILIKE ('%' || $2 || '%'))
        """,
        seen,
        search,
    )


async def set_contact_seen(contact_id: int, *, is_seen: bool) -> bool:
    status = await db.execute(
        """
        UPDATE contacts
        SET is_contact_seen = $2,
            updated_at = now()
        WHERE id = $1
        """,
        contact_id,
        is_seen,
    )
    return db.affected_rows(status) > 0


async def delete_contact(contact_id: int) -> bool:
    status = await db.execute("DELETE FROM contacts WHERE id = $1", contact_id)
    return db.affected_rows(status) > 0
