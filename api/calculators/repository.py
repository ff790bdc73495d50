"""
Calculator persistence (raw SQL).

`calculator_saves` is the only record of who saved what; both the
calculator's `savedUsers` and a user's saved list are read from it.
"""

from __future__ import annotations

from typing import Any

from core import db
from users.repository import add_notification

CALCULATOR_COLUMNS = """
    c.id, c.author_id, c.title, c.slug, c.description, c.category, c.type,
    c.info, c.is_info_markdown, c.formula, c.formula_variables, c.input_length,
    c.input_labels, c.input_selects, c.is_verified, c.created_at, c.updated_at,
    u.username AS author_username, u.avatar AS author_avatar,
    u.profession AS author_profession, u.company AS author_company,
    ARRAY(
      SELECT s.user_id FROM calculator_saves s
      WHERE s.calculator_id = c.id
      ORDER BY s.created_at, s.user_id
    ) AS saved_user_ids
"""

FROM_CALCULATORS = """
    FROM calculators c
    LEFT JOIN users u ON u.id = c.author_id
"""

ORDER_BY = {
    "recent": "c.created_at DESC, c.id DESC",
    "a-z": "c.slug ASC",
    "z-a": "c.slug DESC",
    "popular": "cardinality(saved_user_ids) DESC, c.created_at DESC",
}


def _filters(
    *,
    verified: bool | None = None,
    calc_type: str | None = None,
    author_id: int | None = None,
    saved_by: int | None = None,
    search: str = "",
    tag: str = "",
) -> tuple[str, list[Any]]:
    clauses: list[str] = []
    args: list[Any] = []

    def add(sql: str, value: Any) -> None:
        args.append(value)
        clauses.append(sql.format(n=len(args)))

    if verified is not None:
        add("c.is_verified = ${n}", verified)
    if calc_type:
        add("c.type = ${n}", calc_type)
    if author_id is not None:
        add("c.author_id = ${n}", author_id)
    if saved_by is not None:
        add(
            "EXISTS (SELECT 1 FROM calculator_saves s WHERE s.calculator_id = c.id AND s.user_id = ${n})",
            saved_by,
        )
    if search:
        add("c.title ILIKE ('%' || ${n} || '%')", search)
    if tag:
        add("c.category ILIKE ('%' || ${n} || '%')", tag)

    where = ("WHERE " + " AND ".join(clauses)) if clauses else ""
    return where, args


async def list_calculators(
    *,
    sort: str = "recent",
    limit: int | None = None,
    offset: int = 0,
    **filters: Any,
) -> list[dict]:
    where, args = _filters(**filters)
    order_by = ORDER_BY.get(sort, ORDER_BY["recent"])

    paging = ""
    if limit is not None:
        args.extend([limit, offset])
        paging = f"LIMIT ${len(args) - 1} OFFSET ${len(args)}"

    return await db.fetch_all(
        f"""
        SELECT *
        FROM (
          SELECT {CALCULATOR_COLUMNS}
          {FROM_CALCULATORS}
          {where}
        ) c
        ORDER BY {order_by}
        {paging}
        """,
        *args,
    )


async def count_calculators(**filters: Any) -> int:
    where, args = _filters(**filters)
    return await db.fetch_count(f"SELECT count(*) FROM calculators c {where}", *args)


async def get_calculator(calc_id: int) -> dict | None:
    return await db.fetch_one(
        f"""
        SELECT {CALCULATOR_COLUMNS}
        {FROM_CALCULATORS}
        WHERE c.id = $1
        """,
        calc_id,
    )


async def get_calculator_by_slug(slug: str) -> dict | None:
    return await db.fetch_one(
        f"""
        SELECT {CALCULATOR_COLUMNS}
        {FROM_CALCULATORS}
        WHERE c.slug = $1
        """,
        slug,
    )


async def slug_taken(slug: str, *, exclude_id: int | None = None) -> bool:
    found = await db.fetch_one(
        """
        SELECT id
        FROM calculators
        WHERE slug = $1
          AND ($2::bigint IS NULL OR id <> $2)
        """,
        slug,
        exclude_id,
    )
    return found is not None


async def create_calculator(
    *,
    author_id: int,
    title: str,
    slug: str,
    description: str,
    category: str,
    type: str,
    info: str,
    is_info_markdown: bool,
    formula: str,
    formula_variables: list,
    input_length: int,
    input_labels: dict,
    input_selects: dict,
) -> dict:
    row = await db.fetch_one(
        """
        INSERT INTO calculators (
          author_id, title, slug, description, category, type, info,
          is_info_markdown, formula, formula_variables, input_length,
          input_labels, input_selects
        )
        VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13)
        RETURNING id
        """,
        author_id,
        title,
        slug,
        description,
        category,
        type,
        info,
        is_info_markdown,
        formula,
        formula_variables,
        input_length,
        input_labels,
        input_selects,
    )
    if row is None:
        raise RuntimeError("Failed to create calculator")
    created = await get_calculator(int(row["id"]))
    if created is None:
        raise RuntimeError("Failed to load created calculator")
    return created


async def update_calculator(
    calc_id: int,
    *,
    title: str | None = None,
    slug: str | None = None,
    description: str | None = None,
    category: str | None = None,
    info: str | None = None,
    is_info_markdown: bool | None = None,
    formula: str | None = None,
    formula_variables: list | None = None,
    input_length: int | None = None,
    input_labels: dict | None = None,
    input_selects: dict | None = None,
) -> dict | None:
    """
    Partial overwrite: a None argument keeps the stored value.
    """
    status = await db.execute(
        """
        UPDATE calculators
        SET title = COALESCE($2, title),
            slug = COALESCE($3, slug),
            description = COALESCE($4, description),
            category = COALESCE($5, category),
            info = COALESCE($6, info),
            is_info_markdown = COALESCE($7, is_info_markdown),
            formula = COALESCE($8, formula),
            formula_variables = COALESCE($9, formula_variables),
            input_length = COALESCE($10, input_length),
            input_labels = COALESCE($11, input_labels),
            input_selects = COALESCE($12, input_selects),
            updated_at = now()
        WHERE id = $1
        """,
        calc_id,
        title,
        slug,
        description,
        category,
        info,
        is_info_markdown,
        formula,
        formula_variables,
        input_length,
        input_labels,
        input_selects,
    )
    if db.affected_rows(status) == 0:
        return None
    return await get_calculator(calc_id)


async def set_verified(calc_id: int, *, is_verified: bool) -> bool:
    status = await db.execute(
        """
        UPDATE calculators
        SET is_verified = $2,
            updated_at = now()
        WHERE id = $1
        """,
        calc_id,
        is_verified,
    )
    return db.affected_rows(status) > 0


async def delete_calculator(calc_id: int) -> bool:
    status = await db.execute("DELETE FROM calculators WHERE id = $1", calc_id)
    return db.affected_rows(status) > 0


async def save_calculator(calc_id: int, user_id: int, *, notification: dict | None = None) -> bool:
    """
    Record that `user_id` saved the calculator and, in the same transaction,
    notify its author. Returns False when it was already saved.
    """
    async with db.transaction() as conn:
        status = await conn.execute(
            """
            INSERT INTO calculator_saves (calculator_id, user_id)
            VALUES ($1, $2)
            ON CONFLICT DO NOTHING
            """,
            calc_id,
            user_id,
        )
        if db.affected_rows(status) == 0:
            return False
        if notification is not None:
            await add_notification(conn, **notification)
    return True


async def unsave_calculator(calc_id: int, user_id: int) -> bool:
    status = await db.execute(
        "DELETE FROM calculator_saves WHERE calculator_id = $1 AND user_id = $2",
        calc_id,
        user_id,
    )
    return db.affected_rows(status) > 0
