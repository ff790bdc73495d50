"""
Async database access helpers (raw SQL) using asyncpg.

This module owns the connection pool. FastAPI initializes it on startup and
closes it on shutdown (see `api/main.py`).

SQL parameter style:
- asyncpg uses positional placeholders: $1, $2, $3, ...
"""

from __future__ import annotations

import json
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import asyncpg

from . import config

_pool: asyncpg.Pool | None = None


def _sanitize_database_url(url: str) -> str:
    parts = urlsplit(url)
    if not parts.query:
        return url

    params = [(k, v) for (k, v) in parse_qsl(parts.query, keep_blank_values=True) if k != "sslmode"]
    query = urlencode(params)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, query, parts.fragment))


def database_url() -> str:
    url = config.env_str("DATABASE_URL")
    if not url:
        raise RuntimeError("DATABASE_URL is not set.")
    return _sanitize_database_url(url)


async def _init_connection(conn: asyncpg.Connection) -> None:
    # Decode json/jsonb columns into Python values.
    for type_name in ("json", "jsonb"):
        await conn.set_type_codec(
            type_name,
            encoder=json.dumps,
            decoder=json.loads,
            schema="pg_catalog",
        )


async def init_pool() -> None:
    global _pool
    if _pool is not None:
        return None
    _pool = await asyncpg.create_pool(
        dsn=database_url(),
        min_size=1,
        max_size=config.env_int("DB_POOL_MAX_SIZE", 10),
        command_timeout=30,
        init=_init_connection,
    )


async def close_pool() -> None:
    global _pool
    if _pool is None:
        return None
    await _pool.close()
    _pool = None


def pool() -> asyncpg.Pool:
    if _pool is None:
        raise RuntimeError("DB pool is not initialized. Call init_pool() on startup.")
    return _pool


def _record_to_dict(record: asyncpg.Record) -> dict[str, Any]:
    return dict(record)


async def fetch_one(sql: str, *args: Any) -> dict[str, Any] | None:
    """
    Run a query and return a single row as a dict (or None).
    """
    row = await pool().fetchrow(sql, *args)
    return _record_to_dict(row) if row is not None else None


async def fetch_all(sql: str, *args: Any) -> list[dict[str, Any]]:
    """
    Run a query and return all rows as a list of dicts.
    """
    rows = await pool().fetch(sql, *args)
    return [_record_to_dict(r) for r in rows]


async def fetch_count(sql: str, *args: Any) -> int:
    """
    Run a `SELECT count(*) ...` style query and return the first column.
    """
    value = await pool().fetchval(sql, *args)
    return int(value or 0)


async def execute(sql: str, *args: Any) -> str:
    """
    Run a statement (INSERT/UPDATE/DELETE/DDL). Returns asyncpg's status tag,
    e.g. "DELETE 3".
    """
    return await pool().execute(sql, *args)


@asynccontextmanager
async def transaction() -> AsyncIterator[asyncpg.Connection]:
    """
    Acquire one connection and run the enclosed statements in a transaction.

    Used by repositories whenever several rows must change together.
    """
    async with pool().acquire() as conn:  # type: asyncpg.Connection
        async with conn.transaction():
            yield conn


def affected_rows(status: str) -> int:
    """
    Parse the row count out of an asyncpg status tag ("UPDATE 1" -> 1).
    """
    try:
        return int((status or "").rsplit(" ", 1)[-1])
    except ValueError:
        return 0
