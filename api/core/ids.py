"""
Identifier helpers.

Row ids are bigints in Postgres but travel as strings inside tokens and JSON
bodies, so identity checks always compare string-normalised values.
"""

from __future__ import annotations

from typing import Any


def normalize_id(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def same_id(left: Any, right: Any) -> bool:
    a = normalize_id(left)
    b = normalize_id(right)
    return bool(a) and a == b


def parse_id(value: Any) -> int | None:
    raw = normalize_id(value)
    if not raw.isdigit():
        return None
    return int(raw)
