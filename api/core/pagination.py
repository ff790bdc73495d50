"""
Query parameters shared by the list endpoints and the response envelope.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

from fastapi import Query

SORT_TYPES = ("recent", "a-z", "z-a", "popular")


@dataclass(frozen=True)
class ListParams:
    page: int
    limit: int
    sort: str
    search: str
    tag: str

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


def list_params(
    page: int = Query(1, ge=1),
    limit: int = Query(3, ge=1, le=100),
    type: str = Query("recent", max_length=20),
    search: str = Query("", max_length=200),
    tag: str = Query("", max_length=100),
) -> ListParams:
    sort = type if type in SORT_TYPES else "recent"
    return ListParams(page=page, limit=limit, sort=sort, search=search.strip(), tag=tag.strip())


def envelope(key: str, items: list, *, count: int, params: ListParams) -> dict:
    return {
        key: items,
        "totalPages": math.ceil(count / params.limit) if params.limit else 0,
        "count": count,
        "currentPage": params.page,
    }
