"""
The authenticated identity attached to a request.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from core.ids import same_id

from . import security

ADMIN = "admin"


@dataclass(frozen=True)
class Principal:
    user_id: int
    role: str
    snapshot: dict[str, Any] = field(default_factory=dict)

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN

    def owns(self, owner_id: Any) -> bool:
        return same_id(self.user_id, owner_id)

    @classmethod
    def from_user_row(cls, user_row: dict) -> "Principal":
        return cls(
            user_id=int(user_row["id"]),
            role=str(user_row.get("role") or "user"),
            snapshot=security.profile_snapshot(user_row),
        )
