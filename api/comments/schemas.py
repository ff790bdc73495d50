"""
Comment API schemas.
"""

from __future__ import annotations

from pydantic import Field

from auth.schemas import CamelModel


class CommentRequest(CamelModel):
    text: str | None = Field(default=None, max_length=5000)
