"""
Calculator API schemas.
"""

from __future__ import annotations

from typing import Any

from pydantic import Field

from auth.schemas import CamelModel

MAX_INPUTS = 6


class CalculatorRequest(CamelModel):
    title: str | None = Field(default=None, max_length=200)
    slug: str | None = Field(default=None, max_length=200)
    description: str | None = None
    category: str | None = Field(default=None, max_length=100)
    type: str | None = Field(default=None, max_length=20)
    info: str | None = None
    is_info_markdown: bool | None = None
    formula: str | None = None
    formula_variables: list[Any] | None = None
    input_length: int | None = Field(default=None, ge=0)
    input_labels: dict[str, Any] | None = None
    input_selects: dict[str, Any] | None = None

    def input_label_count(self) -> int:
        labels = self.input_labels or {}
        return sum(1 for key, value in labels.items() if key.startswith("input") and value)


class VerifyRequest(CamelModel):
    is_verified: bool | None = None
