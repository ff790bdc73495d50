"""
Report and contact API schemas.
"""

from __future__ import annotations

from typing import Any

from pydantic import Field

from auth.schemas import CamelModel


class ReportRequest(CamelModel):
    title: str | None = Field(default=None, max_length=300)
    subject: str | None = Field(default=None, max_length=300)
    message: str | None = Field(default=None, max_length=5000)
    username: str | None = Field(default=None, max_length=64)
    email: str | None = Field(default=None, max_length=320)
    calculator_id: str | int | None = None


class CommentReportRequest(CamelModel):
    title: str | None = Field(default=None, max_length=300)
    comment_content: str | None = Field(default=None, max_length=5000)
    report_reasons: list[Any] | None = None
    comment_id: str | int | None = None
    calculator_id: str | int | None = None
    username: str | None = Field(default=None, max_length=64)
    email: str | None = Field(default=None, max_length=320)


class ReportStatusRequest(CamelModel):
    is_report_seen: bool | None = None


class ContactRequest(CamelModel):
    username: str | None = Field(default=None, max_length=64)
    email: str | None = Field(default=None, max_length=320)
    subject: str | None = Field(default=None, max_length=300)
    message: str | None = Field(default=None, max_length=5000)


class ContactStatusRequest(CamelModel):
    is_contact_seen: bool | None = None
