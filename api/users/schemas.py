"""
User API schemas.
"""

from __future__ import annotations

from pydantic import Field

from auth.schemas import CamelModel


class EditUserRequest(CamelModel):
    username: str | None = Field(default=None, max_length=64)
    email: str | None = Field(default=None, max_length=320)
    avatar: str | None = Field(default=None, max_length=2048)
    profession: str | None = Field(default=None, max_length=200)
    company: str | None = Field(default=None, max_length=200)


class ChangePasswordRequest(CamelModel):
    old_password: str | None = Field(default=None, max_length=128)
    password: str | None = Field(default=None, max_length=128)


class PrivacySetting(CamelModel):
    show_saved_calculators: bool | None = None
    show_comments: bool | None = None


class ChangePrivacyRequest(CamelModel):
    privacy_setting: PrivacySetting | None = None
