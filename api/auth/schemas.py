"""
Auth API schemas (request/response models).

Request fields are optional on purpose: the service answers a missing field
with 400 "All fields are required" instead of a schema error.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RegisterRequest(CamelModel):
    username: str | None = Field(default=None, max_length=64)
    email: str | None = Field(default=None, max_length=320)
    password: str | None = Field(default=None, max_length=128)


class LoginRequest(CamelModel):
    username: str | None = Field(default=None, max_length=320)
    email: str | None = Field(default=None, max_length=320)
    password: str | None = Field(default=None, max_length=128)


class AccessLoginRequest(CamelModel):
    user_token: str | None = None


class GoogleLoginRequest(BaseModel):
    google_id_token: str | None = None


class ForgotPasswordRequest(CamelModel):
    email: str | None = Field(default=None, max_length=320)


class ResetPasswordRequest(CamelModel):
    password: str | None = Field(default=None, max_length=128)
    t: str | None = None


class SessionResponse(CamelModel):
    access_token: str
    max_age: int


class AccessTokenResponse(CamelModel):
    access_token: str
