"""Request/response bodies of the JSON API."""

from __future__ import annotations

from pydantic import BaseModel, Field

from streamhub.auth.models import UserLevel


class AuthRequest(BaseModel):
    user: str
    key: str


class AuthResponse(BaseModel):
    ok: bool = True
    user: str
    level: str
    token: str


class AddUserRequest(BaseModel):
    user: str = Field(min_length=1)
    key: str = Field(min_length=1)
    level: UserLevel = UserLevel.STREAMER


class StatusResponse(BaseModel):
    ok: bool = True
