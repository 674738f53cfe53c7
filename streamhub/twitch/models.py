"""Pydantic models for the Helix payloads streamhub reads and writes."""

from __future__ import annotations

import time
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class EventSubTransport(BaseModel):
    model_config = ConfigDict(extra="allow")

    method: str = "webhook"
    callback: str = ""
    secret: str | None = None


class EventSubCondition(BaseModel):
    model_config = ConfigDict(extra="allow")

    broadcaster_user_id: str | None = None
    to_broadcaster_user_id: str | None = None


class EventSubSubscription(BaseModel):
    """One EventSub subscription as listed by, or sent to, Helix."""

    model_config = ConfigDict(extra="allow")

    id: str = ""
    type: str
    version: str = "1"
    status: str = ""
    condition: EventSubCondition = Field(default_factory=EventSubCondition)
    transport: EventSubTransport = Field(default_factory=EventSubTransport)
    created_at: str = ""
    cost: int = 0

    @property
    def enabled(self) -> bool:
        return self.status == "enabled"

    def create_body(self) -> dict[str, Any]:
        """Request body for POST /eventsub/subscriptions."""
        return {
            "type": self.type,
            "version": self.version,
            "condition": self.condition.model_dump(exclude_none=True),
            "transport": self.transport.model_dump(exclude_none=True),
        }


class HelixResponse(BaseModel):
    """Normalized Helix reply: payload plus any provider-reported error."""

    status_code: int
    data: list[dict[str, Any]] = Field(default_factory=list)
    error: str = ""
    error_message: str = ""
    total: int = 0
    total_cost: int = 0
    max_total_cost: int = 0

    @property
    def failed(self) -> bool:
        return bool(self.error or self.error_message)

    @property
    def error_text(self) -> str:
        return f"{self.error}: {self.error_message}"


class TokenPair(BaseModel):
    """OAuth token pair of one tenant's Twitch account."""

    access_token: str
    refresh_token: str = ""
    token_type: str = "bearer"
    expires_in: int = 0
    scope: list[str] = Field(default_factory=list)
    obtained_at: float = Field(default_factory=time.time)

    def is_expired(self, now: float | None = None) -> bool:
        now = time.time() if now is None else now
        return now > self.obtained_at + self.expires_in
