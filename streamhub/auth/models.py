"""Auth data models.

UserRecord is what gets persisted (as one mapping username -> record).
SessionClaims is never persisted; it is rebuilt from a verified token.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class UserLevel(str, Enum):
    ADMIN = "admin"
    STREAMER = "streamer"


@dataclass(frozen=True)
class UserRecord:
    """A registered tenant/operator."""

    user: str
    authkey: str  # pbkdf2_sha256$iterations$salt$hash
    level: UserLevel

    def to_dict(self) -> dict[str, Any]:
        return {"user": self.user, "authkey": self.authkey, "level": self.level.value}

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> UserRecord:
        return cls(user=d["user"], authkey=d["authkey"], level=UserLevel(d["level"]))


@dataclass(frozen=True)
class SessionClaims:
    """Verified contents of a session token."""

    user: str
    level: UserLevel
    expires_at: float  # absolute epoch seconds

    @property
    def is_admin(self) -> bool:
        return self.level == UserLevel.ADMIN

    def to_jwt_payload(self) -> dict[str, Any]:
        return {"user": self.user, "level": self.level.value, "exp": self.expires_at}

    @classmethod
    def from_jwt_payload(cls, payload: dict[str, Any]) -> SessionClaims:
        """Build claims from a decoded payload; raises KeyError/ValueError/TypeError on bad shape."""
        user = payload["user"]
        if not isinstance(user, str) or not user:
            raise ValueError("user claim must be a non-empty string")
        exp = payload["exp"]
        if isinstance(exp, bool) or not isinstance(exp, (int, float)):
            raise TypeError("exp claim must be numeric")
        return cls(user=user, level=UserLevel(payload["level"]), expires_at=float(exp))
