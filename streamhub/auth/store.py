"""Credential & session store: user records, signing secret, session tokens.

Security contract:
- Secrets are stored only as salted PBKDF2 hashes, compared in constant time
- Tokens are HS256 JWTs signed with a 32-byte process-wide secret
- No revocation list: a token dies when it expires or the secret is regenerated
- Twitch link state is a separate short-lived JWT carrying a purpose claim, so
  it can never pass as a session token and vice versa
- Unknown users still pay for one hash comparison, so login timing does not
  reveal which usernames exist
- Signature is checked before expiry, so a token signed with an old secret is
  reported as malformed, never as expired

Concurrency:
- Mutations (add/delete user, regenerate secret) are serialized by one lock
- The user mapping is copy-on-write: a new dict is built, saved, then swapped
  in with a single assignment. The secret is immutable bytes, swapped the same
  way. Readers take no lock and always see a complete old or new state.
- A failed save raises PersistenceError and leaves the in-memory state untouched
"""

from __future__ import annotations

import hashlib
import logging
import secrets
import threading
import time
from datetime import timedelta
from typing import Any

from jose import JWTError, jwt

from streamhub.auth.hashing import hash_password, verify_password
from streamhub.auth.models import SessionClaims, UserLevel, UserRecord
from streamhub.errors import (
    InvalidCredentialError,
    KeyNotFoundError,
    PersistenceError,
    TokenExpiredError,
    TokenMalformedError,
    UserNotFoundError,
)
from streamhub.store.kv import KVStore

logger = logging.getLogger(__name__)

USERS_KEY = "streamhub-auth/users"
SECRET_KEY = "streamhub-auth/secret"

_ALGORITHM = "HS256"
_SECRET_BYTES = 32
_LINK_PURPOSE = "twitch-link"


class CredentialStore:
    """Owns the user mapping and the token signing secret."""

    def __init__(
        self,
        db: KVStore,
        *,
        regenerate_secret: bool = False,
        hash_iterations: int | None = None,
    ):
        self._db = db
        self._lock = threading.Lock()
        self._hash_kwargs: dict[str, Any] = (
            {"iterations": hash_iterations} if hash_iterations else {}
        )
        # Compared against on unknown usernames
        self._decoy_hash = hash_password(secrets.token_hex(16), **self._hash_kwargs)
        self._users: dict[str, UserRecord] = self._load_users()
        self._secret: bytes = b""

        if regenerate_secret:
            self.regenerate_secret()
            return
        try:
            self._secret = db.get_key(SECRET_KEY)
        except KeyNotFoundError:
            logger.warning("No signing secret found, generating one")
            self.regenerate_secret()

    # ── Users ────────────────────────────────────────────────────────────

    def _load_users(self) -> dict[str, UserRecord]:
        try:
            raw = self._db.get_json(USERS_KEY)
        except KeyNotFoundError:
            logger.warning("User storage not found, initializing new one")
            return {}
        return {name: UserRecord.from_dict(rec) for name, rec in (raw or {}).items()}

    def _save_users(self, users: dict[str, UserRecord]) -> None:
        self._db.put_json(USERS_KEY, {name: rec.to_dict() for name, rec in users.items()})

    def add_user(self, username: str, secret: str, level: UserLevel | str) -> UserRecord:
        """Create or overwrite a user and persist the whole mapping."""
        if not username:
            raise ValueError("username must not be empty")
        if not secret:
            raise ValueError("secret must not be empty")
        record = UserRecord(
            user=username,
            authkey=hash_password(secret, **self._hash_kwargs),
            level=UserLevel(level),
        )
        with self._lock:
            users = dict(self._users)
            users[username] = record
            self._save_users(users)
            self._users = users
        logger.info("User saved: %s (level=%s)", username, record.level.value)
        return record

    def delete_user(self, username: str) -> None:
        """Remove a user if present and persist. Absent users are not an error."""
        with self._lock:
            users = dict(self._users)
            existed = users.pop(username, None) is not None
            self._save_users(users)
            self._users = users
        if existed:
            logger.info("User deleted: %s", username)

    def get_user(self, username: str) -> UserRecord | None:
        return self._users.get(username)

    def count_users(self) -> int:
        return len(self._users)

    # ── Sessions ─────────────────────────────────────────────────────────

    def authenticate(
        self, username: str, secret: str, lifetime: timedelta
    ) -> tuple[SessionClaims, str]:
        """Check credentials and issue a signed session token.

        Raises:
            UserNotFoundError: no such user
            InvalidCredentialError: secret does not match
        """
        user = self._users.get(username)
        if user is None:
            verify_password(secret, self._decoy_hash)
            raise UserNotFoundError(username)
        if not verify_password(secret, user.authkey):
            raise InvalidCredentialError("invalid credentials")

        claims = SessionClaims(
            user=user.user,
            level=user.level,
            expires_at=time.time() + lifetime.total_seconds(),
        )
        token = jwt.encode(claims.to_jwt_payload(), self._secret, algorithm=_ALGORITHM)
        return claims, token

    def verify(self, token: str) -> SessionClaims:
        """Return the claims of a valid token.

        Raises:
            TokenMalformedError: bad structure or signature (including old secrets)
            TokenExpiredError: signature fine but expiry has passed
        """
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[_ALGORITHM],
                options={"verify_exp": False},
            )
            claims = SessionClaims.from_jwt_payload(payload)
        except (JWTError, KeyError, ValueError, TypeError) as e:
            raise TokenMalformedError(f"couldn't parse token: {e}") from e

        if time.time() >= claims.expires_at:
            raise TokenExpiredError("token expired")
        return claims

    # ── Twitch link state ────────────────────────────────────────────────

    def issue_link_state(self, username: str, lifetime: timedelta) -> str:
        """Signed OAuth ``state`` binding a Twitch authorization to ``username``."""
        payload = {
            "user": username,
            "purpose": _LINK_PURPOSE,
            "exp": int(time.time() + lifetime.total_seconds()),
        }
        return jwt.encode(payload, self._secret, algorithm=_ALGORITHM)

    def verify_link_state(self, state: str) -> str:
        """Return the username bound to a link state.

        Raises:
            TokenMalformedError: unsigned, forged, or not a link state
            TokenExpiredError: signature fine but expiry has passed
            UserNotFoundError: the user no longer exists
        """
        try:
            payload = jwt.decode(
                state,
                self._secret,
                algorithms=[_ALGORITHM],
                options={"verify_exp": False},
            )
            if payload.get("purpose") != _LINK_PURPOSE:
                raise ValueError("not a link state")
            username = str(payload["user"])
            expires_at = float(payload["exp"])
        except (JWTError, KeyError, ValueError, TypeError, AttributeError) as e:
            raise TokenMalformedError(f"couldn't parse state: {e}") from e

        if time.time() >= expires_at:
            raise TokenExpiredError("state expired")
        if username not in self._users:
            raise UserNotFoundError(username)
        return username

    # ── Secret ───────────────────────────────────────────────────────────

    def regenerate_secret(self) -> None:
        """Replace the signing secret. Every previously issued token stops verifying."""
        new_secret = secrets.token_bytes(_SECRET_BYTES)
        with self._lock:
            try:
                self._db.put_key(SECRET_KEY, new_secret)
            except PersistenceError:
                logger.error("Failed to persist new signing secret")
                raise
            self._secret = new_secret
        fingerprint = hashlib.sha256(new_secret).hexdigest()[:12]
        logger.info("Generated new signing secret (fingerprint=%s)", fingerprint)
