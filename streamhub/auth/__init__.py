"""Credential & session store: user records, signing secret, bearer tokens."""

from streamhub.auth.models import SessionClaims, UserLevel, UserRecord
from streamhub.auth.store import CredentialStore

__all__ = ["CredentialStore", "SessionClaims", "UserLevel", "UserRecord"]
