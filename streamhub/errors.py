"""Error taxonomy shared by the auth store, the Twitch reconciler and webhook ingestion.

HTTP mapping lives in streamhub.api.routes and streamhub.security.middleware:
- InvalidCredentialError / UserNotFoundError -> 401 (new credentials needed)
- TokenExpiredError -> 401 (log in again for a fresh token)
- TokenMalformedError -> 400
- ProviderError / PersistenceError -> 500
"""

from __future__ import annotations


class StreamhubError(Exception):
    """Base class for every error raised by streamhub."""


class NotFoundError(StreamhubError):
    """A user, key, or external entity does not exist."""


class UserNotFoundError(NotFoundError):
    def __init__(self, username: str):
        super().__init__(f"user not found: {username}")
        self.username = username


class KeyNotFoundError(NotFoundError):
    def __init__(self, key: str):
        super().__init__(f"key not found: {key}")
        self.key = key


class InvalidCredentialError(StreamhubError):
    """Secret does not match the stored hash."""


class TokenMalformedError(StreamhubError):
    """Token could not be parsed or its signature does not match the current secret."""


class TokenExpiredError(StreamhubError):
    """Token signature is valid but its expiry has passed."""


class ProviderError(StreamhubError):
    """Transport failure or provider-reported error from the Twitch API.

    ``error`` and ``message`` mirror Helix's ``{"error": ..., "message": ...}``
    body when the provider reported one; both are empty for transport errors.
    """

    def __init__(self, detail: str, *, error: str = "", message: str = "", status_code: int = 0):
        super().__init__(detail)
        self.error = error
        self.message = message
        self.status_code = status_code


class ClearSubscriptionsError(ProviderError):
    """Removal failed part-way through clearing a tenant's subscriptions."""

    def __init__(self, detail: str, *, deleted: int, **kwargs):
        super().__init__(detail, **kwargs)
        self.deleted = deleted


class PersistenceError(StreamhubError):
    """The KV store could not be read or written."""
