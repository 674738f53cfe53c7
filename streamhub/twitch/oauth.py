"""Per-tenant Twitch OAuth token pairs.

The pair is stored under the tenant namespace and refreshed transparently
when the access token has outlived expires_in.
"""

from __future__ import annotations

import logging

from streamhub.store.kv import KVStore, user_namespace
from streamhub.twitch.client import HelixClient
from streamhub.twitch.models import TokenPair

logger = logging.getLogger(__name__)

AUTH_TOKENS_KEY = "twitch/auth-tokens"


def tokens_key(tenant: str) -> str:
    return user_namespace(tenant) + AUTH_TOKENS_KEY


class TwitchAuthenticator:
    """Authorization-code flow and user-scoped clients for tenants."""

    def __init__(self, client: HelixClient, db: KVStore, redirect_url: str):
        self._client = client
        self._db = db
        self._redirect_url = redirect_url

    def authorization_url(self, state: str) -> str:
        """Consent URL; ``state`` comes back verbatim on the redirect."""
        return self._client.authorization_url(self._redirect_url, state=state)

    def complete_authorization(self, code: str, tenant: str) -> TokenPair:
        """Exchange an authorization code and persist the tenant's token pair."""
        tokens = self._client.exchange_code(code, self._redirect_url)
        self._db.put_json(tokens_key(tenant), tokens.model_dump())
        logger.info("Stored Twitch tokens for %s", tenant)
        return tokens

    def load_tokens(self, tenant: str) -> TokenPair:
        """Raises KeyNotFoundError when the tenant never linked Twitch."""
        return TokenPair.model_validate(self._db.get_json(tokens_key(tenant)))

    def user_client(self, tenant: str) -> HelixClient:
        """Helix client acting as the tenant, refreshing the pair first if it expired."""
        tokens = self.load_tokens(tenant)
        if tokens.is_expired():
            refreshed = self._client.refresh_token(tokens.refresh_token)
            tokens = tokens.model_copy(
                update={
                    "access_token": refreshed.access_token,
                    "refresh_token": refreshed.refresh_token or tokens.refresh_token,
                    "expires_in": refreshed.expires_in or tokens.expires_in,
                    "obtained_at": refreshed.obtained_at,
                }
            )
            self._db.put_json(tokens_key(tenant), tokens.model_dump())
            logger.info("Refreshed Twitch tokens for %s", tenant)
        return self._client.with_user_token(tokens.access_token)
