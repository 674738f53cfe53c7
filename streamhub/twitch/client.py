"""Synchronous Twitch Helix / OAuth client on httpx.

Every call blocks the calling thread. There is no retry or backoff: a
transport failure is raised immediately as ProviderError, and an error
reported by Helix comes back in HelixResponse.error / error_message so
callers can tell the two apart.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable
from urllib.parse import urlencode

import httpx

from streamhub.errors import ProviderError
from streamhub.twitch.models import EventSubSubscription, HelixResponse, TokenPair

logger = logging.getLogger(__name__)

HELIX_URL = "https://api.twitch.tv/helix"
OAUTH_URL = "https://id.twitch.tv/oauth2"

USER_SCOPES = (
    "bits:read",
    "channel:read:subscriptions",
    "channel:read:redemptions",
    "channel:read:polls",
    "channel:read:predictions",
    "channel:read:hype_train",
)


class HelixClient:
    """Thin wrapper over the Helix endpoints streamhub needs."""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        *,
        app_access_token: str = "",
        user_access_token: str = "",
        helix_url: str = HELIX_URL,
        oauth_url: str = OAUTH_URL,
        timeout: float = 30.0,
        http: httpx.Client | None = None,
    ):
        self.client_id = client_id
        self._client_secret = client_secret
        self.app_access_token = app_access_token
        self.user_access_token = user_access_token
        self._helix_url = helix_url.rstrip("/")
        self._oauth_url = oauth_url.rstrip("/")
        self._http = http or httpx.Client(timeout=timeout)

    def with_user_token(self, access_token: str) -> HelixClient:
        """Client acting on behalf of one Twitch user; shares the HTTP pool."""
        return HelixClient(
            self.client_id,
            self._client_secret,
            app_access_token=self.app_access_token,
            user_access_token=access_token,
            helix_url=self._helix_url,
            oauth_url=self._oauth_url,
            http=self._http,
        )

    def close(self) -> None:
        self._http.close()

    # ── Transport ────────────────────────────────────────────────────────

    def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            return self._http.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            logger.warning("Twitch request failed: %s %s: %s", method, url, e)
            raise ProviderError(f"{method} {url}: {e}") from e

    def _helix(self, method: str, path: str, **kwargs: Any) -> HelixResponse:
        token = self.user_access_token or self.app_access_token
        headers = {"Client-Id": self.client_id}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        resp = self._send(method, f"{self._helix_url}{path}", headers=headers, **kwargs)

        body: dict[str, Any] = {}
        if resp.content:
            try:
                parsed = resp.json()
            except ValueError:
                parsed = {}
            if isinstance(parsed, dict):
                body = parsed

        result = HelixResponse(
            status_code=resp.status_code,
            data=body.get("data") or [],
            total=body.get("total", 0),
            total_cost=body.get("total_cost", 0),
            max_total_cost=body.get("max_total_cost", 0),
        )
        if resp.status_code >= 400:
            result.error = str(body.get("error") or resp.reason_phrase or "error")
            result.error_message = str(body.get("message", ""))
            logger.debug("Helix %s %s -> %d %s", method, path, resp.status_code, result.error_text)
        return result

    def _oauth_token(self, params: dict[str, str]) -> dict[str, Any]:
        resp = self._send("POST", f"{self._oauth_url}/token?{urlencode(params)}")
        try:
            body = resp.json()
        except ValueError as e:
            raise ProviderError(f"unreadable token response ({resp.status_code})") from e
        if resp.status_code >= 400 or "access_token" not in body:
            raise ProviderError(
                f"token request failed ({resp.status_code})",
                error=str(body.get("error", "")),
                message=str(body.get("message", "")),
                status_code=resp.status_code,
            )
        return body

    # ── OAuth ────────────────────────────────────────────────────────────

    def request_app_access_token(self, scopes: Iterable[str] = ()) -> str:
        """Fetch an app access token (client credentials) and keep it on the client."""
        params = {
            "client_id": self.client_id,
            "client_secret": self._client_secret,
            "grant_type": "client_credentials",
        }
        scope = " ".join(scopes)
        if scope:
            params["scope"] = scope
        body = self._oauth_token(params)
        self.app_access_token = body["access_token"]
        logger.info("Helix app access authorized")
        return self.app_access_token

    def authorization_url(self, redirect_uri: str, state: str, scopes: Iterable[str] = USER_SCOPES) -> str:
        query = urlencode(
            {
                "client_id": self.client_id,
                "redirect_uri": redirect_uri,
                "response_type": "code",
                "scope": " ".join(scopes),
                "state": state,
            }
        )
        return f"{self._oauth_url}/authorize?{query}"

    def exchange_code(self, code: str, redirect_uri: str) -> TokenPair:
        body = self._oauth_token(
            {
                "client_id": self.client_id,
                "client_secret": self._client_secret,
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": redirect_uri,
            }
        )
        return TokenPair.model_validate(body)

    def refresh_token(self, refresh_token: str) -> TokenPair:
        body = self._oauth_token(
            {
                "client_id": self.client_id,
                "client_secret": self._client_secret,
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
            }
        )
        return TokenPair.model_validate(body)

    # ── EventSub ─────────────────────────────────────────────────────────

    def get_eventsub_subscriptions(self) -> HelixResponse:
        # Single page only; no cursor handling.
        return self._helix("GET", "/eventsub/subscriptions")

    def create_eventsub_subscription(self, sub: EventSubSubscription) -> HelixResponse:
        return self._helix("POST", "/eventsub/subscriptions", json=sub.create_body())

    def remove_eventsub_subscription(self, sub_id: str) -> HelixResponse:
        return self._helix("DELETE", "/eventsub/subscriptions", params={"id": sub_id})

    # ── Users / channels ─────────────────────────────────────────────────

    def get_users(self, ids: Iterable[str] = ()) -> HelixResponse:
        """Look up users by id; with a user token and no ids, returns the token's owner."""
        params = [("id", i) for i in ids]
        return self._helix("GET", "/users", params=params)

    def get_channel_information(self, broadcaster_id: str) -> HelixResponse:
        return self._helix("GET", "/channels", params={"broadcaster_id": broadcaster_id})
