"""Memoized Twitch id lookups.

One LRU per lookup kind keeps request handlers and the reconciler from
hitting Helix for the same id twice. Entries are never invalidated: a
rename on Twitch is only seen after a restart or once the entry is evicted.
"""

from __future__ import annotations

import logging
from typing import Any, Callable

from streamhub.cache import LRUCache
from streamhub.errors import NotFoundError, ProviderError
from streamhub.twitch.client import HelixClient
from streamhub.twitch.models import HelixResponse

logger = logging.getLogger(__name__)

KIND_USER = "user"
KIND_CHANNEL = "channel"

_DEFAULT_CAPACITY = 128


def _user_identity(record: dict[str, Any]) -> dict[str, Any]:
    return record


def _channel_identity(record: dict[str, Any]) -> str:
    return str(record.get("broadcaster_name", "")).lower()


class LookupCache:
    """resolve(kind, external_id) -> identity, with one bounded LRU per kind."""

    def __init__(self, client: HelixClient, capacity: int = _DEFAULT_CAPACITY):
        self._client = client
        fetchers: dict[str, tuple[Callable[[str], HelixResponse], Callable[[dict], Any]]] = {
            KIND_USER: (lambda uid: self._client.get_users(ids=[uid]), _user_identity),
            KIND_CHANNEL: (self._client.get_channel_information, _channel_identity),
        }
        self._fetchers = fetchers
        self._caches: dict[str, LRUCache[Any]] = {kind: LRUCache(capacity) for kind in fetchers}

    def resolve(self, kind: str, external_id: str) -> Any:
        """Return the identity for ``external_id``; calls Helix at most once per miss.

        Raises:
            ValueError: unknown kind
            NotFoundError: Helix returned no results
            ProviderError: transport failure or Helix-reported error
        """
        cache = self._caches.get(kind)
        if cache is None:
            raise ValueError(f"unknown lookup kind: {kind}")

        cached = cache.get(external_id)
        if cached is not None:
            return cached

        fetch, to_identity = self._fetchers[kind]
        resp = fetch(external_id)
        if resp.failed:
            raise ProviderError(
                f"error looking up {kind} {external_id}: {resp.error_text}",
                error=resp.error,
                message=resp.error_message,
                status_code=resp.status_code,
            )
        if not resp.data:
            raise NotFoundError(f"{kind} id not found: {external_id}")

        identity = to_identity(resp.data[0])
        cache.set(external_id, identity)
        logger.debug("Lookup cached: %s/%s", kind, external_id)
        return identity

    def user(self, user_id: str) -> dict[str, Any]:
        return self.resolve(KIND_USER, user_id)

    def channel(self, channel_id: str) -> str:
        return self.resolve(KIND_CHANNEL, channel_id)

    def stats(self) -> dict[str, dict[str, Any]]:
        return {
            kind: {"size": s.size, "maxsize": s.maxsize, "hits": s.hits, "misses": s.misses}
            for kind, s in ((k, c.stats()) for k, c in self._caches.items())
        }
