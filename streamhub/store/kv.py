"""Key-value store contract and its Redis implementation.

Contract:
- get_json(key) -> decoded value, KeyNotFoundError if absent
- put_json(key, value)
- get_key(key) -> raw bytes, KeyNotFoundError if absent
- put_key(key, data)

Keys are opaque strings. Callers own namespacing: per-tenant keys are
built with user_namespace(); the auth store keeps its process-wide keys
outside any namespace.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Protocol, runtime_checkable

import redis

from streamhub.errors import KeyNotFoundError, PersistenceError

logger = logging.getLogger(__name__)

_NAMESPACE_PREFIX = "@userdata/"


def user_namespace(username: str) -> str:
    """Deterministic key prefix isolating one tenant's data."""
    return f"{_NAMESPACE_PREFIX}{username}/"


@runtime_checkable
class KVStore(Protocol):
    """Interface every store backend implements."""

    def get_json(self, key: str) -> Any: ...

    def put_json(self, key: str, value: Any) -> None: ...

    def get_key(self, key: str) -> bytes: ...

    def put_key(self, key: str, data: bytes) -> None: ...

    def ping(self) -> bool: ...


class RedisKVStore:
    """KVStore on a Redis server. Values are stored as plain strings/bytes."""

    def __init__(self, redis_url: str | None = None, *, client: redis.Redis | None = None):
        if client is None:
            if not redis_url:
                raise ValueError("redis_url or client is required")
            client = redis.from_url(redis_url)
        self._redis = client

    def get_key(self, key: str) -> bytes:
        try:
            raw = self._redis.get(key)
        except redis.RedisError as e:
            logger.warning("KV read failed for %s", key, exc_info=True)
            raise PersistenceError(f"read {key}: {e}") from e
        if raw is None:
            raise KeyNotFoundError(key)
        if isinstance(raw, str):
            return raw.encode("utf-8")
        return raw

    def put_key(self, key: str, data: bytes) -> None:
        try:
            self._redis.set(key, data)
        except redis.RedisError as e:
            logger.warning("KV write failed for %s", key, exc_info=True)
            raise PersistenceError(f"write {key}: {e}") from e

    def get_json(self, key: str) -> Any:
        raw = self.get_key(key)
        try:
            return json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise PersistenceError(f"corrupt JSON at {key}: {e}") from e

    def put_json(self, key: str, value: Any) -> None:
        self.put_key(key, json.dumps(value, default=str).encode("utf-8"))

    def ping(self) -> bool:
        """True when the server answers."""
        try:
            return bool(self._redis.ping())
        except redis.RedisError:
            return False
