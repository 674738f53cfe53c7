"""Namespaced key-value persistence."""

from streamhub.store.kv import KVStore, RedisKVStore, user_namespace

__all__ = ["KVStore", "RedisKVStore", "user_namespace"]
