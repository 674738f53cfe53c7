"""streamhub: multi-tenant bridge between user sessions, Twitch EventSub and a namespaced KV store."""

__version__ = "0.3.0"
