"""streamhub configuration."""

from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Environment-driven settings (STREAMHUB_* variables or .env)."""

    # Twitch application credentials
    twitch_client_id: str = ""
    twitch_client_secret: str = ""

    # Public URLs of this service. Tenant callbacks are {webhook_url}/{tenant}.
    webhook_url: str = "http://localhost:9999/webhook"
    redirect_url: str = "http://localhost:9999/api/twitch/callback"
    webhook_secret: str = ""

    redis_url: str = "redis://localhost:6379/0"

    session_ttl_hours: int = 168
    link_state_minutes: int = 10
    dedup_capacity: int = 1024
    lookup_capacity: int = 128
    history_size: int = 100
    helix_timeout: float = 30.0

    cors_origins: list[str] = ["http://localhost:3000", "http://localhost:5173"]
    auth_rate_limit: str = "10/minute"
    rate_limit_enabled: bool = True

    model_config = {"env_prefix": "STREAMHUB_", "env_file": ".env", "extra": "ignore"}


settings = Settings()
