"""Backend assembly and FastAPI app factory."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import timedelta

from fastapi import FastAPI

from streamhub import __version__
from streamhub.api.routes import register_api_routes
from streamhub.auth.store import CredentialStore
from streamhub.config import Settings
from streamhub.config import settings as default_settings
from streamhub.security.middleware import install_security_middleware, make_limiter
from streamhub.store.kv import KVStore, RedisKVStore
from streamhub.twitch.client import HelixClient
from streamhub.twitch.lookup import LookupCache
from streamhub.twitch.oauth import TwitchAuthenticator
from streamhub.twitch.reconciler import SubscriptionReconciler
from streamhub.webhooks.handlers import register_webhook_routes
from streamhub.webhooks.idempotency import DedupCache
from streamhub.webhooks.ingestion import WebhookIngestor

logger = logging.getLogger(__name__)


@dataclass
class Backend:
    """Every long-lived component of one streamhub process."""

    db: KVStore
    auth: CredentialStore
    helix: HelixClient
    lookups: LookupCache
    reconciler: SubscriptionReconciler
    twitch_auth: TwitchAuthenticator
    webhooks: WebhookIngestor


def build_backend(
    cfg: Settings | None = None,
    *,
    db: KVStore | None = None,
    helix: HelixClient | None = None,
    regenerate_secret: bool = False,
) -> Backend:
    """Wire components from settings.

    When no Helix client is passed, one is created and an app access token is
    requested immediately (startup fails if Twitch rejects the credentials).
    """
    cfg = cfg or default_settings
    db = db or RedisKVStore(cfg.redis_url)

    if helix is None:
        if not cfg.twitch_client_id or not cfg.twitch_client_secret:
            raise ValueError(
                "STREAMHUB_TWITCH_CLIENT_ID and STREAMHUB_TWITCH_CLIENT_SECRET must be set"
            )
        helix = HelixClient(cfg.twitch_client_id, cfg.twitch_client_secret, timeout=cfg.helix_timeout)
        helix.request_app_access_token()

    return Backend(
        db=db,
        auth=CredentialStore(db, regenerate_secret=regenerate_secret),
        helix=helix,
        lookups=LookupCache(helix, capacity=cfg.lookup_capacity),
        reconciler=SubscriptionReconciler(helix, cfg.webhook_url, cfg.webhook_secret),
        twitch_auth=TwitchAuthenticator(helix, db, cfg.redirect_url),
        webhooks=WebhookIngestor(
            db,
            cfg.webhook_secret,
            dedup=DedupCache(cfg.dedup_capacity),
            history_size=cfg.history_size,
        ),
    )


def create_app(backend: Backend, cfg: Settings | None = None) -> FastAPI:
    cfg = cfg or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        backend.helix.close()
        logger.info("Helix client closed")

    app = FastAPI(title="streamhub", version=__version__, lifespan=lifespan)
    app.state.backend = backend

    limiter = make_limiter(enabled=cfg.rate_limit_enabled)
    register_api_routes(
        app,
        limiter,
        session_ttl=timedelta(hours=cfg.session_ttl_hours),
        link_state_ttl=timedelta(minutes=cfg.link_state_minutes),
        auth_rate_limit=cfg.auth_rate_limit,
    )
    register_webhook_routes(app, backend.webhooks)
    install_security_middleware(app, limiter, cfg.cors_origins)
    return app
