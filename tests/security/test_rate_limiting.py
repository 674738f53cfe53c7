"""Login rate limiting tests.

Verifies the per-client limit on POST /api/auth: 429 + Retry-After once
exceeded, failed attempts count, other routes unaffected, reset after the
window. All time-dependent assertions use freezegun, no time.sleep().
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
from fastapi import Request
from fastapi.testclient import TestClient
from freezegun import freeze_time
from slowapi.errors import RateLimitExceeded

from fakes import ADMIN, make_backend
from streamhub.auth.models import UserLevel
from streamhub.config import Settings
from streamhub.security.middleware import _rate_limit_exceeded_handler
from streamhub.serve import create_app

LIMIT = 3


@pytest.fixture
def settings() -> Settings:
    """Overrides the package fixture: limiter on, low login limit."""
    return Settings(
        webhook_secret="test-secret",
        webhook_url="https://hub.example/webhook",
        cors_origins=["http://localhost:3000"],
        rate_limit_enabled=True,
        auth_rate_limit=f"{LIMIT}/minute",
    )


def login(client, key: str = ADMIN[1]):
    return client.post("/api/auth", json={"user": ADMIN[0], "key": key})


class TestRateLimitEnforcement:
    def test_login_limited(self, client):
        codes = [login(client).status_code for _ in range(LIMIT + 1)]
        assert codes == [200] * LIMIT + [429]

    def test_429_body_and_retry_after(self, client):
        for _ in range(LIMIT):
            login(client)
        resp = login(client)
        assert resp.status_code == 429
        assert "retry-after" in resp.headers
        body = resp.json()
        assert body["ok"] is False
        assert body["error"] == "rate limit exceeded"

    def test_failed_attempts_count(self, client):
        codes = [login(client, key="guess").status_code for _ in range(LIMIT + 1)]
        assert codes == [401] * LIMIT + [429]

    def test_window_resets(self, client):
        start = datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)
        with freeze_time(start) as frozen:
            for _ in range(LIMIT):
                login(client)
            assert login(client).status_code == 429
            frozen.move_to(start + timedelta(minutes=2))
            assert login(client).status_code == 200


class TestUnlimitedRoutes:
    def test_health_not_rate_limited(self, client):
        for _ in range(LIMIT * 5):
            assert client.get("/health").status_code != 429

    def test_authenticated_routes_not_limited(self, client, admin_headers):
        for _ in range(LIMIT * 5):
            assert client.get("/api/webhooks/status", headers=admin_headers).status_code == 200


class TestRateLimitExceptionHandler:
    def test_handler_registered(self, app):
        assert RateLimitExceeded in app.exception_handlers

    def test_response_format(self):
        exc = MagicMock(spec=RateLimitExceeded)
        exc.retry_after = 30
        resp = _rate_limit_exceeded_handler(MagicMock(spec=Request), exc)
        assert resp.status_code == 429
        assert resp.headers["Retry-After"] == "30"

    def test_disabled_limiter(self, kv, helix, credential_store):
        cfg = Settings(webhook_secret="s", rate_limit_enabled=False, auth_rate_limit="1/minute")
        credential_store.add_user(*ADMIN, UserLevel.ADMIN)
        app = create_app(make_backend(kv, helix, credential_store, cfg), cfg)
        with TestClient(app) as c:
            assert [login(c).status_code for _ in range(3)] == [200, 200, 200]
