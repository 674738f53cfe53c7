"""JSON API routes: login, Twitch linking, subscription management, user admin.

All handlers are plain (sync) functions: FastAPI runs them on its thread
pool, so blocking Helix and KV calls from different requests overlap.
"""

import logging
from datetime import timedelta

from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse
from slowapi import Limiter

from streamhub.api.models import AddUserRequest, AuthRequest, AuthResponse, StatusResponse
from streamhub.auth.models import SessionClaims
from streamhub.errors import (
    ClearSubscriptionsError,
    InvalidCredentialError,
    KeyNotFoundError,
    NotFoundError,
    PersistenceError,
    ProviderError,
    TokenExpiredError,
    TokenMalformedError,
    UserNotFoundError,
)
from streamhub.security.middleware import json_error

logger = logging.getLogger(__name__)

_CALLBACK_DONE_HTML = (
    "<html><body><h2>All done, you can close me now!</h2>"
    "<script>window.close();</script></body></html>"
)


def _claims(request: Request) -> SessionClaims:
    return request.state.user


def _first_user(client) -> dict:
    resp = client.get_users()
    if resp.failed:
        raise ProviderError(f"error looking up user: {resp.error_text}")
    if not resp.data:
        raise ProviderError("error looking up user: empty response")
    return resp.data[0]


def register_api_routes(
    app: FastAPI,
    limiter: Limiter,
    session_ttl: timedelta,
    auth_rate_limit: str,
    link_state_ttl: timedelta = timedelta(minutes=10),
) -> None:
    """Register /health and /api/* routes. Call BEFORE install_security_middleware()."""

    def backend(request: Request):
        return request.app.state.backend

    @app.get("/health")
    def health(request: Request):
        if not backend(request).db.ping():
            return json_error("store unreachable", 503)
        return {"ok": True}

    # ── Sessions ─────────────────────────────────────────────────────────

    @app.post("/api/auth")
    @limiter.limit(auth_rate_limit)
    def api_auth(request: Request, payload: AuthRequest):
        try:
            claims, token = backend(request).auth.authenticate(
                payload.user, payload.key, session_ttl
            )
        except (UserNotFoundError, InvalidCredentialError):
            return json_error("invalid credentials", 401)
        return AuthResponse(user=claims.user, level=claims.level.value, token=token)

    # ── Twitch account linking ───────────────────────────────────────────

    @app.get("/api/twitch/authorize")
    def twitch_authorize(request: Request):
        b = backend(request)
        state = b.auth.issue_link_state(_claims(request).user, link_state_ttl)
        url = b.twitch_auth.authorization_url(state)
        return {"auth_url": url}

    @app.get("/api/twitch/callback")
    def twitch_callback(request: Request, code: str = "", state: str = ""):
        if not code:
            return json_error("missing code", 400)
        if not state:
            return json_error("missing state", 400)
        b = backend(request)
        try:
            tenant = b.auth.verify_link_state(state)
        except TokenExpiredError:
            return json_error("state expired, start linking again", 401)
        except (TokenMalformedError, UserNotFoundError):
            logger.warning("Rejected Twitch callback with invalid state")
            return json_error("invalid state", 400)
        try:
            b.twitch_auth.complete_authorization(code, tenant)
            user = _first_user(b.twitch_auth.user_client(tenant))
            b.reconciler.reconcile(user["id"], tenant)
        except ProviderError as e:
            logger.error("Twitch callback failed for %s: %s", tenant, e)
            return json_error(f"failed linking twitch account: {e}", 500)
        except PersistenceError as e:
            return json_error(f"error saving auth data for user: {e}", 500)
        return HTMLResponse(_CALLBACK_DONE_HTML)

    @app.get("/api/twitch/user")
    def twitch_user(request: Request):
        try:
            client = backend(request).twitch_auth.user_client(_claims(request).user)
            return _first_user(client)
        except KeyNotFoundError:
            return json_error("twitch user not authenticated", 424)
        except ProviderError as e:
            return json_error(f"failed getting user client: {e}", 500)
        except PersistenceError as e:
            return json_error(f"error loading auth data for user: {e}", 500)

    @app.get("/api/twitch/lookup/{kind}/{external_id}")
    def twitch_lookup(request: Request, kind: str, external_id: str):
        try:
            identity = backend(request).lookups.resolve(kind, external_id)
        except ValueError as e:
            return json_error(str(e), 400)
        except NotFoundError as e:
            return json_error(str(e), 404)
        except ProviderError as e:
            return json_error(f"error fetching data: {e}", 500)
        return {"ok": True, "kind": kind, "id": external_id, "identity": identity}

    # ── EventSub subscriptions ───────────────────────────────────────────

    @app.post("/api/twitch/subscriptions/ensure")
    def ensure_subscriptions(request: Request):
        tenant = _claims(request).user
        b = backend(request)
        try:
            user = _first_user(b.twitch_auth.user_client(tenant))
            cost = b.reconciler.reconcile(user["id"], tenant)
        except KeyNotFoundError:
            return json_error("twitch user not authenticated", 424)
        except ProviderError as e:
            return json_error(f"failed subscribing to alerts: {e}", 500, cost=-1)
        except PersistenceError as e:
            return json_error(f"error loading auth data for user: {e}", 500, cost=-1)
        return {"ok": True, "cost": cost}

    @app.get("/api/twitch/subscriptions")
    def list_subscriptions(request: Request):
        if not _claims(request).is_admin:
            return json_error("unauthorized", 403)
        try:
            subs = backend(request).reconciler.list_subscriptions()
        except ProviderError as e:
            return json_error(f"failed getting subscriptions: {e}", 500)
        return [sub.model_dump(exclude={"transport": {"secret"}}) for sub in subs]

    @app.post("/api/twitch/subscriptions/clear")
    def clear_subscriptions(request: Request, tenant: str = ""):
        claims = _claims(request)
        if not claims.is_admin:
            return json_error("unauthorized", 403)
        try:
            deleted = backend(request).reconciler.clear_subscriptions(tenant or claims.user)
        except ClearSubscriptionsError as e:
            return json_error(str(e), 500, deleted=e.deleted)
        except ProviderError as e:
            return json_error(f"failed looking up subscriptions: {e}", 500)
        return {"ok": True, "deleted": deleted}

    # ── User administration ──────────────────────────────────────────────

    @app.post("/api/admin/users")
    def add_user(request: Request, payload: AddUserRequest):
        if not _claims(request).is_admin:
            return json_error("unauthorized", 403)
        try:
            backend(request).auth.add_user(payload.user, payload.key, payload.level)
        except PersistenceError as e:
            return json_error(f"error saving user: {e}", 500)
        return StatusResponse()

    @app.delete("/api/admin/users/{username}")
    def delete_user(request: Request, username: str):
        if not _claims(request).is_admin:
            return json_error("unauthorized", 403)
        try:
            backend(request).auth.delete_user(username)
        except PersistenceError as e:
            return json_error(f"error saving users: {e}", 500)
        return StatusResponse()
