"""Security middleware for FastAPI: bearer auth, CORS, rate limiting.

Middleware ordering (outermost first):
1. CORS -- handles OPTIONS preflight before auth
2. Auth -- verify Bearer session token, attach SessionClaims to request.state.user

Rate limiting is applied per route (login only) through the slowapi Limiter.

Auth contract:
- Missing token -> 401
- Expired token -> 401 (log in again)
- Malformed token, or one signed with a regenerated secret -> 400
- Webhook callbacks are public; they are signature-verified by the ingestor
"""

from __future__ import annotations

import logging
import re

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.middleware.base import BaseHTTPMiddleware

from streamhub.errors import TokenExpiredError, TokenMalformedError

logger = logging.getLogger(__name__)

# Exact (method, path) pairs reachable without a session token
PUBLIC_ALLOWLIST: set[tuple[str, str]] = {
    ("GET", "/health"),
    ("POST", "/api/auth"),
    ("GET", "/api/twitch/callback"),
}

SKIP_METHODS = {"OPTIONS"}

_WEBHOOK_PATH = re.compile(r"^/webhook/[^/]+$")


def is_webhook_path(path: str) -> bool:
    return bool(_WEBHOOK_PATH.match(path))


def extract_bearer_token(header: str | None) -> str | None:
    """Return the token of an ``Authorization: Bearer <token>`` header, else None."""
    if not header:
        return None
    parts = header.split()
    if len(parts) < 2 or parts[0].lower() != "bearer":
        return None
    return parts[1]


def json_error(message: str, status_code: int, **extra) -> JSONResponse:
    return JSONResponse({"ok": False, "error": message, **extra}, status_code=status_code)


def make_limiter(enabled: bool = True) -> Limiter:
    return Limiter(key_func=get_remote_address, enabled=enabled)


class AuthMiddleware(BaseHTTPMiddleware):
    """Authenticate every non-public request with the credential store."""

    async def dispatch(self, request: Request, call_next):
        method = request.method
        path = request.url.path

        if method in SKIP_METHODS:
            return await call_next(request)
        if (method, path) in PUBLIC_ALLOWLIST:
            return await call_next(request)
        if method == "POST" and is_webhook_path(path):
            return await call_next(request)

        token = extract_bearer_token(request.headers.get("authorization"))
        if not token:
            return json_error("authentication required", 401)

        store = request.app.state.backend.auth
        try:
            claims = store.verify(token)
        except TokenExpiredError:
            return json_error("authentication required", 401)
        except TokenMalformedError as e:
            logger.debug("Auth failed: %s", e)
            return json_error("invalid token", 400)

        request.state.user = claims
        return await call_next(request)


def _rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded):
    retry_after = getattr(exc, "retry_after", 60)
    return JSONResponse(
        {"ok": False, "error": "rate limit exceeded", "retry_after": retry_after},
        status_code=429,
        headers={"Retry-After": str(retry_after)},
    )


def install_security_middleware(app: FastAPI, limiter: Limiter, cors_origins: list[str]) -> None:
    """Install middleware. Call AFTER all routes are registered.

    Middleware is added in reverse order (last added = outermost = runs first).
    """
    app.add_middleware(AuthMiddleware)

    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "Origin"],
    )
