"""Webhook HTTP handler: FastAPI route for EventSub callbacks.

POST /webhook/{tenant}:
- Challenge handshake -> 200 text/plain with the challenge as the whole body
- Anything else (stored, duplicate, rejected, malformed, store failure)
  -> 200 with an empty body

Security contract:
- Never return error details to the caller
- Route is public in the auth middleware; the ingestor verifies the signature
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, Response
from fastapi.responses import PlainTextResponse
from starlette.concurrency import run_in_threadpool

from streamhub.webhooks.ingestion import STATUS_CHALLENGE, WebhookIngestor

logger = logging.getLogger(__name__)


def register_webhook_routes(app: FastAPI, ingestor: WebhookIngestor) -> None:
    """Register webhook routes. Call BEFORE install_security_middleware()."""

    @app.post("/webhook/{tenant}")
    async def eventsub_webhook(request: Request, tenant: str):
        """Receive EventSub deliveries for one tenant (signature-verified)."""
        body = await request.body()
        # Ingestion blocks on the archive lock and the KV store.
        result = await run_in_threadpool(
            ingestor.handle_delivery, tenant, body, dict(request.headers)
        )
        if result.status == STATUS_CHALLENGE:
            return PlainTextResponse(result.body)
        return Response(status_code=200)

    @app.get("/api/webhooks/status")
    def webhook_status():
        """Webhook outcome counters (requires auth)."""
        return {"ok": True, "counts": ingestor.counts()}

    logger.info("Webhook routes registered: /webhook/{tenant}")
