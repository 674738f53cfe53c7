"""Webhook ingestion: verify, dedupe, archive EventSub deliveries per tenant.

Each delivery:
1. Verify signature (failure -> logged, dropped, empty response)
2. Skip if the message id was already processed (acknowledged, not reprocessed)
3. Decode {subscription, challenge, event} (failure -> logged, dropped)
4. Challenge handshake -> echo the challenge verbatim, nothing persisted
5. Archive: overwrite the tenant's latest event, append to its history and
   keep the last ``history_size`` entries
6. Record the message id so redeliveries are recognized

Security contract:
- Internal failures are never reported to Twitch (it would disable the
  subscription); persistence errors are logged and the delivery is still acked

Concurrency:
- Step 5 runs under ONE lock shared by every tenant. Archive updates for
  different tenants therefore never run in parallel. This is a known
  throughput bottleneck; per-tenant locks would also be correct but change
  interleaving, so the single lock is kept.
- The dedup check is repeated inside that lock, so two concurrent copies of
  the same delivery archive it once.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import Counter
from dataclasses import dataclass
from typing import Any, Mapping

from pydantic import BaseModel, Field, ValidationError

from streamhub.errors import KeyNotFoundError, PersistenceError
from streamhub.store.kv import KVStore, user_namespace
from streamhub.webhooks.idempotency import DedupCache
from streamhub.webhooks.verification import (
    HEADER_MESSAGE_ID,
    HEADER_TIMESTAMP,
    verify_eventsub,
)

logger = logging.getLogger(__name__)

LATEST_EVENT_KEY = "twitch/eventsub-event"
HISTORY_KEY = "twitch/eventsub-history"

_DEFAULT_HISTORY_SIZE = 100

STATUS_REJECTED = "rejected"
STATUS_DUPLICATE = "duplicate"
STATUS_MALFORMED = "malformed"
STATUS_CHALLENGE = "challenge"
STATUS_STORED = "stored"
STATUS_STORE_FAILED = "store_failed"


class EventSubNotification(BaseModel):
    """Decoded webhook body."""

    subscription: dict[str, Any] = Field(default_factory=dict)
    challenge: str = ""
    event: Any = None


@dataclass
class DeliveryResult:
    """Outcome of one delivery; ``body`` is the exact response body to send."""

    status: str
    body: str = ""
    message_id: str = ""


def latest_event_key(tenant: str) -> str:
    return user_namespace(tenant) + LATEST_EVENT_KEY


def history_key(tenant: str) -> str:
    return user_namespace(tenant) + HISTORY_KEY


class WebhookIngestor:
    """Processes EventSub deliveries for all tenants."""

    def __init__(
        self,
        db: KVStore,
        secret: str,
        dedup: DedupCache | None = None,
        history_size: int = _DEFAULT_HISTORY_SIZE,
    ):
        self._db = db
        self._secret = secret
        self._dedup = dedup or DedupCache()
        self._history_size = history_size
        self._archive_lock = threading.Lock()
        self._counts: Counter[str] = Counter()
        self._counts_lock = threading.Lock()

    def _log_webhook(self, tenant: str, event_type: str, message_id: str, status: str) -> None:
        """Audit log for webhook activity."""
        with self._counts_lock:
            self._counts[status] += 1
            count = self._counts[status]
        logger.info(
            "WEBHOOK_AUDIT tenant=%s event=%s id=%s status=%s count=%d",
            tenant,
            event_type,
            message_id,
            status,
            count,
        )

    def counts(self) -> dict[str, int]:
        with self._counts_lock:
            return dict(self._counts)

    def handle_delivery(
        self, tenant: str, body: bytes, headers: Mapping[str, str]
    ) -> DeliveryResult:
        headers = {k.lower(): v for k, v in headers.items()}

        # 1. Verify signature
        if not verify_eventsub(self._secret, headers, body):
            self._log_webhook(tenant, "unknown", "unknown", STATUS_REJECTED)
            return DeliveryResult(STATUS_REJECTED)

        message_id = headers.get(HEADER_MESSAGE_ID, "")
        timestamp = headers.get(HEADER_TIMESTAMP, "")

        # 2. Fast-path dedup
        if self._dedup.is_duplicate(message_id):
            self._log_webhook(tenant, "unknown", message_id, STATUS_DUPLICATE)
            return DeliveryResult(STATUS_DUPLICATE, message_id=message_id)

        # 3. Decode
        try:
            notification = EventSubNotification.model_validate_json(body)
        except ValidationError:
            logger.warning("Undecodable webhook body for %s (id=%s)", tenant, message_id, exc_info=True)
            self._log_webhook(tenant, "unknown", message_id, STATUS_MALFORMED)
            return DeliveryResult(STATUS_MALFORMED, message_id=message_id)

        event_type = str(notification.subscription.get("type", "unknown"))

        # 4. Challenge handshake
        if notification.challenge:
            self._log_webhook(tenant, event_type, message_id, STATUS_CHALLENGE)
            return DeliveryResult(STATUS_CHALLENGE, body=notification.challenge, message_id=message_id)

        # 5 + 6. Archive and record
        entry = {
            "message_id": message_id,
            "timestamp": timestamp,
            "subscription": notification.subscription,
            "event": notification.event,
        }
        with self._archive_lock:
            if self._dedup.is_duplicate(message_id):
                self._log_webhook(tenant, event_type, message_id, STATUS_DUPLICATE)
                return DeliveryResult(STATUS_DUPLICATE, message_id=message_id)
            status = STATUS_STORED
            try:
                self._archive(tenant, entry)
            except PersistenceError:
                logger.error("Failed to archive webhook %s for %s", message_id, tenant, exc_info=True)
                status = STATUS_STORE_FAILED
            self._dedup.mark_seen(message_id, timestamp or str(time.time()))

        self._log_webhook(tenant, event_type, message_id, status)
        return DeliveryResult(status, message_id=message_id)

    def _archive(self, tenant: str, entry: dict[str, Any]) -> None:
        """Caller must hold the archive lock."""
        self._db.put_json(latest_event_key(tenant), entry)

        try:
            history = self._db.get_json(history_key(tenant))
        except KeyNotFoundError:
            history = []
        if not isinstance(history, list):
            logger.warning("Discarding non-list webhook history for %s", tenant)
            history = []

        history.append(entry)
        self._db.put_json(history_key(tenant), history[-self._history_size:])
