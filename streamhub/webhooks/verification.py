"""EventSub webhook signature verification.

Twitch signs each delivery with HMAC-SHA256 over
``message_id + timestamp + raw_body`` using the secret given at subscription
time, and sends ``sha256=<hex>`` in Twitch-Eventsub-Message-Signature.

Security contract:
- Comparison uses hmac.compare_digest() (constant-time)
- Empty secret or any missing header -> verification fails (fail-closed)
"""

from __future__ import annotations

import hashlib
import hmac
import logging
from typing import Mapping

logger = logging.getLogger(__name__)

HEADER_MESSAGE_ID = "twitch-eventsub-message-id"
HEADER_TIMESTAMP = "twitch-eventsub-message-timestamp"
HEADER_SIGNATURE = "twitch-eventsub-message-signature"

_SIGNATURE_PREFIX = "sha256="


def sign_eventsub(secret: str, message_id: str, timestamp: str, body: bytes) -> str:
    """Signature header value Twitch would send for this delivery."""
    message = message_id.encode("utf-8") + timestamp.encode("utf-8") + body
    digest = hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()
    return _SIGNATURE_PREFIX + digest


def verify_eventsub(secret: str, headers: Mapping[str, str], body: bytes) -> bool:
    """Verify an EventSub delivery.

    Args:
        secret: Shared webhook secret used when the subscription was created
        headers: Request headers (lowercase keys)
        body: Raw request body

    Returns:
        True if the signature matches
    """
    if not secret:
        logger.warning("Webhook secret not set, rejecting delivery")
        return False

    message_id = headers.get(HEADER_MESSAGE_ID)
    timestamp = headers.get(HEADER_TIMESTAMP)
    signature = headers.get(HEADER_SIGNATURE)
    if not message_id or not timestamp or not signature:
        return False

    expected = sign_eventsub(secret, message_id, timestamp, body)
    return hmac.compare_digest(expected, signature)
