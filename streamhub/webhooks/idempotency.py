"""Webhook deduplication: bounded in-memory record of processed deliveries.

Contract:
- Remembers message_id -> delivery timestamp for the most recent deliveries
  (LRU, fixed capacity); older ids fall out and would be processed again
- Deliveries without a message id cannot be deduplicated and always pass
- Single process only: the record is not shared or persisted
"""

from __future__ import annotations

import logging

from streamhub.cache import LRUCache

logger = logging.getLogger(__name__)

_DEFAULT_CAPACITY = 1024


class DedupCache:
    """Recent-history cache of processed delivery identifiers."""

    def __init__(self, capacity: int = _DEFAULT_CAPACITY):
        self._seen: LRUCache[str] = LRUCache(capacity)

    def is_duplicate(self, message_id: str) -> bool:
        if not message_id:
            return False
        if message_id in self._seen:
            logger.info("Duplicate webhook rejected: %s", message_id)
            return True
        return False

    def mark_seen(self, message_id: str, timestamp: str) -> None:
        if not message_id:
            return
        self._seen.set(message_id, timestamp)

    def __len__(self) -> int:
        return len(self._seen)
