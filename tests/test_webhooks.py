"""Tests for EventSub webhook ingestion.

Tests:
- Signature verification (constant-time HMAC over id + timestamp + body)
- Dedup cache (bounded, id-less deliveries always pass)
- Ingestion outcomes: rejected, duplicate, malformed, challenge, stored
- History capped at the most recent entries, per tenant
- Persistence failures are logged and still acknowledged
- Concurrent copies of one delivery archive it once
"""

from __future__ import annotations

import json
import threading
from unittest.mock import patch

import pytest

from streamhub.errors import KeyNotFoundError
from streamhub.webhooks.idempotency import DedupCache
from streamhub.webhooks.ingestion import (
    STATUS_CHALLENGE,
    STATUS_DUPLICATE,
    STATUS_MALFORMED,
    STATUS_REJECTED,
    STATUS_STORE_FAILED,
    STATUS_STORED,
    WebhookIngestor,
    history_key,
    latest_event_key,
)
from streamhub.webhooks.verification import (
    HEADER_MESSAGE_ID,
    HEADER_SIGNATURE,
    HEADER_TIMESTAMP,
    sign_eventsub,
    verify_eventsub,
)

SECRET = "webhook-test-secret"
TIMESTAMP = "2024-06-01T12:00:00.123Z"


def signed_headers(body: bytes, message_id: str = "msg-1", secret: str = SECRET, timestamp: str = TIMESTAMP) -> dict:
    return {
        "Twitch-Eventsub-Message-Id": message_id,
        "Twitch-Eventsub-Message-Timestamp": timestamp,
        "Twitch-Eventsub-Message-Signature": sign_eventsub(secret, message_id, timestamp, body),
        "Twitch-Eventsub-Message-Type": "notification",
    }


def notification(event: dict, topic: str = "channel.follow") -> bytes:
    return json.dumps({"subscription": {"type": topic, "version": "1"}, "event": event}).encode()


@pytest.fixture
def ingestor(kv):
    return WebhookIngestor(kv, SECRET)


# ── Signature Verification ────────────────────────────────────────────────


class TestVerification:
    BODY = b'{"event": {"user_id": "1"}}'

    def _headers(self, **overrides) -> dict:
        headers = {k.lower(): v for k, v in signed_headers(self.BODY).items()}
        headers.update(overrides)
        return headers

    def test_valid_signature(self):
        assert verify_eventsub(SECRET, self._headers(), self.BODY) is True

    def test_signature_format(self):
        sig = sign_eventsub(SECRET, "id", "ts", b"body")
        assert sig.startswith("sha256=")
        assert len(sig) == len("sha256=") + 64

    def test_tampered_body(self):
        assert verify_eventsub(SECRET, self._headers(), self.BODY + b" ") is False

    def test_tampered_message_id(self):
        assert verify_eventsub(SECRET, self._headers(**{HEADER_MESSAGE_ID: "other"}), self.BODY) is False

    def test_tampered_timestamp(self):
        assert verify_eventsub(SECRET, self._headers(**{HEADER_TIMESTAMP: "later"}), self.BODY) is False

    def test_wrong_secret(self):
        assert verify_eventsub("other-secret", self._headers(), self.BODY) is False

    @pytest.mark.parametrize("missing", [HEADER_MESSAGE_ID, HEADER_TIMESTAMP, HEADER_SIGNATURE])
    def test_missing_header(self, missing):
        headers = self._headers()
        del headers[missing]
        assert verify_eventsub(SECRET, headers, self.BODY) is False

    def test_empty_secret_fails_closed(self):
        headers = {k.lower(): v for k, v in signed_headers(self.BODY, secret="").items()}
        assert verify_eventsub("", headers, self.BODY) is False

    def test_uses_constant_time_compare(self):
        with patch("streamhub.webhooks.verification.hmac.compare_digest", return_value=True) as cmp:
            assert verify_eventsub(SECRET, self._headers(**{HEADER_SIGNATURE: "sha256=00"}), self.BODY)
        cmp.assert_called_once()


# ── Dedup cache ──────────────────────────────────────────────────────────


class TestDedupCache:
    def test_new_id_is_not_duplicate(self):
        assert DedupCache().is_duplicate("a") is False

    def test_seen_id_is_duplicate(self):
        cache = DedupCache()
        cache.mark_seen("a", TIMESTAMP)
        assert cache.is_duplicate("a") is True

    def test_empty_id_never_deduplicated(self):
        cache = DedupCache()
        cache.mark_seen("", TIMESTAMP)
        assert cache.is_duplicate("") is False
        assert len(cache) == 0

    def test_bounded(self):
        cache = DedupCache(capacity=3)
        for i in range(5):
            cache.mark_seen(f"m{i}", TIMESTAMP)
        assert len(cache) == 3
        assert cache.is_duplicate("m0") is False
        assert cache.is_duplicate("m4") is True


# ── Ingestion ────────────────────────────────────────────────────────────


class TestIngestion:
    def test_stored(self, ingestor, kv):
        body = notification({"user_name": "viewer1"})
        result = ingestor.handle_delivery("alice", body, signed_headers(body))
        assert result.status == STATUS_STORED
        assert result.body == ""

        latest = kv.get_json(latest_event_key("alice"))
        assert latest == {
            "message_id": "msg-1",
            "timestamp": TIMESTAMP,
            "subscription": {"type": "channel.follow", "version": "1"},
            "event": {"user_name": "viewer1"},
        }
        assert kv.get_json(history_key("alice")) == [latest]

    def test_rejected_is_not_persisted(self, ingestor, kv):
        body = notification({"x": 1})
        result = ingestor.handle_delivery("alice", body, signed_headers(body, secret="wrong"))
        assert result.status == STATUS_REJECTED
        assert result.body == ""
        assert kv.writes == []
        assert ingestor.counts() == {STATUS_REJECTED: 1}

    def test_duplicate_is_acknowledged_not_reprocessed(self, ingestor, kv):
        body = notification({"x": 1})
        ingestor.handle_delivery("alice", body, signed_headers(body))
        result = ingestor.handle_delivery("alice", body, signed_headers(body))
        assert result.status == STATUS_DUPLICATE
        assert len(kv.get_json(history_key("alice"))) == 1

    def test_malformed_body(self, ingestor, kv):
        body = b"{not json"
        result = ingestor.handle_delivery("alice", body, signed_headers(body))
        assert result.status == STATUS_MALFORMED
        assert kv.writes == []

    def test_challenge_echoed_and_never_persisted(self, ingestor, kv):
        body = json.dumps(
            {"challenge": "pogchamp-kappa-360noscope", "subscription": {"type": "stream.online"}}
        ).encode()
        result = ingestor.handle_delivery("alice", body, signed_headers(body))
        assert result.status == STATUS_CHALLENGE
        assert result.body == "pogchamp-kappa-360noscope"
        assert kv.writes == []
        with pytest.raises(KeyNotFoundError):
            kv.get_json(latest_event_key("alice"))

    def test_challenge_not_marked_seen(self, ingestor):
        body = json.dumps({"challenge": "abc"}).encode()
        ingestor.handle_delivery("alice", body, signed_headers(body))
        again = ingestor.handle_delivery("alice", body, signed_headers(body))
        assert again.status == STATUS_CHALLENGE

    def test_header_names_are_case_insensitive(self, ingestor):
        body = notification({"x": 1})
        headers = {k.upper(): v for k, v in signed_headers(body).items()}
        assert ingestor.handle_delivery("alice", body, headers).status == STATUS_STORED

    def test_history_keeps_last_100(self, ingestor, kv):
        for i in range(1, 102):
            body = notification({"n": i})
            ingestor.handle_delivery("alice", body, signed_headers(body, message_id=f"m{i}"))

        history = kv.get_json(history_key("alice"))
        assert len(history) == 100
        assert [h["event"]["n"] for h in history] == list(range(2, 102))
        assert kv.get_json(latest_event_key("alice"))["event"]["n"] == 101

    def test_custom_history_size(self, kv):
        ingestor = WebhookIngestor(kv, SECRET, history_size=3)
        for i in range(5):
            body = notification({"n": i})
            ingestor.handle_delivery("alice", body, signed_headers(body, message_id=f"m{i}"))
        assert [h["event"]["n"] for h in kv.get_json(history_key("alice"))] == [2, 3, 4]

    def test_tenants_are_isolated(self, ingestor, kv):
        a = notification({"who": "a"})
        b = notification({"who": "b"})
        ingestor.handle_delivery("alice", a, signed_headers(a, message_id="a1"))
        ingestor.handle_delivery("bob", b, signed_headers(b, message_id="b1"))
        assert kv.get_json(latest_event_key("alice"))["event"] == {"who": "a"}
        assert kv.get_json(latest_event_key("bob"))["event"] == {"who": "b"}
        assert len(kv.get_json(history_key("alice"))) == 1

    def test_non_list_history_is_replaced(self, ingestor, kv):
        kv.put_json(history_key("alice"), {"corrupt": True})
        body = notification({"x": 1})
        ingestor.handle_delivery("alice", body, signed_headers(body))
        assert len(kv.get_json(history_key("alice"))) == 1

    def test_store_failure_is_acknowledged_and_marked_seen(self, ingestor, kv):
        kv.fail_writes = True
        body = notification({"x": 1})
        result = ingestor.handle_delivery("alice", body, signed_headers(body))
        assert result.status == STATUS_STORE_FAILED
        assert result.body == ""

        kv.fail_writes = False
        again = ingestor.handle_delivery("alice", body, signed_headers(body))
        assert again.status == STATUS_DUPLICATE

    def test_concurrent_duplicates_archive_once(self, ingestor, kv):
        body = notification({"x": 1})
        headers = signed_headers(body, message_id="same")
        results: list[str] = []
        barrier = threading.Barrier(8)

        def deliver():
            barrier.wait()
            results.append(ingestor.handle_delivery("alice", body, headers).status)

        threads = [threading.Thread(target=deliver) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results.count(STATUS_STORED) == 1
        assert results.count(STATUS_DUPLICATE) == 7
        assert len(kv.get_json(history_key("alice"))) == 1

    def test_concurrent_tenants_lose_nothing(self, ingestor, kv):
        def deliver(tenant: str):
            for i in range(20):
                body = notification({"n": i})
                ingestor.handle_delivery(tenant, body, signed_headers(body, message_id=f"{tenant}-{i}"))

        threads = [threading.Thread(target=deliver, args=(t,)) for t in ("alice", "bob", "carol")]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        for tenant in ("alice", "bob", "carol"):
            assert [h["event"]["n"] for h in kv.get_json(history_key(tenant))] == list(range(20))

    def test_audit_counts(self, ingestor):
        body = notification({"x": 1})
        ingestor.handle_delivery("alice", body, signed_headers(body))
        ingestor.handle_delivery("alice", body, signed_headers(body))
        ingestor.handle_delivery("alice", body, {})
        assert ingestor.counts() == {STATUS_STORED: 1, STATUS_DUPLICATE: 1, STATUS_REJECTED: 1}
