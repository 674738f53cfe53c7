"""Information disclosure tests.

Verifies internals are not exposed through API responses: stack traces,
whether a username exists, and the generated API docs.
"""

from __future__ import annotations

from fakes import ADMIN


class TestErrorResponseSafety:
    def test_404_no_stack_trace(self, admin_client):
        resp = admin_client.get("/api/definitely-not-a-route")
        assert resp.status_code == 404
        assert "Traceback" not in resp.text
        assert 'File "' not in resp.text

    def test_method_not_allowed_clean(self, admin_client):
        resp = admin_client.patch("/api/admin/users/bob")
        assert resp.status_code == 405
        assert "Traceback" not in resp.text

    def test_login_does_not_reveal_usernames(self, client):
        unknown = client.post("/api/auth", json={"user": "nobody", "key": "x"})
        wrong = client.post("/api/auth", json={"user": ADMIN[0], "key": "x"})
        assert unknown.status_code == wrong.status_code == 401
        assert unknown.json() == wrong.json()

    def test_malformed_token_detail_not_echoed(self, invalid_auth_client):
        resp = invalid_auth_client.get("/api/webhooks/status")
        assert resp.json() == {"ok": False, "error": "invalid token"}

    def test_webhook_failures_are_silent(self, client, kv):
        kv.fail_writes = True
        resp = client.post("/webhook/alice", content=b"garbage")
        assert resp.content == b""


class TestFastAPIDocsGated:
    def test_docs_require_auth(self, client):
        assert client.get("/docs").status_code == 401

    def test_redoc_requires_auth(self, client):
        assert client.get("/redoc").status_code == 401

    def test_openapi_json_requires_auth(self, client):
        assert client.get("/openapi.json").status_code == 401
