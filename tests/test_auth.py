"""Tests for bearer API key auth and global permission checks."""
from __future__ import annotations

import uuid

from fastapi.testclient import TestClient

from qualitygate.auth import AuthContext, hash_api_key
from qualitygate.main import app
from qualitygate.store import STORE


def _enable_auth(monkeypatch):
    """Re-enable auth for this test (conftest sets QUALITYGATE_AUTH_DISABLED=1)."""
    import qualitygate.auth as auth_mod

    monkeypatch.setattr(auth_mod, "_AUTH_DISABLED", False)


def _make_key(login: str, permissions: list[str]) -> str:
    raw_key = f"qgs_{uuid.uuid4().hex}"
    STORE.create_user(login=login, key_hash=hash_api_key(raw_key), global_permissions=permissions)
    return raw_key


def _auth_header(raw_key: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {raw_key}"}


# ---------------------------------------------------------------------------
# 401 - Missing / invalid auth
# ---------------------------------------------------------------------------


class TestAuthRequired:
    def test_missing_auth_header_returns_401(self, monkeypatch):
        _enable_auth(monkeypatch)
        client = TestClient(app)
        resp = client.get("/v1/quality-gates/1/conditions")
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "AUTH_MISSING"
        assert resp.headers["www-authenticate"] == "Bearer"

    def test_invalid_key_returns_401(self, monkeypatch):
        _enable_auth(monkeypatch)
        client = TestClient(app)
        resp = client.get("/v1/quality-gates/1/conditions", headers=_auth_header("qgs_bogus"))
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "AUTH_INVALID"

    def test_health_unauthenticated(self, monkeypatch):
        _enable_auth(monkeypatch)
        client = TestClient(app)
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}


# ---------------------------------------------------------------------------
# 403 - Global permissions
# ---------------------------------------------------------------------------


class TestGlobalPermissions:
    def test_reads_need_only_authentication(self, monkeypatch):
        _enable_auth(monkeypatch)
        client = TestClient(app)
        raw_key = _make_key("reader", [])
        resp = client.get("/v1/quality-gates/1/conditions", headers=_auth_header(raw_key))
        assert resp.status_code == 200
        assert resp.json() == {"items": []}

    def test_gate_writes_require_gateadmin(self, monkeypatch):
        _enable_auth(monkeypatch)
        client = TestClient(app)
        raw_key = _make_key("reader", [])
        resp = client.post("/v1/quality-gates", json={"name": "Strict"}, headers=_auth_header(raw_key))
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "FORBIDDEN"

        resp = client.post("/v1/conditions/clean", headers=_auth_header(raw_key))
        assert resp.status_code == 403

    def test_gateadmin_can_manage_gates(self, monkeypatch):
        _enable_auth(monkeypatch)
        client = TestClient(app)
        raw_key = _make_key("gatekeeper", ["gateadmin"])
        resp = client.post("/v1/quality-gates", json={"name": "Strict"}, headers=_auth_header(raw_key))
        assert resp.status_code == 201

    def test_system_admin_implies_every_permission(self):
        auth = AuthContext(user_uuid="u1", login="root", global_permissions=frozenset({"admin"}))
        assert auth.has_global_permission("gateadmin") is True
        plain = AuthContext(user_uuid="u2", login="bob", global_permissions=frozenset())
        assert plain.has_global_permission("gateadmin") is False
