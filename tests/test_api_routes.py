"""
tests/test_api_routes.py -- Integration tests for the /api/v1/auth routes.

These tests exercise the full stack: FastAPI routing -> SessionMiddleware
cookie -> auth dependency injection -> AuthService -> UserStore/CodeStore ->
response model serialization and the error envelope. Unit testing route
functions alone would miss middleware and the error-to-status mapping.

Fixtures used (from conftest.py):
  - client: TestClient with cookie persistence, fresh database per test
  - notifier: RecordingNotifier wired into the app's AuthService
"""

from __future__ import annotations

from fastapi.testclient import TestClient

from auth.models import Registration

BASE = "/api/v1/auth"


def _register(client: TestClient, email: str = "a@x.com", password: str = "p1", **extra):
    return client.post(f"{BASE}/register", json={"email": email, "password": password, **extra})


class TestSessionLifecycle:
    def test_register_starts_session(self, client: TestClient) -> None:
        resp = _register(client, name="Ana")
        assert resp.status_code == 201, resp.text
        data = resp.json()
        assert data["user"]["email"] == "a@x.com"
        assert data["landing"] == "user"
        assert resp.headers["cache-control"] == "no-store"

        session = client.get(f"{BASE}/session")
        assert session.status_code == 200
        assert session.json()["user"]["id"] == data["user"]["id"]

    def test_register_duplicate_is_409(self, client: TestClient) -> None:
        _register(client)
        resp = _register(client, email="A@x.com")
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "email_taken"

    def test_register_missing_password_is_400(self, client: TestClient) -> None:
        resp = client.post(f"{BASE}/register", json={"email": "a@x.com"})
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "missing_fields"

    def test_register_password_over_72_bytes_is_400(self, client: TestClient) -> None:
        resp = _register(client, password="é" * 60)
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "invalid_password"

    def test_patch_me_password_over_72_bytes_is_400(self, client: TestClient) -> None:
        _register(client)
        resp = client.patch(f"{BASE}/me", json={"oldPassword": "p1", "password": "a" * 73})
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "invalid_password"

    def test_register_accepts_camel_case_fields(self, client: TestClient) -> None:
        _register(client, lastName1="Diaz", passwordConfirmation="p1")
        me = client.get(f"{BASE}/me").json()
        assert me["last_name1"] == "Diaz"

    def test_login_logout_roundtrip(self, client: TestClient) -> None:
        _register(client)
        client.post(f"{BASE}/logout")
        assert client.get(f"{BASE}/session").status_code == 401

        resp = client.post(f"{BASE}/login", json={"email": "a@x.com", "password": "p1"})
        assert resp.status_code == 200
        assert resp.headers["cache-control"] == "no-store"
        assert client.get(f"{BASE}/session").status_code == 200

    def test_login_errors_are_uniform(self, client: TestClient) -> None:
        _register(client)
        client.post(f"{BASE}/logout")
        wrong = client.post(f"{BASE}/login", json={"email": "a@x.com", "password": "nope"})
        unknown = client.post(f"{BASE}/login", json={"email": "b@x.com", "password": "p1"})
        assert wrong.status_code == unknown.status_code == 401
        assert wrong.json() == unknown.json()

    def test_logout_is_idempotent(self, client: TestClient) -> None:
        _register(client)
        assert client.post(f"{BASE}/logout").status_code == 200
        assert client.post(f"{BASE}/logout").status_code == 200
        assert client.get(f"{BASE}/session").status_code == 401

    def test_session_unauthenticated_envelope(self, client: TestClient) -> None:
        resp = client.get(f"{BASE}/session")
        assert resp.status_code == 401
        assert resp.json() == {"error": {"code": "unauthorized", "message": "Not authenticated."}}

    def test_admin_login_lands_on_admin(self, client: TestClient, http_service) -> None:
        http_service.create_admin(Registration(email="root@x.com", password="p1"))
        resp = client.post(f"{BASE}/login", json={"email": "root@x.com", "password": "p1"})
        assert resp.json()["landing"] == "admin"
        assert resp.json()["user"]["user_type"] == "admin"


class TestProfileRoutes:
    def test_me_requires_auth(self, client: TestClient) -> None:
        assert client.get(f"{BASE}/me").status_code == 401
        assert client.patch(f"{BASE}/me", json={"oldPassword": "p1", "name": "X"}).status_code == 401

    def test_me_never_exposes_hash(self, client: TestClient) -> None:
        _register(client)
        me = client.get(f"{BASE}/me").json()
        assert "hashed_password" not in me
        assert me["email_verified"] is False

    def test_patch_me_updates_profile(self, client: TestClient) -> None:
        _register(client, name="Ana")
        resp = client.patch(f"{BASE}/me", json={"oldPassword": "p1", "name": "Ana Maria", "tel": "555-0100"})
        assert resp.status_code == 200, resp.text
        assert resp.json()["name"] == "Ana Maria"
        assert resp.json()["tel"] == "555-0100"

    def test_patch_me_wrong_password(self, client: TestClient) -> None:
        _register(client, name="Ana")
        resp = client.patch(f"{BASE}/me", json={"oldPassword": "wrong", "name": "Mallory"})
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "invalid_current_password"
        assert client.get(f"{BASE}/me").json()["name"] == "Ana"

    def test_patch_me_ignores_email(self, client: TestClient) -> None:
        _register(client)
        resp = client.patch(f"{BASE}/me", json={"oldPassword": "p1", "email": "evil@x.com"})
        assert resp.status_code == 200
        assert resp.json()["email"] == "a@x.com"

    def test_patch_me_missing_old_password(self, client: TestClient) -> None:
        _register(client)
        resp = client.patch(f"{BASE}/me", json={"name": "X"})
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "current_password_required"


class TestVerificationAndReset:
    def test_email_verification_flow(self, client: TestClient, notifier) -> None:
        _register(client)
        resp = client.post(f"{BASE}/email-verification", json={"email": "a@x.com"})
        assert resp.status_code == 202
        code = notifier.last("verification").secret

        bad = client.post(f"{BASE}/email-verification/confirm", json={"email": "a@x.com", "code": "WRONG222"})
        assert bad.status_code == 400
        assert bad.json()["error"]["code"] == "invalid_code"

        ok = client.post(f"{BASE}/email-verification/confirm", json={"email": "a@x.com", "code": code})
        assert ok.status_code == 200
        assert client.get(f"{BASE}/me").json()["email_verified"] is True

        again = client.post(f"{BASE}/email-verification/confirm", json={"email": "a@x.com", "code": code})
        assert again.status_code == 400

    def test_unknown_email_gets_same_response(self, client: TestClient, notifier) -> None:
        _register(client)
        known = client.post(f"{BASE}/email-verification", json={"email": "a@x.com"})
        unknown = client.post(f"{BASE}/email-verification", json={"email": "ghost@x.com"})
        assert known.status_code == unknown.status_code == 202
        assert known.json() == unknown.json()
        assert [m.to for m in notifier.sent] == ["a@x.com"]

    def test_malformed_email_is_422(self, client: TestClient) -> None:
        resp = client.post(f"{BASE}/password-reset", json={"email": "not-an-email"})
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "validation_error"

    def test_password_reset_flow(self, client: TestClient, notifier) -> None:
        _register(client)
        client.post(f"{BASE}/logout")
        resp = client.post(f"{BASE}/password-reset", json={"email": "a@x.com"})
        assert resp.status_code == 202
        assert resp.headers["cache-control"] == "no-store"
        new_password = notifier.last("password_reset").secret

        old = client.post(f"{BASE}/login", json={"email": "a@x.com", "password": "p1"})
        assert old.status_code == 401
        fresh = client.post(f"{BASE}/login", json={"email": "a@x.com", "password": new_password})
        assert fresh.status_code == 200

    def test_delivery_failure_is_502(self, client: TestClient, notifier) -> None:
        _register(client)
        notifier.fail = True
        resp = client.post(f"{BASE}/email-verification", json={"email": "a@x.com"})
        assert resp.status_code == 502
        assert resp.json()["error"]["code"] == "delivery_failed"
