"""
tests/test_auth.py -- Integration tests for the auth routes and token helpers.

Coverage:
  - register: 201, duplicate username/email 409, weak input 400, disabled 403
  - login: cookie + token on success, identical 401 for unknown user and bad password
  - cookie-based session works for protected routes; logout clears it
  - me: identity of the bearer
  - token helpers: tampered and expired tokens are rejected
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone

from fastapi.testclient import TestClient
from jose import jwt

from auth.tokens import AUTH_COOKIE, create_access_token, decode_access_token, hash_password, verify_password
from core.config import get_settings

ADMIN_USERNAME = "testadmin"  # created by conftest.api_client
ADMIN_PASSWORD = "testpass123"


def _register(client: TestClient, username: str = "", email: str = "", password: str = "correct-horse-1"):
    username = username or f"user_{uuid.uuid4().hex[:8]}"
    email = email or f"{username}@example.com"
    return client.post(
        "/api/v1/auth/register",
        json={"username": username, "email": email, "password": password},
    )


class TestRegister:
    def test_register_creates_regular_user(self, api_client: tuple[TestClient, str, int]) -> None:
        client, _token, _uid = api_client
        resp = _register(client, username="alice")
        assert resp.status_code == 201, f"Expected 201, got {resp.status_code}: {resp.text}"
        data = resp.json()
        assert data["username"] == "alice"
        assert data["role"] == "user"
        assert "hashedPassword" not in data and "password" not in data

    def test_duplicate_username_or_email_conflicts(self, api_client: tuple[TestClient, str, int]) -> None:
        client, _token, _uid = api_client
        assert _register(client, username="bob", email="bob@example.com").status_code == 201
        assert _register(client, username="bob", email="other@example.com").status_code == 409
        assert _register(client, username="bobby", email="bob@example.com").status_code == 409

    def test_short_password_is_400(self, api_client: tuple[TestClient, str, int]) -> None:
        client, _token, _uid = api_client
        resp = _register(client, password="short")
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "validation_error"

    def test_disabled_registration_is_403(self, api_client: tuple[TestClient, str, int], monkeypatch) -> None:
        client, _token, _uid = api_client
        monkeypatch.setattr(get_settings(), "self_registration_enabled", False)
        resp = _register(client)
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "registration_disabled"


class TestLogin:
    def test_login_sets_cookie_and_returns_token(self, api_client: tuple[TestClient, str, int]) -> None:
        client, _token, _uid = api_client
        resp = client.post("/api/v1/auth/login", json={"username": ADMIN_USERNAME, "password": ADMIN_PASSWORD})
        assert resp.status_code == 200, resp.text
        assert resp.headers["cache-control"] == "no-store"
        assert AUTH_COOKIE in resp.cookies
        data = resp.json()
        assert data["tokenType"] == "bearer"
        assert data["user"]["username"] == ADMIN_USERNAME
        assert decode_access_token(data["accessToken"])["sub"] == ADMIN_USERNAME
        client.cookies.clear()

    def test_bad_password_and_unknown_user_look_the_same(self, api_client: tuple[TestClient, str, int]) -> None:
        client, _token, _uid = api_client
        wrong_pw = client.post("/api/v1/auth/login", json={"username": ADMIN_USERNAME, "password": "nope-nope"})
        no_user = client.post("/api/v1/auth/login", json={"username": "ghost", "password": "nope-nope"})
        assert wrong_pw.status_code == no_user.status_code == 401
        assert wrong_pw.json() == no_user.json()

    def test_cookie_session_and_logout(self, api_client: tuple[TestClient, str, int]) -> None:
        client, _token, _uid = api_client
        assert _register(client, username="carol", password="carol-secret-9").status_code == 201
        resp = client.post("/api/v1/auth/login", json={"username": "carol", "password": "carol-secret-9"})
        assert resp.status_code == 200

        me = client.get("/api/v1/auth/me")
        assert me.status_code == 200
        assert me.json()["username"] == "carol"

        client.post("/api/v1/auth/logout")
        client.cookies.clear()
        assert client.get("/api/v1/auth/me").status_code == 401


class TestMe:
    def test_me_with_bearer(self, api_client: tuple[TestClient, str, int], auth_headers) -> None:
        client, _token, uid = api_client
        resp = client.get("/api/v1/auth/me", headers=auth_headers)
        assert resp.status_code == 200
        assert resp.json()["id"] == uid
        assert resp.json()["role"] == "admin"

    def test_token_for_deleted_user_is_rejected(self, api_client: tuple[TestClient, str, int]) -> None:
        client, _token, _uid = api_client
        token = create_access_token(user_id=987654, username="nobody", role="user")
        resp = client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401


class TestTokenHelpers:
    def test_tampered_token_rejected(self) -> None:
        header, _payload, signature = create_access_token(1, "alice", "user").split(".")
        forged_payload = create_access_token(1, "alice", "admin").split(".")[1]
        assert decode_access_token(".".join([header, forged_payload, signature])) is None

    def test_expired_token_rejected(self) -> None:
        past = datetime.now(timezone.utc) - timedelta(minutes=5)
        token = jwt.encode(
            {"sub": "alice", "user_id": 1, "role": "user", "exp": past},
            get_settings().secret_key,
            algorithm="HS256",
        )
        assert decode_access_token(token) is None

    def test_token_missing_claims_rejected(self) -> None:
        token = jwt.encode({"sub": "alice"}, get_settings().secret_key, algorithm="HS256")
        assert decode_access_token(token) is None

    def test_password_round_trip(self) -> None:
        hashed = hash_password("s3cret-value")
        assert verify_password("s3cret-value", hashed)
        assert not verify_password("wrong", hashed)
        assert not verify_password("anything", "not-a-bcrypt-hash")
