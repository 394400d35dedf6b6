"""Tests for the HTTP routes, served through FastAPI's TestClient."""

from __future__ import annotations

import time
from unittest.mock import AsyncMock, Mock

import jwt
import pytest
from fastapi.testclient import TestClient

from ephemeral_idp.config import Settings
from ephemeral_idp.errors import OTPDeliveryError, TokenIssuanceError
from ephemeral_idp.main import build_auth_service, create_app
from ephemeral_idp.services.auth_service import AuthService
from ephemeral_idp.services.email_service import EmailService
from ephemeral_idp.services.token_signer import TokenSigner
from ephemeral_idp.stores.oauth_token_cache import MAX_EXPIRES_AT, OAuthTokenCache
from ephemeral_idp.stores.otp_store import OTPStore

SECRET = "test-signing-secret-that-is-long-enough-for-hs256"
EMAIL = "alice@example.com"


@pytest.fixture
def config():
    return Settings(jwt_secret=SECRET, otp_sweep_interval_seconds=3600, smtp_host="")


@pytest.fixture
def app(config):
    return create_app(config)


@pytest.fixture
def client(app, config):
    with TestClient(app) as client:
        # Same wiring as startup, but with a predictable OTP.
        app.state.auth_service = AuthService(
            otp_store=OTPStore(ttl_seconds=config.otp_ttl_seconds),
            token_cache=OAuthTokenCache(),
            signer=TokenSigner(secret=SECRET),
            email_service=EmailService(config),
            otp_generator=lambda: "246810",
        )
        yield client


def _bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "healthy"


def test_startup_wires_a_service(app):
    with TestClient(app):
        assert isinstance(app.state.auth_service, AuthService)


def test_build_auth_service_uses_settings(config):
    service = build_auth_service(config)
    token = service.password_login("dave", "pw")
    assert jwt.decode(token, SECRET, algorithms=["HS256"])["sub"] == "dave"


# ──────────────────────────────────────────────────────────
# Password login
# ──────────────────────────────────────────────────────────
def test_login(client):
    resp = client.post("/login", json={"username": "dave", "password": "hunter2"})

    assert resp.status_code == 200
    claims = jwt.decode(resp.json()["token"], SECRET, algorithms=["HS256"])
    assert claims["username"] == "dave"


@pytest.mark.parametrize(
    "body",
    [{"username": "dave"}, {"username": "", "password": "x"}, {}],
)
def test_login_rejects_malformed_body(client, body):
    resp = client.post("/login", json=body)

    assert resp.status_code == 400
    assert resp.json() == {"detail": "Invalid request format"}


# ──────────────────────────────────────────────────────────
# OTP
# ──────────────────────────────────────────────────────────
def test_otp_round_trip(client):
    resp = client.post("/send-otp", json={"email": EMAIL})
    assert resp.status_code == 200
    assert resp.json() == {"success": True, "message": "OTP sent successfully"}

    resp = client.post("/verify-otp", json={"email": EMAIL, "otp": "000000"})
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Invalid or expired OTP"

    resp = client.post("/verify-otp", json={"email": EMAIL, "otp": "246810"})
    assert resp.status_code == 200
    claims = jwt.decode(resp.json()["token"], SECRET, algorithms=["HS256"])
    assert claims["username"] == EMAIL

    resp = client.post("/verify-otp", json={"email": EMAIL, "otp": "246810"})
    assert resp.status_code == 401


def test_verify_unknown_email_matches_wrong_code_response(client):
    client.post("/send-otp", json={"email": EMAIL})

    unknown = client.post("/verify-otp", json={"email": "bob@example.com", "otp": "246810"})
    wrong = client.post("/verify-otp", json={"email": EMAIL, "otp": "135790"})

    assert unknown.status_code == wrong.status_code == 401
    assert unknown.json() == wrong.json()


def test_send_otp_rejects_missing_email(client):
    resp = client.post("/send-otp", json={})
    assert resp.status_code == 400


def test_send_otp_delivery_failure(client, app):
    email_service = EmailService()
    email_service.send_otp = AsyncMock(side_effect=OTPDeliveryError("smtp down"))
    app.state.auth_service._email = email_service

    resp = client.post("/send-otp", json={"email": EMAIL})
    assert resp.status_code == 502


def test_signer_failure_is_500(client, app):
    signer = Mock(spec=TokenSigner)
    signer.issue.side_effect = TokenIssuanceError("signer unavailable")
    app.state.auth_service._signer = signer

    resp = client.post("/login", json={"username": "dave", "password": "pw"})
    assert resp.status_code == 500
    assert resp.json()["detail"] == "Failed to generate token"


# ──────────────────────────────────────────────────────────
# OAuth
# ──────────────────────────────────────────────────────────
def _oauth_login(client, **overrides) -> str:
    body = {
        "email": EMAIL,
        "name": "Alice Johnson",
        "provider": "google",
        "access_token": "ya29.first",
        "refresh_token": "1//refresh",
        "expires_at": int(time.time()) + 3600,
    }
    body.update(overrides)
    resp = client.post("/oauth-login", json=body)
    assert resp.status_code == 200
    return resp.json()["token"]


def test_oauth_login_then_fetch_live_token(client):
    token = _oauth_login(client)

    resp = client.get("/oauth-token", headers=_bearer(token))

    assert resp.status_code == 200
    data = resp.json()
    assert data["user_id"] == EMAIL
    assert data["access_token"] == "ya29.first"
    assert data["refreshed"] is False


def test_stale_oauth_token_is_refreshed_on_fetch(client):
    token = _oauth_login(client, expires_at=int(time.time()) + 60)

    resp = client.get("/oauth-token", headers=_bearer(token))

    data = resp.json()
    assert resp.status_code == 200
    assert data["refreshed"] is True
    assert data["access_token"].startswith("refreshed_access_token_")
    assert data["expires_at"] >= int(time.time()) + 3500


def test_oauth_login_without_tokens(client):
    token = _oauth_login(client, access_token=None, refresh_token=None, expires_at=None)

    resp = client.get("/oauth-token", headers=_bearer(token))
    assert resp.status_code == 404


@pytest.mark.parametrize(
    "expires_at",
    [int(time.time() * 1000), 10**20, -1],
)
def test_oauth_login_rejects_unrepresentable_expiry(client, app, expires_at):
    resp = client.post(
        "/oauth-login",
        json={
            "email": EMAIL,
            "name": "Alice Johnson",
            "provider": "google",
            "access_token": "ya29.first",
            "refresh_token": "1//refresh",
            "expires_at": expires_at,
        },
    )

    assert resp.status_code == 400
    assert resp.json() == {"detail": "Invalid request format"}
    assert app.state.auth_service.token_cache.lookup(EMAIL) is None


def test_oauth_login_accepts_latest_representable_expiry(client):
    token = _oauth_login(client, expires_at=MAX_EXPIRES_AT)

    resp = client.get("/oauth-token", headers=_bearer(token))
    assert resp.status_code == 200
    assert resp.json()["expires_at"] == MAX_EXPIRES_AT


def test_oauth_login_rejects_missing_provider(client):
    resp = client.post("/oauth-login", json={"email": EMAIL, "name": "Alice"})
    assert resp.status_code == 400


def test_oauth_token_requires_bearer(client):
    assert client.get("/oauth-token").status_code == 401
    assert client.get("/oauth-token", headers=_bearer("garbage")).status_code == 401


# ──────────────────────────────────────────────────────────
# Middleware
# ──────────────────────────────────────────────────────────
def test_request_id_is_echoed(client):
    resp = client.get("/health", headers={"X-Request-ID": "abc123"})
    assert resp.headers["X-Request-ID"] == "abc123"


def test_request_id_is_generated(client):
    resp = client.get("/health")
    assert resp.headers["X-Request-ID"]
