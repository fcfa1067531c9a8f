"""Tests for token issuance (/login, /oauth/token) and the Google OAuth flow."""

from collections.abc import Callable
from urllib.parse import parse_qs, urlparse

import httpx
import jwt
from fastapi.testclient import TestClient

GOOGLE = {"GOOGLE_CLIENT_ID": "google-client", "GOOGLE_CLIENT_SECRET": "google-secret"}


def _google_transport(
    *, token_status: int = 200, user: dict | None = None
) -> httpx.MockTransport:
    profile = user or {
        "id": "1001",
        "email": "ada@example.com",
        "name": "Ada",
        "picture": "https://example.com/ada.png",
    }

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "oauth2.googleapis.com":
            form = parse_qs(request.content.decode())
            assert form["grant_type"] == ["authorization_code"]
            assert form["client_secret"] == ["google-secret"]
            if token_status != 200:
                return httpx.Response(token_status, json={"error": "invalid_grant"})
            return httpx.Response(200, json={"access_token": "g-access"})
        if request.url.path == "/oauth2/v2/userinfo":
            assert request.headers["Authorization"] == "Bearer g-access"
            return httpx.Response(200, json=profile)
        return httpx.Response(404)

    return httpx.MockTransport(handler)


def _start(client: TestClient) -> str:
    r = client.get("/auth/google", follow_redirects=False)
    assert r.status_code == 302
    location = urlparse(r.headers["location"])
    assert location.netloc == "accounts.google.com"
    query = parse_qs(location.query)
    assert query["client_id"] == ["google-client"]
    assert query["scope"] == ["openid email profile"]
    return query["state"][0]


def test_login_success(client: TestClient) -> None:
    r = client.post("/login", json={"username": "admin", "password": "admin123"})
    assert r.status_code == 200
    data = r.json()
    assert data["success"] is True
    assert data["user"] == {"username": "admin", "role": "user"}
    assert data["token"].count(".") == 2


def test_login_failures(client: TestClient) -> None:
    r = client.post("/login", json={"username": "admin", "password": "nope"})
    assert r.status_code == 401
    assert r.json() == {"error": "Invalid credentials"}

    r = client.post("/login", json={"username": "admin"})
    assert r.status_code == 400
    assert r.json() == {"error": "Username and password required"}

    r = client.post("/login", content=b"{bad", headers={"Content-Type": "application/json"})
    assert r.status_code == 400

    r = client.post("/login", data={"username": "admin", "password": "admin123"})
    assert r.status_code == 400
    assert r.json()["message"] == "Content-Type must be application/json"


def test_oauth_client_credentials(client: TestClient) -> None:
    r = client.post(
        "/oauth/token",
        json={
            "client_id": "mock-client-id",
            "client_secret": "mock-client-secret",
            "grant_type": "client_credentials",
        },
    )
    assert r.status_code == 200
    data = r.json()
    assert data["token_type"] == "Bearer"
    assert data["expires_in"] == 3600
    assert data["access_token"]


def test_oauth_errors(client: TestClient) -> None:
    r = client.post(
        "/oauth/token",
        json={"client_id": "mock-client-id", "client_secret": "x", "grant_type": "password"},
    )
    assert r.status_code == 400
    assert r.json() == {"error": "unsupported_grant_type"}

    r = client.post(
        "/oauth/token",
        json={
            "client_id": "mock-client-id",
            "client_secret": "wrong",
            "grant_type": "client_credentials",
        },
    )
    assert r.status_code == 401
    assert r.json() == {"error": "invalid_client"}

    r = client.post("/oauth/token", content=b"grant_type=x")
    assert r.status_code == 400
    assert r.json()["error"] == "invalid_request"


def test_oauth2_token_grants_access(make_client: Callable[..., TestClient]) -> None:
    client = make_client(AUTH_METHOD="oauth2")
    token = client.post(
        "/oauth/token",
        json={
            "client_id": "mock-client-id",
            "client_secret": "mock-client-secret",
            "grant_type": "client_credentials",
        },
    ).json()["access_token"]
    assert client.get("/r").status_code == 401
    assert client.get("/r", headers={"Authorization": f"Bearer {token}"}).status_code == 404


def test_google_not_configured(client: TestClient) -> None:
    r = client.get("/auth/google", follow_redirects=False)
    assert r.status_code == 500
    assert r.json()["error"] == "Configuration Error"


def test_google_login_flow(make_client: Callable[..., TestClient]) -> None:
    """Redirect, callback, then key generation with the session and with the token."""
    client = make_client(transport=_google_transport(), **GOOGLE)
    state = _start(client)

    r = client.get("/auth/google/callback", params={"code": "c0de", "state": state})
    assert r.status_code == 200
    data = r.json()
    assert data["user"]["email"] == "ada@example.com"
    token = data["token"]
    claims = jwt.decode(token, options={"verify_signature": False, "verify_exp": False})
    assert claims["iss"] == "accounts.google.com"

    # session cookie from the flow is enough for key generation
    r = client.post("/api/generate-key")
    assert r.status_code == 201
    assert r.json()["generated_by"] == "ada@example.com"

    # so is the returned bearer token, without the cookie
    client.cookies.clear()
    r = client.post("/api/generate-key", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 201

    # state is single use
    r = client.get("/auth/google/callback", params={"code": "c0de", "state": state})
    assert r.status_code == 401


def test_google_callback_rejects_wrong_state(make_client: Callable[..., TestClient]) -> None:
    client = make_client(transport=_google_transport(), **GOOGLE)
    _start(client)
    r = client.get("/auth/google/callback", params={"code": "c0de", "state": "forged"})
    assert r.status_code == 401
    assert r.json()["message"] == "Invalid state parameter"


def test_google_callback_errors(make_client: Callable[..., TestClient]) -> None:
    client = make_client(transport=_google_transport(token_status=400), **GOOGLE)
    r = client.get("/auth/google/callback", params={"error": "access_denied"})
    assert r.status_code == 400
    assert client.get("/auth/google/callback").status_code == 400

    state = _start(client)
    r = client.get("/auth/google/callback", params={"code": "bad", "state": state})
    assert r.status_code == 401
    assert r.json()["message"] == "Failed to exchange authorization code"


def test_google_logout_clears_session(make_client: Callable[..., TestClient]) -> None:
    client = make_client(transport=_google_transport(), **GOOGLE)
    state = _start(client)
    client.get("/auth/google/callback", params={"code": "c0de", "state": state})

    r = client.post("/auth/google/logout")
    assert r.status_code == 200
    assert client.post("/api/generate-key").status_code == 401
