"""
Google OAuth 2.0 browser flow.

GET /auth/google stores a random state in the browser session and redirects
to Google. GET /auth/google/callback checks the state, exchanges the code
(httpx), fetches the profile, flags the session as Google-authenticated and
returns a bearer token with iss=accounts.google.com. POST /auth/google/logout
clears the flags.
"""

import logging
import secrets
from typing import Any
from urllib.parse import urlencode

import httpx
from fastapi.responses import RedirectResponse, Response

from mock_server.core.config import Settings
from mock_server.core.errors import ClientInputError
from mock_server.core.gateway.context import GatewayContext
from mock_server.core.gateway.request_response import error_response, json_response
from mock_server.core.gateway.services import Gateway
from mock_server.core.gateway.sessions import GOOGLE_SESSION_FIELDS
from mock_server.core.security import secrets_equal
from mock_server.models import BrowserSession

_LOG = logging.getLogger(__name__)

GOOGLE_ISSUER = "accounts.google.com"
_STATE_FIELD = "google_oauth_state"


def _set_session_cookie(
    response: Response, session: BrowserSession, settings: Settings
) -> None:
    response.set_cookie(
        settings.SESSION_COOKIE_NAME,
        session.id,
        max_age=settings.SESSION_TTL_SECONDS,
        httponly=True,
        samesite="lax",
    )


def authorization_url(settings: Settings, state: str) -> str:
    params = {
        "client_id": settings.GOOGLE_CLIENT_ID,
        "redirect_uri": settings.GOOGLE_REDIRECT_URI,
        "response_type": "code",
        "scope": " ".join(settings.GOOGLE_SCOPES),
        "state": state,
        "access_type": "offline",
        "prompt": "consent",
    }
    return f"{settings.GOOGLE_AUTH_URI}?{urlencode(params)}"


def start(gw: Gateway, ctx: GatewayContext) -> Response:
    settings = gw.settings
    if not settings.GOOGLE_CLIENT_ID:
        return error_response(
            500,
            "Configuration Error",
            "Google OAuth is not configured. Please set GOOGLE_CLIENT_ID and "
            "GOOGLE_CLIENT_SECRET environment variables.",
        )
    session = gw.sessions.get_or_create(ctx.session_id)
    state = secrets.token_hex(16)
    gw.sessions.update(session, **{_STATE_FIELD: state})
    response = RedirectResponse(authorization_url(settings, state), status_code=302)
    _set_session_cookie(response, session, settings)
    return response


def _exchange_code(
    client: httpx.Client, code: str, settings: Settings
) -> dict[str, Any] | None:
    r = client.post(
        settings.GOOGLE_TOKEN_URI,
        data={
            "code": code,
            "client_id": settings.GOOGLE_CLIENT_ID,
            "client_secret": settings.GOOGLE_CLIENT_SECRET,
            "redirect_uri": settings.GOOGLE_REDIRECT_URI,
            "grant_type": "authorization_code",
        },
    )
    if r.status_code != 200:
        _LOG.warning("Google token exchange failed: HTTP %d", r.status_code)
        return None
    data = r.json()
    return data if isinstance(data, dict) and data.get("access_token") else None


def _fetch_user_info(
    client: httpx.Client, access_token: str, settings: Settings
) -> dict[str, Any] | None:
    r = client.get(
        settings.GOOGLE_USER_INFO_URI,
        headers={"Authorization": f"Bearer {access_token}"},
    )
    if r.status_code != 200:
        _LOG.warning("Google user info request failed: HTTP %d", r.status_code)
        return None
    data = r.json()
    return data if isinstance(data, dict) else None


def callback(gw: Gateway, ctx: GatewayContext) -> Response:
    settings = gw.settings
    query = ctx.request.query
    if query.get("error"):
        return error_response(
            400,
            "Authentication Failed",
            f"Google authentication was cancelled or failed: {query['error']}",
        )
    code, state = query.get("code"), query.get("state")
    if not code or not state:
        raise ClientInputError("Missing code or state parameter")

    session = gw.sessions.get(ctx.session_id)
    expected = session.data.get(_STATE_FIELD) if session is not None else None
    if session is None or not isinstance(expected, str) or not secrets_equal(expected, state):
        return error_response(401, "Authentication Failed", "Invalid state parameter")
    gw.sessions.pop(session, _STATE_FIELD)

    try:
        with httpx.Client(
            timeout=settings.GOOGLE_HTTP_TIMEOUT, transport=gw.http_transport
        ) as client:
            token_data = _exchange_code(client, code, settings)
            if token_data is None:
                return error_response(
                    401, "Authentication Failed", "Failed to exchange authorization code"
                )
            user_info = _fetch_user_info(client, token_data["access_token"], settings)
    except (httpx.HTTPError, ValueError) as e:
        _LOG.warning("Google OAuth request failed: %s", e)
        return error_response(
            401, "Authentication Failed", "Failed to exchange authorization code"
        )
    if user_info is None:
        return error_response(401, "Authentication Failed", "Failed to get user information")

    gw.sessions.update(
        session,
        google_authenticated=True,
        google_email=user_info.get("email"),
        google_name=user_info.get("name"),
        google_picture=user_info.get("picture"),
        google_id=user_info.get("id"),
    )
    subject = str(user_info.get("email") or user_info.get("id") or "google-user")
    token = gw.tokens.issue(
        subject,
        {
            "email": user_info.get("email"),
            "name": user_info.get("name"),
            "picture": user_info.get("picture"),
            "iss": GOOGLE_ISSUER,
        },
    )
    _LOG.info("Google login for %s", subject)
    response = json_response(
        {
            "success": True,
            "message": "Google authentication successful",
            "user": {
                "email": user_info.get("email"),
                "name": user_info.get("name"),
                "picture": user_info.get("picture"),
            },
            "token": token,
            "usage": 'Use this token in the Authorization header as "Bearer <token>" for API requests',
        }
    )
    _set_session_cookie(response, session, settings)
    return response


def logout(gw: Gateway, ctx: GatewayContext) -> Response:
    session = gw.sessions.get(ctx.session_id)
    if session is not None:
        gw.sessions.pop(session, *GOOGLE_SESSION_FIELDS)
    return json_response({"success": True, "message": "Logged out successfully"})
