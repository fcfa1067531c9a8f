"""
Token issuance: POST /login (username/password -> bearer token) and
POST /oauth/token (OAuth2 client credentials grant).
"""

import logging

from fastapi.responses import Response
from pydantic import ValidationError

from mock_server.core.gateway.context import GatewayContext
from mock_server.core.gateway.request_response import (
    JSON_TYPE,
    error_response,
    json_response,
    parse_body,
)
from mock_server.core.gateway.services import Gateway
from mock_server.core.security import secrets_equal
from mock_server.schemas import LoginIn, OAuthTokenIn, OAuthTokenResponse

_LOG = logging.getLogger(__name__)


def login(gw: Gateway, ctx: GatewayContext) -> Response:
    req = ctx.request
    if not req.has_type(JSON_TYPE):
        return error_response(400, "Bad Request", "Content-Type must be application/json")
    try:
        creds = LoginIn.model_validate(parse_body(req))
    except ValidationError:
        return error_response(400, "Username and password required")

    expected = gw.settings.BASIC_AUTH_USERS.get(creds.username)
    if expected is None or not secrets_equal(expected, creds.password):
        _LOG.info("Login failed for %r from %s", creds.username, ctx.client_ip)
        return error_response(401, "Invalid credentials")

    token = gw.tokens.issue(creds.username, {"name": creds.username, "role": "user"})
    return json_response(
        {
            "success": True,
            "message": "Login successful",
            "token": token,
            "user": {"username": creds.username, "role": "user"},
        }
    )


def oauth_token(gw: Gateway, ctx: GatewayContext) -> Response:
    req = ctx.request
    if not req.has_type(JSON_TYPE):
        return error_response(
            400,
            "invalid_request",
            error_description="Content-Type must be application/json",
        )
    body = parse_body(req)
    try:
        grant = OAuthTokenIn.model_validate(body if isinstance(body, dict) else {})
    except ValidationError:
        return error_response(400, "invalid_request")

    if grant.grant_type != "client_credentials":
        return error_response(400, "unsupported_grant_type")

    settings = gw.settings
    if not (
        grant.client_id == settings.OAUTH2_CLIENT_ID
        and grant.client_secret is not None
        and secrets_equal(grant.client_secret, settings.OAUTH2_CLIENT_SECRET)
    ):
        _LOG.info("OAuth2 client authentication failed for %r", grant.client_id)
        return error_response(401, "invalid_client")

    token = gw.tokens.issue(
        "oauth2-client", {"client_id": grant.client_id, "scope": "read write"}
    )
    return json_response(
        OAuthTokenResponse(
            access_token=token, expires_in=settings.JWT_EXPIRATION
        ).model_dump()
    )
