"""
API key endpoints: POST /api/generate-key, GET /api/keys, POST /api/revoke-key.

Generation is gated by Google authentication (API_KEY_REQUIRE_AUTHENTICATION);
listing and revocation require a valid X-API-Key in production.
"""

from fastapi.responses import Response
from pydantic import ValidationError

from mock_server.core.errors import AuthorizationError, ClientInputError, NotFound
from mock_server.core.gateway.auth import extract_api_key
from mock_server.core.gateway.context import GatewayContext
from mock_server.core.gateway.request_response import (
    JSON_TYPE,
    error_response,
    json_body,
    json_response,
)
from mock_server.core.gateway.services import Gateway
from mock_server.core.security import mask_key
from mock_server.schemas import ApiKeyPublic, GenerateKeyIn, KeyValidation, RevokeKeyIn

_TRUTHY = ("1", "true", "yes", "on")


def _production_key(gw: Gateway, ctx: GatewayContext) -> KeyValidation | None:
    """Caller's key validation in production; None outside production."""
    if not gw.settings.is_production:
        return None
    return gw.issuer.validate_key(extract_api_key(ctx.credentials))


def generate(gw: Gateway, ctx: GatewayContext) -> Response:
    req = ctx.request
    require_auth = gw.settings.API_KEY_REQUIRE_AUTHENTICATION
    user = "anonymous"
    if require_auth:
        result = gw.google_auth.authenticate(ctx.credentials)
        if not result.success:
            return error_response(
                401,
                "Unauthorized",
                "Google authentication is required to generate API keys. "
                "Please login with Google first.",
                auth_url="/auth/google",
            )
        user = result.identity

    if req.content_type and not req.has_type(JSON_TYPE):
        return error_response(400, "Bad Request", "Content-Type must be application/json")
    body = json_body(req) if req.body else None
    try:
        payload = GenerateKeyIn.model_validate(body if isinstance(body, dict) else {})
    except ValidationError as e:
        raise ClientInputError("metadata must be an object") from e

    # Ownership comes from the authenticated caller only.
    metadata = {k: v for k, v in payload.metadata.items() if k != "generated_by"}
    if require_auth:
        metadata["generated_by"] = user
        metadata["auth_method"] = "google"
    record = gw.issuer.generate_key(metadata)
    return json_response(
        {
            "success": True,
            "message": "API key generated successfully",
            "api_key": record.key,
            "created_at": record.created_at,
            "generated_by": user,
            "usage_instructions": "Include this API key in the X-API-Key header for all requests",
        },
        201,
    )


def list_keys(gw: Gateway, ctx: GatewayContext) -> Response:
    caller = _production_key(gw, ctx)
    if caller is not None and not caller.valid:
        return error_response(401, "Unauthorized", "API key is required to list API keys")

    include_inactive = (
        ctx.request.query.get("include_inactive", "").lower() in _TRUTHY
    )
    keys = [
        ApiKeyPublic(
            key_masked=mask_key(record.key), **record.model_dump(exclude={"key"})
        ).model_dump()
        for record in gw.issuer.list_keys(include_inactive=include_inactive)
    ]
    return json_response(
        {
            "success": True,
            "keys": keys,
            "total": len(keys),
            "note": "Keys are masked for security. Use the full key provided during generation.",
        }
    )


def revoke(gw: Gateway, ctx: GatewayContext) -> Response:
    caller = _production_key(gw, ctx)
    if caller is not None and not caller.valid:
        return error_response(401, "Unauthorized", "API key is required to revoke API keys")

    req = ctx.request
    if not req.has_type(JSON_TYPE):
        return error_response(400, "Bad Request", "Content-Type must be application/json")
    try:
        payload = RevokeKeyIn.model_validate(json_body(req))
    except ValidationError as e:
        raise ClientInputError("api_key is required") from e

    target = gw.issuer.get_key(payload.api_key)
    if target is None:
        raise NotFound("API key not found")
    if (
        caller is not None
        and caller.key_record is not None
        and caller.key_record.generated_by != target.generated_by
    ):
        raise AuthorizationError("API keys can only be revoked by the identity that issued them")

    revoked = gw.issuer.revoke_key(payload.api_key)
    return json_response(
        {
            "success": revoked,
            "message": "API key revoked" if revoked else "API key is already inactive",
        }
    )
