"""
Gateway pipeline: an ordered list of named stages run for every request.

Flow: apply_cors -> answer_preflight -> enforce_rate_limits -> route_public
-> enforce_credentials -> dispatch_resource.

Each stage returns None (continue) or a terminal Response. Per-request
errors (GatewayError) are recovered here and turned into JSON bodies;
anything else is logged and answered with a generic 500. Headers collected
in the context (CORS) are merged onto every response, error paths included.
"""

import logging
from collections.abc import Callable, Sequence

from fastapi.responses import Response

from mock_server.core.errors import (
    AuthenticationError,
    GatewayError,
    RateLimitExceeded,
    StorageError,
)
from mock_server.core.gateway.auth import extract_api_key
from mock_server.core.gateway.context import GatewayContext
from mock_server.core.gateway.request_response import (
    GatewayRequest,
    error_response,
    gateway_error_response,
    is_upload_path,
    json_response,
)
from mock_server.core.gateway.services import Gateway
from mock_server.handlers import auth, google, keys, resources, uploads
from mock_server.models import AuthMethod
from mock_server.schemas import AuthResult

_LOG = logging.getLogger(__name__)

Handler = Callable[[Gateway, GatewayContext], Response]
Stage = Callable[[Gateway, GatewayContext], Response | None]

# Routes that do their own authorization (or none) and skip the
# configured authenticator.
PUBLIC_ROUTES: dict[tuple[str, str], Handler] = {
    ("POST", "/login"): auth.login,
    ("POST", "/oauth/token"): auth.oauth_token,
    ("GET", "/auth/google"): google.start,
    ("GET", "/auth/google/callback"): google.callback,
    ("POST", "/auth/google/logout"): google.logout,
    ("POST", "/api/generate-key"): keys.generate,
    ("GET", "/api/keys"): keys.list_keys,
    ("POST", "/api/revoke-key"): keys.revoke,
    ("GET", "/files"): uploads.list_files,
    ("GET", "/resources"): resources.list_resources,
}


# ---------------------------------------------------------------------------
# Stages
# ---------------------------------------------------------------------------


def apply_cors(gw: Gateway, ctx: GatewayContext) -> Response | None:
    ctx.response_headers.update(gw.cors.headers_for(ctx.request.header("Origin")))
    return None


def answer_preflight(gw: Gateway, ctx: GatewayContext) -> Response | None:
    """OPTIONS is answered here; on /upload* it doubles as the TUS capability probe."""
    if ctx.request.method != "OPTIONS":
        return None
    headers: dict[str, str] = {}
    if is_upload_path(ctx.request.path) and gw.settings.TUS_ENABLED:
        headers.update(gw.uploads.capabilities())
    return Response(status_code=200, headers=headers)


def enforce_rate_limits(gw: Gateway, ctx: GatewayContext) -> Response | None:
    if not gw.settings.RATE_LIMIT_ENABLED:
        return None
    result = gw.rate_limiter.check_request(ctx.client_ip, ctx.request.path)
    if result.allowed:
        return None
    retry_after = result.retry_after(gw.now())
    exc = RateLimitExceeded(
        "Rate limit exceeded. Please try again later.", retry_after=retry_after
    )
    return json_response(
        exc.to_body(),
        exc.status_code,
        {
            "X-RateLimit-Limit": str(result.limit or 0),
            "X-RateLimit-Remaining": str(result.remaining or 0),
            "X-RateLimit-Reset": str(result.reset_at or 0),
            "Retry-After": str(retry_after),
        },
    )


def route_public(gw: Gateway, ctx: GatewayContext) -> Response | None:
    req = ctx.request
    handler = PUBLIC_ROUTES.get((req.method, req.path))
    if handler is not None:
        return handler(gw, ctx)
    if is_upload_path(req.path):
        return uploads.handle_upload(gw, ctx)
    return None


def enforce_credentials(gw: Gateway, ctx: GatewayContext) -> Response | None:
    """
    Production with AUTH_PRODUCTION_ENFORCE_API_KEY: a valid X-API-Key is
    required whatever AUTH_METHOD says. Otherwise the configured authenticator.
    """
    settings = gw.settings
    if settings.is_production and settings.AUTH_PRODUCTION_ENFORCE_API_KEY:
        validation = gw.issuer.validate_key(extract_api_key(ctx.credentials))
        if not validation.valid:
            _LOG.info("Rejected request without valid API key from %s", ctx.client_ip)
            raise AuthenticationError(
                "API key is required in production mode. "
                "Please provide a valid API key via X-API-Key header."
            )
        owner = validation.key_record.generated_by if validation.key_record else None
        ctx.auth = AuthResult.ok(owner or "api-user", method=AuthMethod.API_KEY)
        return None

    result = gw.authenticator.authenticate(ctx.credentials)
    if not result.success:
        _LOG.info(
            "Authentication failed method=%s ip=%s: %s",
            gw.authenticator.method.value,
            ctx.client_ip,
            result.error,
        )
        return error_response(401, "Authentication failed", result.error)
    ctx.auth = result
    return None


def dispatch_resource(gw: Gateway, ctx: GatewayContext) -> Response | None:
    return resources.dispatch(gw, ctx)


DEFAULT_STAGES: tuple[Stage, ...] = (
    apply_cors,
    answer_preflight,
    enforce_rate_limits,
    route_public,
    enforce_credentials,
    dispatch_resource,
)


class GatewayPipeline:
    def __init__(self, gateway: Gateway, stages: Sequence[Stage] = DEFAULT_STAGES) -> None:
        self.gateway = gateway
        self.stages = tuple(stages)

    def _run(self, ctx: GatewayContext) -> Response:
        for stage in self.stages:
            response = stage(self.gateway, ctx)
            if response is not None:
                return response
        return error_response(404, "Not found")

    def handle(self, request: GatewayRequest) -> Response:
        ctx = GatewayContext.for_request(request, self.gateway.settings)
        try:
            response = self._run(ctx)
        except StorageError as e:
            _LOG.exception("Storage failure on %s %s: %s", request.method, request.path, e)
            response = gateway_error_response(e)
        except GatewayError as e:
            response = gateway_error_response(e)
        except Exception:
            _LOG.exception("Unhandled error on %s %s", request.method, request.path)
            response = error_response(500, "Internal Server Error", "Internal server error")
        for name, value in ctx.response_headers.items():
            response.headers[name] = value
        return response

    def reject(self, origin: str | None, exc: GatewayError) -> Response:
        """Error raised before the request reached the stages, still with CORS headers."""
        _LOG.info("Rejected request before dispatch: %s", exc.message)
        response = gateway_error_response(exc)
        for name, value in self.gateway.cors.headers_for(origin).items():
            response.headers[name] = value
        return response
