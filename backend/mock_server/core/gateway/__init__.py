"""
Gateway: cors, ratelimit, auth, api_keys, sessions, headers, pipeline.
"""

from mock_server.core.gateway.api_keys import ApiKeyIssuer
from mock_server.core.gateway.auth import Authenticator, Credentials, build_authenticator
from mock_server.core.gateway.context import GatewayContext, client_ip
from mock_server.core.gateway.cors import CorsPolicy
from mock_server.core.gateway.pipeline import DEFAULT_STAGES, GatewayPipeline
from mock_server.core.gateway.ratelimit import RateLimiter
from mock_server.core.gateway.request_response import (
    GatewayRequest,
    read_gateway_request,
)
from mock_server.core.gateway.services import Gateway, build_gateway
from mock_server.core.gateway.sessions import SessionStore

__all__ = [
    "DEFAULT_STAGES",
    "ApiKeyIssuer",
    "Authenticator",
    "CorsPolicy",
    "Credentials",
    "Gateway",
    "GatewayContext",
    "GatewayPipeline",
    "GatewayRequest",
    "RateLimiter",
    "SessionStore",
    "build_authenticator",
    "build_gateway",
    "client_ip",
    "read_gateway_request",
]
