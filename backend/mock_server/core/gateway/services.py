"""
Gateway services: every collaborator the pipeline and handlers use, built
once from Settings and shared across requests.
"""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

import httpx

from mock_server.core.config import Settings
from mock_server.core.gateway.api_keys import ApiKeyIssuer
from mock_server.core.gateway.auth import (
    Authenticator,
    GoogleAuthenticator,
    build_authenticator,
)
from mock_server.core.gateway.cors import CorsPolicy
from mock_server.core.gateway.ratelimit import RateLimiter
from mock_server.core.gateway.sessions import SessionStore
from mock_server.core.resources import ResourceStore
from mock_server.core.security import TokenCodec
from mock_server.core.store import KeyValueStore, build_store
from mock_server.core.uploads.files import FileUploads
from mock_server.core.uploads.tus import UploadEngine

_LOG = logging.getLogger(__name__)


@dataclass
class Gateway:
    settings: Settings
    store: KeyValueStore
    rate_limiter: RateLimiter
    tokens: TokenCodec
    sessions: SessionStore
    issuer: ApiKeyIssuer
    authenticator: Authenticator
    google_auth: GoogleAuthenticator
    uploads: UploadEngine
    files: FileUploads
    resources: ResourceStore
    cors: CorsPolicy
    clock: Callable[[], float] = time.time
    # Outbound calls (Google token exchange); tests pass httpx.MockTransport.
    http_transport: httpx.BaseTransport | None = None

    def now(self) -> int:
        return int(self.clock())


def build_gateway(
    settings: Settings,
    *,
    store: KeyValueStore | None = None,
    clock: Callable[[], float] = time.time,
    http_transport: httpx.BaseTransport | None = None,
) -> Gateway:
    store = store if store is not None else build_store(settings)
    tokens = TokenCodec(
        settings.JWT_SECRET,
        algorithm=settings.JWT_ALGORITHM,
        expiration=settings.JWT_EXPIRATION,
        issuer=settings.JWT_ISSUER,
        verify_signature=settings.JWT_VERIFY_SIGNATURE,
        clock=clock,
    )
    sessions = SessionStore(store, ttl_seconds=settings.SESSION_TTL_SECONDS, clock=clock)
    issuer = ApiKeyIssuer(
        store,
        static_keys=settings.STATIC_API_KEYS,
        allow_static=not settings.is_production,
        clock=clock,
    )
    gateway = Gateway(
        settings=settings,
        store=store,
        rate_limiter=RateLimiter(
            store,
            ip_limit=settings.RATE_LIMIT_IP,
            global_limit=settings.RATE_LIMIT_GLOBAL,
            endpoint_limits=settings.RATE_LIMIT_ENDPOINTS,
            clock=clock,
        ),
        tokens=tokens,
        sessions=sessions,
        issuer=issuer,
        authenticator=build_authenticator(
            settings.AUTH_METHOD,
            settings=settings,
            tokens=tokens,
            issuer=issuer,
            sessions=sessions,
        ),
        google_auth=GoogleAuthenticator(
            tokens, sessions, settings.GOOGLE_TRUSTED_ISSUERS
        ),
        uploads=UploadEngine(
            store, settings.tus_dir, max_size=settings.tus_max_size, clock=clock
        ),
        files=FileUploads(settings.uploads_dir),
        resources=ResourceStore(settings.data_dir),
        cors=CorsPolicy(
            enabled=settings.CORS_ENABLED,
            origins=list(settings.CORS_ORIGINS),
            methods=list(settings.CORS_METHODS),
            headers=list(settings.CORS_HEADERS),
            max_age=settings.CORS_MAX_AGE,
        ),
        clock=clock,
        http_transport=http_transport,
    )
    _LOG.info(
        "Gateway ready: environment=%s auth=%s store=%s",
        settings.ENVIRONMENT.value,
        gateway.authenticator.method.value,
        type(store).__name__,
    )
    return gateway
