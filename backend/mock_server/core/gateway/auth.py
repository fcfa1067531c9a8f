"""
Gateway authentication: one Authenticator per AuthMethod.

build_authenticator() picks the implementation from a registry keyed by the
AuthMethod enum; adding a method means adding a class and a registry entry.
All authenticators return an AuthResult and never raise for bad credentials.
The only persisted side effect is API-key usage accounting (via the issuer).
"""

import re
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field

from mock_server.core.config import Settings
from mock_server.core.gateway.api_keys import ApiKeyIssuer
from mock_server.core.gateway.headers import get_header, validate_authorization_header
from mock_server.core.gateway.sessions import SessionStore
from mock_server.core.security import TokenCodec, decode_basic_credentials, secrets_equal
from mock_server.models import AuthMethod
from mock_server.schemas import AuthResult

_BASIC_RE = re.compile(r"^Basic\s+(.*)$", re.IGNORECASE)
_BEARER_RE = re.compile(r"^Bearer\s+(.*)$", re.IGNORECASE)

OAUTH2_MIN_TOKEN_LENGTH = 10


@dataclass(frozen=True)
class Credentials:
    """What an authenticator may look at for one request."""

    headers: Mapping[str, str] = field(default_factory=dict)
    client_cert: str | None = None
    client_dn: str | None = None
    session_id: str | None = None

    def header(self, name: str) -> str | None:
        return get_header(self.headers, name)


def extract_bearer(credentials: Credentials) -> tuple[str | None, str | None]:
    """(token, error). Error texts match the legacy server's messages."""
    auth = credentials.header("Authorization")
    check = validate_authorization_header(auth)
    if not check.valid:
        return None, check.error
    m = _BEARER_RE.match(auth.strip())
    if not m:
        return None, "Invalid Bearer token format. Expected: Bearer <token>"
    token = m.group(1).strip()
    if not token:
        return None, "Empty token in Authorization header"
    return token, None


def extract_api_key(credentials: Credentials) -> str | None:
    return credentials.header("X-API-Key")


class Authenticator(ABC):
    method: AuthMethod

    @abstractmethod
    def authenticate(self, credentials: Credentials) -> AuthResult: ...

    def _fail(self, error: str) -> AuthResult:
        return AuthResult.fail(error, method=self.method)


class NoneAuthenticator(Authenticator):
    method = AuthMethod.NONE

    def authenticate(self, credentials: Credentials) -> AuthResult:
        return AuthResult.ok("anonymous", method=self.method)


class BasicAuthenticator(Authenticator):
    method = AuthMethod.BASIC

    def __init__(self, users: Mapping[str, str]) -> None:
        self._users = dict(users)

    def authenticate(self, credentials: Credentials) -> AuthResult:
        auth = credentials.header("Authorization")
        check = validate_authorization_header(auth)
        if not check.valid:
            return self._fail(check.error or "Authorization header missing")
        m = _BASIC_RE.match(auth.strip())
        if not m:
            return self._fail(
                "Invalid Basic Auth format. Expected: Basic <base64-credentials>"
            )
        encoded = m.group(1).strip()
        if not encoded:
            return self._fail("Empty credentials in Authorization header")
        decoded = decode_basic_credentials(encoded)
        if decoded is None:
            return self._fail("Invalid base64 encoding in Authorization header")
        if ":" not in decoded:
            return self._fail("Invalid credentials format. Expected username:password")
        username, password = decoded.split(":", 1)
        expected = self._users.get(username)
        if expected is not None and secrets_equal(expected, password):
            return AuthResult.ok(username, method=self.method)
        return self._fail("Invalid credentials")


class ApiKeyAuthenticator(Authenticator):
    """Configured static keys, then keys persisted by the issuer."""

    method = AuthMethod.API_KEY

    def __init__(self, static_keys: list[str], issuer: ApiKeyIssuer) -> None:
        self._static_keys = frozenset(static_keys)
        self._issuer = issuer

    def authenticate(self, credentials: Credentials) -> AuthResult:
        key = extract_api_key(credentials)
        if not key:
            return self._fail("API key missing")
        if key in self._static_keys:
            return AuthResult.ok("api-user", method=self.method)
        validation = self._issuer.validate_key(key)
        if validation.valid and validation.key_record is not None:
            owner = validation.key_record.generated_by or "api-user"
            return AuthResult.ok(owner, method=self.method)
        return self._fail("Invalid API key")


class BearerTokenAuthenticator(Authenticator):
    """
    JWT bearer tokens. With `require_issuer` (OpenID Connect) the payload
    must also carry an `iss` claim.
    """

    method = AuthMethod.JWT

    def __init__(
        self,
        tokens: TokenCodec,
        *,
        method: AuthMethod = AuthMethod.JWT,
        require_issuer: bool = False,
    ) -> None:
        self._tokens = tokens
        self.method = method
        self._require_issuer = require_issuer

    def authenticate(self, credentials: Credentials) -> AuthResult:
        token, error = extract_bearer(credentials)
        if token is None:
            return self._fail(error or "Authorization header missing")
        payload = self._tokens.decode(token)
        if self._require_issuer:
            if payload is None or not payload.get("iss"):
                return self._fail("Invalid OpenID Connect token")
            return AuthResult.ok(
                str(payload.get("sub") or "openid-user"), method=self.method, claims=payload
            )
        if payload is None:
            return self._fail("Invalid or expired JWT token")
        return AuthResult.ok(
            str(payload.get("sub") or "jwt-user"), method=self.method, claims=payload
        )


class OAuth2Authenticator(Authenticator):
    """Resource access with an OAuth2 access token; no introspection, length check only."""

    method = AuthMethod.OAUTH2

    def authenticate(self, credentials: Credentials) -> AuthResult:
        token, error = extract_bearer(credentials)
        if token is None:
            return self._fail(error or "Authorization header missing")
        if len(token) > OAUTH2_MIN_TOKEN_LENGTH:
            return AuthResult.ok("oauth2-user", method=self.method)
        return self._fail("Invalid OAuth2 token")


class MutualTlsAuthenticator(Authenticator):
    method = AuthMethod.MTLS

    def authenticate(self, credentials: Credentials) -> AuthResult:
        if credentials.client_cert:
            return AuthResult.ok(
                "mtls-user",
                method=self.method,
                claims={"cert_dn": credentials.client_dn or "unknown"},
            )
        return self._fail("Client certificate required")


class GoogleAuthenticator(Authenticator):
    """
    Bearer token issued by a trusted Google issuer (or by this server after a
    Google login), or a browser session flagged by the OAuth callback.
    """

    method = AuthMethod.GOOGLE

    def __init__(
        self,
        tokens: TokenCodec,
        sessions: SessionStore,
        trusted_issuers: list[str],
    ) -> None:
        self._tokens = tokens
        self._sessions = sessions
        self._trusted_issuers = list(trusted_issuers)

    def _trusted(self, issuer: object) -> bool:
        return isinstance(issuer, str) and any(t in issuer for t in self._trusted_issuers)

    def authenticate(self, credentials: Credentials) -> AuthResult:
        token, _ = extract_bearer(credentials)
        if token is not None:
            payload = self._tokens.decode(token)
            if payload is not None and self._trusted(payload.get("iss")):
                identity = payload.get("email") or payload.get("sub") or "google-user"
                return AuthResult.ok(str(identity), method=self.method, claims=payload)

        session = self._sessions.get(credentials.session_id)
        if session is not None and session.data.get("google_authenticated") is True:
            return AuthResult.ok(
                str(session.data.get("google_email") or "google-user"),
                method=self.method,
                claims={
                    "email": session.data.get("google_email"),
                    "name": session.data.get("google_name"),
                    "picture": session.data.get("google_picture"),
                },
            )
        return self._fail(
            "Google authentication required. Please login with Google first."
        )


_REGISTRY: dict[AuthMethod, Callable[..., Authenticator]] = {
    AuthMethod.NONE: lambda **_: NoneAuthenticator(),
    AuthMethod.BASIC: lambda settings, **_: BasicAuthenticator(settings.BASIC_AUTH_USERS),
    AuthMethod.API_KEY: lambda settings, issuer, **_: ApiKeyAuthenticator(
        settings.STATIC_API_KEYS, issuer
    ),
    AuthMethod.JWT: lambda tokens, **_: BearerTokenAuthenticator(tokens),
    AuthMethod.OPENID: lambda tokens, **_: BearerTokenAuthenticator(
        tokens, method=AuthMethod.OPENID, require_issuer=True
    ),
    AuthMethod.OAUTH2: lambda **_: OAuth2Authenticator(),
    AuthMethod.MTLS: lambda **_: MutualTlsAuthenticator(),
    AuthMethod.GOOGLE: lambda settings, tokens, sessions, **_: GoogleAuthenticator(
        tokens, sessions, settings.GOOGLE_TRUSTED_ISSUERS
    ),
}


def build_authenticator(
    method: AuthMethod,
    *,
    settings: Settings,
    tokens: TokenCodec,
    issuer: ApiKeyIssuer,
    sessions: SessionStore,
) -> Authenticator:
    """Authenticator for `method`; AUTH_ENABLED=False always yields `none`."""
    if not settings.AUTH_ENABLED:
        method = AuthMethod.NONE
    factory = _REGISTRY[AuthMethod(method)]
    return factory(settings=settings, tokens=tokens, issuer=issuer, sessions=sessions)
