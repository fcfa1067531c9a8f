"""
Request/response bodies and ephemeral per-request results.
"""

from typing import Any

from pydantic import BaseModel, Field

from mock_server.models import ApiKey, AuthMethod, RateLimitClassEnum


# ---------------------------------------------------------------------------
# Per-request results (never persisted)
# ---------------------------------------------------------------------------


class RateLimitResult(BaseModel):
    allowed: bool
    remaining: int | None = None
    reset_at: int | None = None
    limit: int | None = None
    limit_class: RateLimitClassEnum | None = None

    def retry_after(self, now: int) -> int:
        if self.reset_at is None:
            return 0
        return max(0, self.reset_at - now)


class AuthResult(BaseModel):
    success: bool
    identity: str = "anonymous"
    error: str | None = None
    claims: dict[str, Any] | None = None
    method: AuthMethod | None = None

    @classmethod
    def ok(
        cls,
        identity: str,
        *,
        method: AuthMethod | None = None,
        claims: dict[str, Any] | None = None,
    ) -> "AuthResult":
        return cls(success=True, identity=identity, claims=claims, method=method)

    @classmethod
    def fail(cls, error: str, *, method: AuthMethod | None = None) -> "AuthResult":
        return cls(success=False, identity="", error=error, method=method)


class KeyValidation(BaseModel):
    valid: bool
    key_record: ApiKey | None = None
    is_static: bool = False


# ---------------------------------------------------------------------------
# Request bodies
# ---------------------------------------------------------------------------


class LoginIn(BaseModel):
    username: str
    password: str


class OAuthTokenIn(BaseModel):
    client_id: str | None = None
    client_secret: str | None = None
    grant_type: str | None = None


class GenerateKeyIn(BaseModel):
    metadata: dict[str, Any] = Field(default_factory=dict)


class RevokeKeyIn(BaseModel):
    api_key: str


# ---------------------------------------------------------------------------
# Response bodies
# ---------------------------------------------------------------------------


class OAuthTokenResponse(BaseModel):
    access_token: str
    token_type: str = "Bearer"
    expires_in: int


class ApiKeyPublic(BaseModel):
    """Listing view: the secret is replaced by a masked form."""

    key_masked: str
    created_at: int
    active: bool
    last_used_at: int | None = None
    usage_count: int = 0
    revoked_at: int | None = None
    revoked_reason: str | None = None
    metadata: dict[str, str] = Field(default_factory=dict)
