"""
Persisted records: rate counters, API keys, upload sessions, browser sessions.

Each record is stored as a JSON object in the key/value store
(mock_server.core.store) and owned by exactly one component:
RateLimiter, ApiKeyIssuer, UploadEngine, SessionStore.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class EnvironmentEnum(str, Enum):
    LOCAL = "local"
    PRODUCTION = "production"


class StoreBackendEnum(str, Enum):
    FILE = "file"
    MEMORY = "memory"
    REDIS = "redis"


class AuthMethod(str, Enum):
    NONE = "none"
    BASIC = "basic"
    API_KEY = "api_key"
    JWT = "jwt"
    OAUTH2 = "oauth2"
    MTLS = "mtls"
    OPENID = "openid"
    GOOGLE = "google"


class RateLimitClassEnum(str, Enum):
    IP = "ip"
    GLOBAL = "global"
    ENDPOINT = "endpoint"


class RateCounter(BaseModel):
    """Fixed-window counter for one (identity, class) pair."""

    identity: str
    limit_class: RateLimitClassEnum
    window_start: int
    window_seconds: int
    count: int = 0
    limit: int

    @property
    def reset_at(self) -> int:
        return self.window_start + self.window_seconds

    def is_expired(self, now: int) -> bool:
        return now >= self.reset_at


class ApiKey(BaseModel):
    """Issued API key. Never deleted; revocation flips `active`."""

    key: str
    created_at: int
    active: bool = True
    last_used_at: int | None = None
    usage_count: int = 0
    revoked_at: int | None = None
    revoked_reason: str | None = None
    metadata: dict[str, str] = Field(default_factory=dict)

    @property
    def generated_by(self) -> str | None:
        return self.metadata.get("generated_by")


class UploadSession(BaseModel):
    """Resumable upload: `offset` bytes of `total_length` received so far."""

    id: str
    total_length: int
    offset: int = 0
    created_at: int
    client_metadata: str = ""
    max_size: int | None = None

    @property
    def is_complete(self) -> bool:
        return self.offset == self.total_length


class BrowserSession(BaseModel):
    """Cookie-keyed session data (Google login flags, pending OAuth state)."""

    id: str
    created_at: int
    data: dict[str, Any] = Field(default_factory=dict)
