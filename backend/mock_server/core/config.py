from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from mock_server.models import AuthMethod, EnvironmentEnum, StoreBackendEnum


class WindowLimit(BaseModel):
    enabled: bool = True
    max_requests: int = 100
    window: int = 60  # seconds


class EndpointLimit(BaseModel):
    max_requests: int
    window: int = 60


def _default_endpoint_limits() -> dict[str, EndpointLimit]:
    return {
        "/upload": EndpointLimit(max_requests=10, window=60),
        "/login": EndpointLimit(max_requests=5, window=300),
    }


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_ignore_empty=True,
        extra="ignore",
    )

    PROJECT_NAME: str = "Mock Server"
    # "production" turns on API key enforcement, socket-only client IPs and
    # the stricter upload ceilings.
    ENVIRONMENT: EnvironmentEnum = EnvironmentEnum.LOCAL
    LOG_LEVEL: str = "INFO"
    SENTRY_DSN: str | None = None

    # Storage
    STORAGE_DIR: Path = Path("./storage")
    STORE_BACKEND: StoreBackendEnum = StoreBackendEnum.FILE
    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_KEY_PREFIX: str = "mock:"

    # Plain upload ceilings (bytes)
    MAX_UPLOAD_SIZE: int = 50 * 1024 * 1024
    PRODUCTION_MAX_UPLOAD_SIZE: int = 1 * 1024
    # Bodies outside /upload* (CRUD, login, key management)
    MAX_REQUEST_BODY_SIZE: int = 10 * 1024 * 1024

    # Rate limiting (fixed window)
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_IP: WindowLimit = WindowLimit(max_requests=100, window=60)
    RATE_LIMIT_GLOBAL: WindowLimit = WindowLimit(max_requests=1000, window=60)
    RATE_LIMIT_ENDPOINTS: dict[str, EndpointLimit] = Field(
        default_factory=_default_endpoint_limits
    )
    RATE_LIMIT_SWEEP_GRACE_SECONDS: int = 3600

    # Authentication
    AUTH_ENABLED: bool = True
    AUTH_METHOD: AuthMethod = AuthMethod.NONE
    AUTH_PRODUCTION_ENFORCE_API_KEY: bool = True
    BASIC_AUTH_USERS: dict[str, str] = {"admin": "admin123", "user": "password"}
    STATIC_API_KEYS: list[str] = ["test-api-key-123", "demo-key-456", "dev-key-789"]
    API_KEY_REQUIRE_AUTHENTICATION: bool = True

    # Bearer tokens
    JWT_SECRET: str = "your-secret-key-change-in-production"
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRATION: int = 3600
    JWT_ISSUER: str = "mock-server"
    # False keeps the legacy behaviour: structure + expiry only.
    JWT_VERIFY_SIGNATURE: bool = False

    # OAuth 2.0 client credentials
    OAUTH2_CLIENT_ID: str = "mock-client-id"
    OAUTH2_CLIENT_SECRET: str = "mock-client-secret"

    # Google OAuth 2.0
    GOOGLE_CLIENT_ID: str = ""
    GOOGLE_CLIENT_SECRET: str = ""
    GOOGLE_REDIRECT_URI: str = "http://localhost:8080/auth/google/callback"
    GOOGLE_AUTH_URI: str = "https://accounts.google.com/o/oauth2/v2/auth"
    GOOGLE_TOKEN_URI: str = "https://oauth2.googleapis.com/token"
    GOOGLE_USER_INFO_URI: str = "https://www.googleapis.com/oauth2/v2/userinfo"
    GOOGLE_SCOPES: list[str] = ["openid", "email", "profile"]
    GOOGLE_TRUSTED_ISSUERS: list[str] = ["accounts.google.com", "mock-server"]
    GOOGLE_HTTP_TIMEOUT: float = 10.0

    # mTLS: certificate forwarded by the TLS-terminating proxy
    MTLS_CLIENT_CERT_HEADER: str = "X-SSL-Client-Cert"
    MTLS_CLIENT_DN_HEADER: str = "X-SSL-Client-S-DN"

    # Browser sessions
    SESSION_COOKIE_NAME: str = "mock_session"
    SESSION_TTL_SECONDS: int = 86400

    # TUS resumable uploads
    TUS_ENABLED: bool = True
    TUS_MAX_SIZE: int = 100 * 1024 * 1024
    UPLOAD_SESSION_TTL_SECONDS: int = 86400

    # CORS
    CORS_ENABLED: bool = True
    CORS_ORIGINS: list[str] = ["*"]
    CORS_METHODS: list[str] = ["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"]
    CORS_HEADERS: list[str] = [
        "Content-Type",
        "Authorization",
        "X-API-Key",
        "Upload-Offset",
        "Upload-Length",
        "Tus-Resumable",
    ]
    CORS_MAX_AGE: int = 86400

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == EnvironmentEnum.PRODUCTION

    @property
    def data_dir(self) -> Path:
        return self.STORAGE_DIR / "data"

    @property
    def uploads_dir(self) -> Path:
        return self.STORAGE_DIR / "uploads"

    @property
    def store_dir(self) -> Path:
        return self.STORAGE_DIR / "store"

    @property
    def tus_dir(self) -> Path:
        """Backing files of resumable sessions; never written by plain uploads."""
        return self.STORAGE_DIR / "tus"

    @property
    def max_upload_size(self) -> int:
        """Plain-upload ceiling for the current mode."""
        if self.is_production:
            return self.PRODUCTION_MAX_UPLOAD_SIZE
        return self.MAX_UPLOAD_SIZE

    @property
    def tus_max_size(self) -> int:
        """Resumable-upload ceiling; production also honours the plain ceiling."""
        if self.is_production:
            return min(self.TUS_MAX_SIZE, self.PRODUCTION_MAX_UPLOAD_SIZE)
        return self.TUS_MAX_SIZE

    def safe_dump(self) -> dict[str, Any]:
        """Settings without secrets, for startup logging."""
        return self.model_dump(
            exclude={
                "JWT_SECRET",
                "OAUTH2_CLIENT_SECRET",
                "GOOGLE_CLIENT_SECRET",
                "BASIC_AUTH_USERS",
                "STATIC_API_KEYS",
                "SENTRY_DSN",
            }
        )


settings = Settings()  # type: ignore
