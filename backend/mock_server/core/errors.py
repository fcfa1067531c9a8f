"""
Per-request error taxonomy.

Raised by collaborators (resource store, plain uploads, storage backends) and
recovered by the gateway pipeline, which turns them into
``{"error": ..., "message": ...}`` responses. Routine outcomes such as
rate-limit denials or upload offset mismatches are result values, not errors.
"""

from typing import Any


class GatewayError(Exception):
    status_code: int = 400
    error: str = "Bad Request"

    def __init__(self, message: str, **extra: Any) -> None:
        super().__init__(message)
        self.message = message
        self.extra = extra

    def to_body(self) -> dict[str, Any]:
        return {"error": self.error, "message": self.message, **self.extra}


class ClientInputError(GatewayError):
    status_code = 400
    error = "Bad Request"


class AuthenticationError(GatewayError):
    status_code = 401
    error = "Unauthorized"


class AuthorizationError(GatewayError):
    status_code = 403
    error = "Forbidden"


class NotFound(GatewayError):
    status_code = 404
    error = "Not found"


class PayloadTooLarge(GatewayError):
    status_code = 413
    error = "Payload Too Large"


class UnsupportedMediaType(GatewayError):
    status_code = 415
    error = "Unsupported Media Type"


class RateLimitExceeded(GatewayError):
    status_code = 429
    error = "Too Many Requests"


class StorageError(GatewayError):
    """Persistence I/O failure. The message is logged, never sent to the caller."""

    status_code = 500
    error = "Internal Server Error"

    def to_body(self) -> dict[str, Any]:
        return {"error": self.error, "message": "Internal server error"}
