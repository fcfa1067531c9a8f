"""
Per-request state threaded through the pipeline stages and handlers.
"""

from dataclasses import dataclass, field

from mock_server.core.config import Settings
from mock_server.core.gateway.auth import Credentials
from mock_server.core.gateway.request_response import GatewayRequest
from mock_server.schemas import AuthResult


def client_ip(request: GatewayRequest, settings: Settings) -> str:
    """
    Production: socket address only. Local: first X-Forwarded-For entry,
    then Client-IP, then the socket address.
    """
    if not settings.is_production:
        forwarded = request.header("X-Forwarded-For")
        if forwarded:
            first = forwarded.split(",")[0].strip()
            if first:
                return first
        direct = request.header("Client-IP")
        if direct and direct.strip():
            return direct.strip()
    return request.client_host or "unknown"


@dataclass
class GatewayContext:
    request: GatewayRequest
    client_ip: str
    session_id: str | None = None
    auth: AuthResult | None = None
    # Merged onto whatever response the pipeline returns (CORS).
    response_headers: dict[str, str] = field(default_factory=dict)

    @classmethod
    def for_request(cls, request: GatewayRequest, settings: Settings) -> "GatewayContext":
        return cls(
            request=request,
            client_ip=client_ip(request, settings),
            session_id=request.cookies.get(settings.SESSION_COOKIE_NAME),
        )

    @property
    def credentials(self) -> Credentials:
        return Credentials(
            headers=self.request.headers,
            client_cert=self.request.client_cert,
            client_dn=self.request.client_dn,
            session_id=self.session_id,
        )
