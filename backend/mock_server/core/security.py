import base64
import binascii
import hmac
import logging
import secrets
import time
from collections.abc import Callable
from typing import Any

import jwt
from jwt.exceptions import InvalidTokenError

_logger = logging.getLogger(__name__)


API_KEY_PREFIX = "mk_"

# ---------------------------------------------------------------------------
# Bearer tokens (JWT)
# ---------------------------------------------------------------------------


class TokenCodec:
    """
    Issues and decodes bearer tokens.

    With ``verify_signature=False`` (the default, matching legacy clients),
    decode only checks that the token has three segments, that the payload
    is a JSON object and that ``exp`` is not in the past. With
    ``verify_signature=True`` the HMAC signature is recomputed and compared
    in constant time by PyJWT.
    """

    def __init__(
        self,
        secret: str,
        *,
        algorithm: str = "HS256",
        expiration: int = 3600,
        issuer: str = "mock-server",
        verify_signature: bool = False,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.secret = secret
        self.algorithm = algorithm
        self.expiration = expiration
        self.issuer = issuer
        self.verify_signature = verify_signature
        self._clock = clock

    def issue(self, subject: str, claims: dict[str, Any] | None = None) -> str:
        """Default claims are sub/iat/exp/iss; `claims` override them."""
        now = int(self._clock())
        payload: dict[str, Any] = {
            "sub": subject,
            "iat": now,
            "exp": now + self.expiration,
            "iss": self.issuer,
        }
        payload.update(claims or {})
        return jwt.encode(
            payload, self.secret, algorithm=self.algorithm, headers={"typ": "JWT"}
        )

    def decode(self, token: str) -> dict[str, Any] | None:
        """Payload dict, or None if malformed, expired or (when verifying) forged."""
        if token.count(".") != 2:
            return None
        # exp is checked against our own clock below, not PyJWT's wall clock.
        options = {
            "verify_signature": self.verify_signature,
            "verify_exp": False,
            "verify_aud": False,
            "verify_iat": False,
            "verify_nbf": False,
        }
        try:
            payload = jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                options=options,
            )
        except InvalidTokenError as e:
            _logger.debug("Rejected bearer token: %s", e)
            return None
        exp = payload.get("exp")
        if exp is None:
            return payload
        if isinstance(exp, bool) or not isinstance(exp, (int, float)):
            _logger.debug("Rejected bearer token: non-numeric exp")
            return None
        if exp < self._clock():
            _logger.debug("Rejected bearer token: expired")
            return None
        return payload


# ---------------------------------------------------------------------------
# Basic credentials
# ---------------------------------------------------------------------------


def decode_basic_credentials(encoded: str) -> str | None:
    """Strict base64 decode of a Basic auth payload; None if not valid base64/UTF-8."""
    try:
        return base64.b64decode(encoded, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return None


def secrets_equal(a: str, b: str) -> bool:
    return hmac.compare_digest(a.encode("utf-8"), b.encode("utf-8"))


# ---------------------------------------------------------------------------
# API keys
# ---------------------------------------------------------------------------


def generate_api_key() -> str:
    """'mk_' + 64 hex chars (256 bits)."""
    return API_KEY_PREFIX + secrets.token_hex(32)


def mask_key(key: str) -> str:
    """First 7 and last 4 characters, e.g. 'mk_1a2b...9f0e'."""
    return f"{key[:7]}...{key[-4:]}"
