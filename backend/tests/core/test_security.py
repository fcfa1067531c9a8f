"""Unit tests for bearer tokens, Basic credential decoding and API key helpers."""

import base64
import json

import jwt

from mock_server.core.security import (
    API_KEY_PREFIX,
    TokenCodec,
    decode_basic_credentials,
    generate_api_key,
    mask_key,
    secrets_equal,
)
from tests.utils.clock import FakeClock


def _codec(clock: FakeClock, **kwargs: object) -> TokenCodec:
    return TokenCodec("test-secret", expiration=3600, clock=clock, **kwargs)  # type: ignore[arg-type]


def _segment(data: dict) -> str:
    raw = json.dumps(data).encode()
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode()


def test_issue_default_claims() -> None:
    """Issued tokens carry sub/iat/exp/iss and have three segments."""
    clock = FakeClock(1_000_000)
    token = _codec(clock).issue("alice", {"role": "user"})
    assert token.count(".") == 2
    payload = jwt.decode(token, options={"verify_signature": False, "verify_exp": False})
    assert payload["sub"] == "alice"
    assert payload["iat"] == 1_000_000
    assert payload["exp"] == 1_000_000 + 3600
    assert payload["iss"] == "mock-server"
    assert payload["role"] == "user"


def test_caller_claims_override_defaults() -> None:
    """Caller-supplied iss replaces the default issuer."""
    clock = FakeClock(1_000_000)
    codec = _codec(clock)
    token = codec.issue("bob", {"iss": "accounts.google.com"})
    payload = codec.decode(token)
    assert payload is not None
    assert payload["iss"] == "accounts.google.com"


def test_decode_expired_token_fails() -> None:
    """A token whose exp is in the past never decodes."""
    clock = FakeClock(1_700_000_000)
    codec = _codec(clock)
    token = codec.issue("alice")
    clock.advance(3599)
    assert codec.decode(token) is not None
    clock.advance(2)
    assert codec.decode(token) is None


def test_decode_malformed_token() -> None:
    """Wrong segment count or undecodable payload -> None."""
    codec = TokenCodec("s")
    assert codec.decode("not-a-token") is None
    assert codec.decode("a.b") is None
    assert codec.decode("a.b.c.d") is None
    assert codec.decode("!!!.###.$$$") is None


def test_unverified_decode_accepts_foreign_signature() -> None:
    """Default mode checks structure and expiry only, not the signature."""
    token = jwt.encode({"sub": "x", "iss": "other"}, "another-secret", algorithm="HS256")
    payload = TokenCodec("test-secret", clock=FakeClock()).decode(token)
    assert payload is not None
    assert payload["sub"] == "x"


def test_verified_decode_rejects_foreign_signature() -> None:
    """JWT_VERIFY_SIGNATURE=True rejects tokens signed with another secret."""
    token = jwt.encode({"sub": "x"}, "another-secret", algorithm="HS256")
    codec = TokenCodec("test-secret", verify_signature=True)
    assert codec.decode(token) is None
    own = codec.issue("x")
    assert codec.decode(own) is not None


def test_unsigned_structure_with_future_exp_decodes() -> None:
    """A hand-built token with a garbage signature decodes in legacy mode."""
    header = _segment({"alg": "HS256", "typ": "JWT"})
    payload = _segment({"sub": "legacy", "exp": 4_000_000_000})
    token = f"{header}.{payload}.c2lnbmF0dXJl"
    decoded = TokenCodec("s").decode(token)
    assert decoded is not None
    assert decoded["sub"] == "legacy"


def test_decode_basic_credentials() -> None:
    """Valid base64 decodes; invalid base64 or non-UTF-8 -> None."""
    assert decode_basic_credentials(base64.b64encode(b"admin:admin123").decode()) == "admin:admin123"
    assert decode_basic_credentials("***") is None
    assert decode_basic_credentials(base64.b64encode(b"\xff\xfe").decode()) is None


def test_secrets_equal() -> None:
    assert secrets_equal("admin123", "admin123") is True
    assert secrets_equal("admin123", "admin124") is False


def test_generate_api_key_format() -> None:
    """'mk_' + 64 lowercase hex characters, unique per call."""
    key = generate_api_key()
    assert key.startswith(API_KEY_PREFIX)
    body = key[len(API_KEY_PREFIX):]
    assert len(body) == 64
    int(body, 16)
    assert generate_api_key() != key


def test_mask_key() -> None:
    """Keeps the first 7 and last 4 characters."""
    key = "mk_1234567890abcdef"
    assert mask_key(key) == "mk_1234...cdef"
