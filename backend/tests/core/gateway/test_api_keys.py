"""Unit tests for the API key issuer: generate, supersede, validate, revoke, list."""

from mock_server.core.gateway.api_keys import SUPERSEDED_REASON, ApiKeyIssuer
from mock_server.core.store import MemoryStore
from tests.utils.clock import FakeClock


def test_generate_key_persists_record(store: MemoryStore, clock: FakeClock) -> None:
    issuer = ApiKeyIssuer(store, clock=clock)
    record = issuer.generate_key({"generated_by": "ada@example.com", "n": 1})
    assert record.key.startswith("mk_")
    assert record.active is True
    assert record.created_at == int(clock())
    assert record.metadata == {"generated_by": "ada@example.com", "n": "1"}
    assert issuer.get_key(record.key) == record


def test_new_key_supersedes_owner_keys(store: MemoryStore, clock: FakeClock) -> None:
    """At most one active key per generated_by."""
    issuer = ApiKeyIssuer(store, clock=clock)
    first = issuer.generate_key({"generated_by": "ada"})
    other = issuer.generate_key({"generated_by": "bob"})
    clock.advance(10)
    second = issuer.generate_key({"generated_by": "ada"})

    old = issuer.get_key(first.key)
    assert old is not None
    assert old.active is False
    assert old.revoked_reason == SUPERSEDED_REASON
    assert old.revoked_at == int(clock())
    assert issuer.validate_key(first.key).valid is False
    assert issuer.validate_key(second.key).valid is True
    assert issuer.validate_key(other.key).valid is True


def test_validate_records_usage(store: MemoryStore, clock: FakeClock) -> None:
    issuer = ApiKeyIssuer(store, clock=clock)
    record = issuer.generate_key()
    clock.advance(5)
    issuer.validate_key(record.key)
    issuer.validate_key(record.key)
    stored = issuer.get_key(record.key)
    assert stored is not None
    assert stored.usage_count == 2
    assert stored.last_used_at == int(clock())


def test_static_keys_only_when_allowed(store: MemoryStore) -> None:
    local = ApiKeyIssuer(store, static_keys=["demo-key-456"], allow_static=True)
    validation = local.validate_key("demo-key-456")
    assert validation.valid is True
    assert validation.is_static is True

    production = ApiKeyIssuer(store, static_keys=["demo-key-456"], allow_static=False)
    assert production.validate_key("demo-key-456").valid is False


def test_validate_unknown_or_missing(store: MemoryStore) -> None:
    issuer = ApiKeyIssuer(store)
    assert issuer.validate_key(None).valid is False
    assert issuer.validate_key("").valid is False
    assert issuer.validate_key("mk_unknown").valid is False


def test_revoke_is_idempotent(store: MemoryStore, clock: FakeClock) -> None:
    issuer = ApiKeyIssuer(store, clock=clock)
    record = issuer.generate_key()
    assert issuer.revoke_key(record.key) is True
    assert issuer.revoke_key(record.key) is False
    assert issuer.revoke_key("mk_unknown") is False
    revoked = issuer.get_key(record.key)
    assert revoked is not None
    assert revoked.revoked_reason == "revoked"
    assert issuer.validate_key(record.key).valid is False


def test_list_keys_active_and_inactive(store: MemoryStore, clock: FakeClock) -> None:
    issuer = ApiKeyIssuer(store, clock=clock)
    a = issuer.generate_key()
    clock.advance(1)
    b = issuer.generate_key()
    issuer.revoke_key(a.key)
    assert [r.key for r in issuer.list_keys()] == [b.key]
    assert [r.key for r in issuer.list_keys(include_inactive=True)] == [a.key, b.key]
