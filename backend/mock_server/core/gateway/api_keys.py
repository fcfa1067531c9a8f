"""
API key lifecycle: generate, validate, revoke, list.

Keys are persisted one record per key (``apikey:<key>``) and never deleted;
revocation is a soft flag kept for audit listing. Every mutation (issue,
supersede, usage update, revoke) runs under one issuer-wide lock.

Issuing a key for an identity (metadata["generated_by"]) first deactivates
that identity's active keys, so there is at most one active key per identity.
"""

import logging
import threading
import time
from collections.abc import Callable, Iterable
from typing import Any

from mock_server.core.security import generate_api_key
from mock_server.core.store import KeyValueStore
from mock_server.models import ApiKey
from mock_server.schemas import KeyValidation

_LOG = logging.getLogger(__name__)

_KEY_PREFIX = "apikey:"
SUPERSEDED_REASON = "superseded"
REVOKED_REASON = "revoked"


class ApiKeyIssuer:
    def __init__(
        self,
        store: KeyValueStore,
        *,
        static_keys: Iterable[str] = (),
        allow_static: bool = True,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._static_keys = frozenset(static_keys)
        self._allow_static = allow_static
        self._clock = clock
        self._lock = threading.Lock()

    def _now(self) -> int:
        return int(self._clock())

    def _load(self, key: str) -> ApiKey | None:
        raw = self._store.get(_KEY_PREFIX + key)
        return ApiKey.model_validate(raw) if raw is not None else None

    def _save(self, record: ApiKey) -> None:
        self._store.put(_KEY_PREFIX + record.key, record.model_dump(mode="json"))

    def _all(self) -> list[ApiKey]:
        return [ApiKey.model_validate(v) for _, v in self._store.scan(_KEY_PREFIX)]

    def generate_key(self, metadata: dict[str, Any] | None = None) -> ApiKey:
        meta = {str(k): str(v) for k, v in (metadata or {}).items() if v is not None}
        owner = meta.get("generated_by")
        with self._lock:
            if owner:
                superseded = self._deactivate_owner_keys(owner)
                if superseded:
                    _LOG.info("Superseded %d active key(s) for %s", superseded, owner)
            record = ApiKey(key=generate_api_key(), created_at=self._now(), metadata=meta)
            self._save(record)
        _LOG.info("Issued API key %s... for %s", record.key[:7], owner or "anonymous")
        return record

    def _deactivate_owner_keys(self, owner: str) -> int:
        now = self._now()
        count = 0
        for record in self._all():
            if record.active and record.generated_by == owner:
                record.active = False
                record.revoked_at = now
                record.revoked_reason = SUPERSEDED_REASON
                self._save(record)
                count += 1
        return count

    def validate_key(self, key: str | None) -> KeyValidation:
        """
        Static keys first (only when allowed, i.e. non-production), then
        persisted keys. A persisted hit records usage. Unknown -> not valid.
        """
        if not key:
            return KeyValidation(valid=False)
        if self._allow_static and key in self._static_keys:
            return KeyValidation(
                valid=True,
                key_record=ApiKey(key=key, created_at=0, metadata={"type": "local"}),
                is_static=True,
            )
        with self._lock:
            record = self._load(key)
            if record is None or not record.active:
                return KeyValidation(valid=False)
            record.last_used_at = self._now()
            record.usage_count += 1
            self._save(record)
        return KeyValidation(valid=True, key_record=record)

    def revoke_key(self, key: str, reason: str = REVOKED_REASON) -> bool:
        """False when the key is unknown or already inactive."""
        with self._lock:
            record = self._load(key)
            if record is None or not record.active:
                return False
            record.active = False
            record.revoked_at = self._now()
            record.revoked_reason = reason
            self._save(record)
        _LOG.info("Revoked API key %s...", key[:7])
        return True

    def get_key(self, key: str) -> ApiKey | None:
        return self._load(key)

    def list_keys(self, include_inactive: bool = False) -> list[ApiKey]:
        """Full records, oldest first. Callers mask `key` before exposing it."""
        records = [r for r in self._all() if include_inactive or r.active]
        return sorted(records, key=lambda r: (r.created_at, r.key))
