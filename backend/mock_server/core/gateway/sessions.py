"""
Browser sessions keyed by a cookie value.

Holds the Google login flags and the pending OAuth state. Injected into the
Google authenticator and the OAuth glue instead of ambient process state.
"""

import logging
import secrets
import time
from collections.abc import Callable
from typing import Any

from mock_server.core.store import KeyValueStore
from mock_server.models import BrowserSession

_LOG = logging.getLogger(__name__)

_KEY_PREFIX = "session:"

GOOGLE_SESSION_FIELDS = (
    "google_authenticated",
    "google_email",
    "google_name",
    "google_picture",
    "google_id",
)


class SessionStore:
    def __init__(
        self,
        store: KeyValueStore,
        *,
        ttl_seconds: int = 86400,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._ttl = ttl_seconds
        self._clock = clock

    @staticmethod
    def new_id() -> str:
        return secrets.token_urlsafe(32)

    def get(self, session_id: str | None) -> BrowserSession | None:
        """Session or None if unknown/expired. Expired sessions are removed."""
        if not session_id:
            return None
        raw = self._store.get(_KEY_PREFIX + session_id)
        if raw is None:
            return None
        session = BrowserSession.model_validate(raw)
        if int(self._clock()) - session.created_at >= self._ttl:
            self._store.delete(_KEY_PREFIX + session_id)
            return None
        return session

    def get_or_create(self, session_id: str | None) -> BrowserSession:
        session = self.get(session_id)
        if session is None:
            session = BrowserSession(id=self.new_id(), created_at=int(self._clock()))
            self.save(session)
        return session

    def save(self, session: BrowserSession) -> None:
        self._store.put(_KEY_PREFIX + session.id, session.model_dump(mode="json"))

    def update(self, session: BrowserSession, **values: Any) -> BrowserSession:
        session.data.update(values)
        self.save(session)
        return session

    def pop(self, session: BrowserSession, *names: str) -> BrowserSession:
        for name in names:
            session.data.pop(name, None)
        self.save(session)
        return session

    def cleanup(self) -> int:
        """Delete expired sessions; returns how many were removed."""
        now = int(self._clock())
        removed = 0
        for key, value in list(self._store.scan(_KEY_PREFIX)):
            if now - int(value.get("created_at", 0)) >= self._ttl:
                self._store.delete(key)
                removed += 1
        if removed:
            _LOG.info("Removed %d expired browser sessions", removed)
        return removed
