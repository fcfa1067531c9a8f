"""
Gateway rate limiting: fixed-window counters per (identity, class).

Three classes are checked per request, in order: ip, global, endpoint.
Counters live in the key/value store so they survive restarts and, with the
Redis backend, are shared between workers. The read-increment-write runs
under a per-key lock and a compare-and-swap loop, so two concurrent requests
never both see the pre-increment count.

The increment is applied even when the request is denied: a client over the
limit keeps counting until the window rolls over.
"""

import hashlib
import logging
import time
from collections.abc import Callable

from mock_server.core.config import EndpointLimit, WindowLimit
from mock_server.core.errors import StorageError
from mock_server.core.store import KeyLocks, KeyValueStore
from mock_server.models import RateCounter, RateLimitClassEnum
from mock_server.schemas import RateLimitResult

_LOG = logging.getLogger(__name__)

_KEY_PREFIX = "ratelimit:"
_CAS_ATTEMPTS = 16
_ALLOWED = RateLimitResult(allowed=True)


def _counter_key(identity: str, limit_class: RateLimitClassEnum) -> str:
    digest = hashlib.sha256(identity.encode("utf-8")).hexdigest()
    return f"{_KEY_PREFIX}{limit_class.value}:{digest}"


class RateLimiter:
    def __init__(
        self,
        store: KeyValueStore,
        *,
        ip_limit: WindowLimit,
        global_limit: WindowLimit,
        endpoint_limits: dict[str, EndpointLimit],
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._ip_limit = ip_limit
        self._global_limit = global_limit
        self._endpoint_limits = endpoint_limits
        self._clock = clock
        self._locks = KeyLocks()

    def _now(self) -> int:
        return int(self._clock())

    def check_limit(
        self,
        identity: str,
        limit_class: RateLimitClassEnum,
        max_requests: int,
        window_seconds: int,
    ) -> RateLimitResult:
        """
        Count one request for (identity, limit_class).

        - Window elapsed (now >= reset_at): count restarts at 0, window starts now.
        - allowed = count <= max_requests; remaining = max(0, max_requests - count).
        """
        key = _counter_key(identity, limit_class)
        with self._locks.get(key):
            for _ in range(_CAS_ATTEMPTS):
                current = self._store.get(key)
                now = self._now()
                counter = RateCounter.model_validate(current) if current else None
                if counter is None or counter.is_expired(now):
                    counter = RateCounter(
                        identity=identity,
                        limit_class=limit_class,
                        window_start=now,
                        window_seconds=window_seconds,
                        count=0,
                        limit=max_requests,
                    )
                counter.count += 1
                counter.limit = max_requests
                if self._store.compare_and_swap(
                    key, current, counter.model_dump(mode="json")
                ):
                    break
            else:
                raise StorageError(f"Rate counter {key} kept changing under CAS")

        allowed = counter.count <= max_requests
        if not allowed:
            _LOG.info(
                "Rate limit exceeded class=%s identity=%s count=%d limit=%d",
                limit_class.value,
                identity,
                counter.count,
                max_requests,
            )
        return RateLimitResult(
            allowed=allowed,
            remaining=max(0, max_requests - counter.count),
            reset_at=counter.reset_at,
            limit=max_requests,
            limit_class=limit_class,
        )

    def check_ip_limit(self, ip: str) -> RateLimitResult:
        if not self._ip_limit.enabled:
            return _ALLOWED
        return self.check_limit(
            ip, RateLimitClassEnum.IP, self._ip_limit.max_requests, self._ip_limit.window
        )

    def check_global_limit(self) -> RateLimitResult:
        if not self._global_limit.enabled:
            return _ALLOWED
        return self.check_limit(
            "global",
            RateLimitClassEnum.GLOBAL,
            self._global_limit.max_requests,
            self._global_limit.window,
        )

    def check_endpoint_limit(self, ip: str, path: str) -> RateLimitResult:
        """Only paths listed in RATE_LIMIT_ENDPOINTS (exact match) are limited."""
        limit = self._endpoint_limits.get(path)
        if limit is None:
            return _ALLOWED
        return self.check_limit(
            f"{ip}:{path}", RateLimitClassEnum.ENDPOINT, limit.max_requests, limit.window
        )

    def check_request(self, ip: str, path: str) -> RateLimitResult:
        """ip -> global -> endpoint; stops at (and returns) the first denial."""
        for check in (
            lambda: self.check_ip_limit(ip),
            self.check_global_limit,
            lambda: self.check_endpoint_limit(ip, path),
        ):
            result = check()
            if not result.allowed:
                return result
        return _ALLOWED

    def cleanup(self, grace_seconds: int = 3600) -> int:
        """Delete counters whose window ended more than `grace_seconds` ago."""
        now = self._now()
        removed = 0
        for key, value in list(self._store.scan(_KEY_PREFIX)):
            try:
                counter = RateCounter.model_validate(value)
            except ValueError:
                _LOG.warning("Dropping unreadable rate counter %s", key)
                self._store.delete(key)
                removed += 1
                continue
            if now >= counter.reset_at + grace_seconds:
                self._store.delete(key)
                removed += 1
        return removed
