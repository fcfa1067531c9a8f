"""
Key/value record storage shared by the rate limiter, API-key issuer, upload
engine and browser sessions.

Values are JSON objects. Three backends implement the same interface:

- FileStore: one JSON file per key under STORAGE_DIR/store (default)
- MemoryStore: process-local dict (tests, throwaway runs)
- RedisStore: networked, CAS via WATCH/MULTI

I/O failures raise StorageError (fail closed).
"""

import copy
import json
import logging
import os
import tempfile
import threading
from collections.abc import Iterator
from pathlib import Path
from typing import Any, Protocol
from urllib.parse import quote, unquote

import redis

from mock_server.core.config import Settings
from mock_server.core.errors import StorageError
from mock_server.core.redis_client import get_redis
from mock_server.models import StoreBackendEnum

_LOG = logging.getLogger(__name__)

Record = dict[str, Any]


class KeyValueStore(Protocol):
    def get(self, key: str) -> Record | None: ...

    def put(self, key: str, value: Record) -> None: ...

    def compare_and_swap(
        self, key: str, expected: Record | None, new: Record
    ) -> bool:
        """Write ``new`` only if the current value equals ``expected``
        (``None`` = key must be absent). True when written."""
        ...

    def delete(self, key: str) -> bool: ...

    def scan(self, prefix: str) -> Iterator[tuple[str, Record]]: ...


class KeyLocks:
    """Lazily created per-key locks."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}

    def get(self, key: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock

    def discard(self, key: str) -> None:
        with self._guard:
            self._locks.pop(key, None)


class MemoryStore:
    def __init__(self) -> None:
        self._data: dict[str, Record] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Record | None:
        with self._lock:
            value = self._data.get(key)
            return copy.deepcopy(value) if value is not None else None

    def put(self, key: str, value: Record) -> None:
        with self._lock:
            self._data[key] = copy.deepcopy(value)

    def compare_and_swap(
        self, key: str, expected: Record | None, new: Record
    ) -> bool:
        with self._lock:
            if self._data.get(key) != expected:
                return False
            self._data[key] = copy.deepcopy(new)
            return True

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._data.pop(key, None) is not None

    def scan(self, prefix: str) -> Iterator[tuple[str, Record]]:
        with self._lock:
            items = [
                (k, copy.deepcopy(v)) for k, v in self._data.items() if k.startswith(prefix)
            ]
        yield from items

    def clear(self) -> None:
        with self._lock:
            self._data.clear()


class FileStore:
    """
    One JSON file per key. Writes go to a temp file and are moved into place
    with os.replace, so readers never see a half-written record. CAS is
    serialised per key within the process.
    """

    _SUFFIX = ".json"

    def __init__(self, directory: Path) -> None:
        self._dir = Path(directory)
        try:
            self._dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Cannot create store directory {self._dir}: {e}") from e
        self._locks = KeyLocks()

    def _path(self, key: str) -> Path:
        return self._dir / (quote(key, safe="") + self._SUFFIX)

    def _read(self, key: str) -> Record | None:
        path = self._path(key)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StorageError(f"Cannot read {path}: {e}") from e
        try:
            value = json.loads(raw)
        except json.JSONDecodeError:
            _LOG.warning("Ignoring corrupt record %s", path)
            return None
        return value if isinstance(value, dict) else None

    def _write(self, key: str, value: Record) -> None:
        path = self._path(key)
        try:
            fd, tmp = tempfile.mkstemp(dir=self._dir, prefix=".tmp-")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(value, f)
            os.replace(tmp, path)
        except OSError as e:
            raise StorageError(f"Cannot write {path}: {e}") from e

    def get(self, key: str) -> Record | None:
        return self._read(key)

    def put(self, key: str, value: Record) -> None:
        with self._locks.get(key):
            self._write(key, value)

    def compare_and_swap(
        self, key: str, expected: Record | None, new: Record
    ) -> bool:
        with self._locks.get(key):
            if self._read(key) != expected:
                return False
            self._write(key, new)
            return True

    def delete(self, key: str) -> bool:
        with self._locks.get(key):
            try:
                self._path(key).unlink()
            except FileNotFoundError:
                return False
            except OSError as e:
                raise StorageError(f"Cannot delete {key}: {e}") from e
        self._locks.discard(key)
        return True

    def scan(self, prefix: str) -> Iterator[tuple[str, Record]]:
        try:
            names = sorted(os.listdir(self._dir))
        except OSError as e:
            raise StorageError(f"Cannot list {self._dir}: {e}") from e
        for name in names:
            if not name.endswith(self._SUFFIX) or name.startswith(".tmp-"):
                continue
            key = unquote(name[: -len(self._SUFFIX)])
            if not key.startswith(prefix):
                continue
            value = self._read(key)
            if value is not None:
                yield key, value


class RedisStore:
    def __init__(self, client: "redis.Redis", key_prefix: str = "") -> None:
        self._r = client
        self._prefix = key_prefix

    def _k(self, key: str) -> str:
        return self._prefix + key

    def get(self, key: str) -> Record | None:
        try:
            raw = self._r.get(self._k(key))
        except redis.RedisError as e:
            raise StorageError(f"Redis GET {key} failed: {e}") from e
        return json.loads(raw) if raw is not None else None

    def put(self, key: str, value: Record) -> None:
        try:
            self._r.set(self._k(key), json.dumps(value))
        except redis.RedisError as e:
            raise StorageError(f"Redis SET {key} failed: {e}") from e

    def compare_and_swap(
        self, key: str, expected: Record | None, new: Record
    ) -> bool:
        k = self._k(key)
        try:
            with self._r.pipeline() as pipe:
                pipe.watch(k)
                raw = pipe.get(k)
                current = json.loads(raw) if raw is not None else None
                if current != expected:
                    pipe.unwatch()
                    return False
                pipe.multi()
                pipe.set(k, json.dumps(new))
                pipe.execute()
                return True
        except redis.WatchError:
            return False
        except redis.RedisError as e:
            raise StorageError(f"Redis CAS {key} failed: {e}") from e

    def delete(self, key: str) -> bool:
        try:
            return bool(self._r.delete(self._k(key)))
        except redis.RedisError as e:
            raise StorageError(f"Redis DEL {key} failed: {e}") from e

    def scan(self, prefix: str) -> Iterator[tuple[str, Record]]:
        try:
            keys = list(self._r.scan_iter(match=self._k(prefix) + "*"))
        except redis.RedisError as e:
            raise StorageError(f"Redis SCAN {prefix} failed: {e}") from e
        for k in sorted(keys):
            key = k[len(self._prefix) :]
            value = self.get(key)
            if value is not None:
                yield key, value


def build_store(settings: Settings) -> KeyValueStore:
    """
    Store for the configured backend. Redis falls back to the file backend
    when the server cannot be reached at startup.
    """
    backend = settings.STORE_BACKEND
    if backend == StoreBackendEnum.MEMORY:
        return MemoryStore()
    if backend == StoreBackendEnum.REDIS:
        client = get_redis(settings.REDIS_URL)
        if client is not None:
            return RedisStore(client, settings.REDIS_KEY_PREFIX)
        _LOG.warning("STORE_BACKEND=redis but Redis is unreachable; using file store")
    return FileStore(settings.store_dir)
