"""
Flat resource store: one JSON file per request path under STORAGE_DIR/data.

/users/123 -> users_123.json, / -> root.json. Values that are not valid JSON
on disk are returned as raw text.
"""

import json
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Any

from mock_server.core.errors import StorageError
from mock_server.core.store import KeyLocks

_LOG = logging.getLogger(__name__)

_UNSAFE_RE = re.compile(r"[^A-Za-z0-9_.\-]")


def resource_filename(resource: str) -> str:
    name = resource.strip("/").replace("/", "_")
    name = _UNSAFE_RE.sub("_", name)
    if not name.strip("."):
        name = "root"
    return name + ".json"


def resource_from_filename(filename: str) -> str:
    name = filename.removesuffix(".json")
    if name == "root":
        return "/"
    return "/" + name.replace("_", "/")


class ResourceStore:
    def __init__(self, data_dir: Path) -> None:
        self._dir = Path(data_dir)
        self._locks = KeyLocks()
        try:
            self._dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Cannot create data directory {self._dir}: {e}") from e

    def _path(self, resource: str) -> Path:
        return self._dir / resource_filename(resource)

    def exists(self, resource: str) -> bool:
        return self._path(resource).is_file()

    def _write(self, resource: str, data: Any) -> None:
        """Temp file plus os.replace; callers hold the resource lock."""
        path = self._path(resource)
        try:
            fd, tmp = tempfile.mkstemp(dir=self._dir, prefix=".tmp-")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=4)
            os.replace(tmp, path)
        except OSError as e:
            raise StorageError(f"Failed to store {resource}: {e}") from e

    def store(self, resource: str, data: Any) -> None:
        with self._locks.get(resource_filename(resource)):
            self._write(resource, data)

    def retrieve(self, resource: str) -> Any | None:
        """Stored value, raw text if it is not JSON, None if absent."""
        path = self._path(resource)
        try:
            content = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StorageError(f"Failed to read {resource}: {e}") from e
        try:
            return json.loads(content)
        except json.JSONDecodeError:
            return content

    def update(self, resource: str, data: Any) -> bool:
        """Replace an existing resource; False if it does not exist."""
        with self._locks.get(resource_filename(resource)):
            if not self.exists(resource):
                return False
            self._write(resource, data)
            return True

    def upsert(self, resource: str, data: Any) -> bool:
        """Create or replace; True when an existing resource was replaced."""
        with self._locks.get(resource_filename(resource)):
            existed = self.exists(resource)
            self._write(resource, data)
        return existed

    def merge(self, resource: str, patch: Any) -> Any | None:
        """
        Shallow key union of the stored object and `patch`, new keys winning.
        Non-object values on either side count as empty. None if absent.
        """
        with self._locks.get(resource_filename(resource)):
            existing = self.retrieve(resource)
            if existing is None:
                return None
            merged = {
                **(existing if isinstance(existing, dict) else {}),
                **(patch if isinstance(patch, dict) else {}),
            }
            self._write(resource, merged)
        return merged

    def delete(self, resource: str) -> bool:
        key = resource_filename(resource)
        with self._locks.get(key):
            try:
                self._path(resource).unlink()
            except FileNotFoundError:
                return False
            except OSError as e:
                raise StorageError(f"Failed to delete {resource}: {e}") from e
        self._locks.discard(key)
        _LOG.debug("Deleted resource %s", resource)
        return True

    def list_resources(self) -> list[dict[str, Any]]:
        try:
            entries = sorted(self._dir.iterdir())
        except OSError as e:
            raise StorageError(f"Cannot list {self._dir}: {e}") from e
        resources = []
        for entry in entries:
            if not entry.is_file() or entry.name.startswith("."):
                continue
            stat = entry.stat()
            resources.append(
                {
                    "resource": resource_from_filename(entry.name),
                    "filename": entry.name,
                    "size": stat.st_size,
                    "modified": int(stat.st_mtime),
                }
            )
        return resources
