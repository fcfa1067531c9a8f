"""
Resumable uploads (TUS 1.0.0, core protocol + creation extension).

State machine per session: NonExistent -> Created -> (Patching)* -> Complete.

- create: persist a session at offset 0 and an empty backing file
- append: the client's Upload-Offset must equal the persisted offset; the
  chunk is written at that offset and the offset advanced with CAS
- status: current offset / total length, no mutation
- capabilities: version, extensions, max size

Outcomes are UploadOutcome values (including mismatches and unknown
sessions); only storage failures raise. Appends on the same session are
serialised by a per-session lock; different sessions never contend.
"""

import base64
import binascii
import logging
import re
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from mock_server.core.errors import StorageError
from mock_server.core.store import KeyLocks, KeyValueStore
from mock_server.models import UploadSession

_LOG = logging.getLogger(__name__)

TUS_VERSION = "1.0.0"
TUS_EXTENSIONS = ("creation",)

_KEY_PREFIX = "upload:"
_ID_RE = re.compile(r"^tus_[0-9a-f]{32}$")


def is_upload_id(name: str) -> bool:
    return bool(_ID_RE.match(name))


class UploadStatus(str, Enum):
    CREATED = "created"
    APPENDED = "appended"
    FOUND = "found"
    NOT_FOUND = "not_found"
    OFFSET_MISMATCH = "offset_mismatch"
    TOO_LARGE = "too_large"


@dataclass(frozen=True)
class UploadOutcome:
    status: UploadStatus
    session: UploadSession | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status in (
            UploadStatus.CREATED,
            UploadStatus.APPENDED,
            UploadStatus.FOUND,
        )

    @property
    def complete(self) -> bool:
        return self.session is not None and self.session.is_complete


def parse_upload_metadata(raw: str | None) -> dict[str, str]:
    """
    'filename ZXhhbXBsZS50eHQ=,is_confidential' -> {'filename': 'example.txt',
    'is_confidential': ''}. Undecodable values are kept as-is.
    """
    result: dict[str, str] = {}
    for pair in (raw or "").split(","):
        pair = pair.strip()
        if not pair:
            continue
        name, _, encoded = pair.partition(" ")
        try:
            value = base64.b64decode(encoded.strip(), validate=True).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError):
            value = encoded.strip()
        result[name] = value
    return result


class UploadEngine:
    def __init__(
        self,
        store: KeyValueStore,
        upload_dir: Path,
        *,
        max_size: int,
        location_prefix: str = "/upload/",
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._dir = Path(upload_dir)
        self._max_size = max_size
        self._location_prefix = location_prefix
        self._clock = clock
        self._locks = KeyLocks()
        try:
            self._dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Cannot create upload directory {self._dir}: {e}") from e

    @property
    def max_size(self) -> int:
        return self._max_size

    @staticmethod
    def supports_version(version: str | None) -> bool:
        return version == TUS_VERSION

    def capabilities(self) -> dict[str, str]:
        return {
            "Tus-Resumable": TUS_VERSION,
            "Tus-Version": TUS_VERSION,
            "Tus-Extension": ",".join(TUS_EXTENSIONS),
            "Tus-Max-Size": str(self._max_size),
        }

    def location(self, upload_id: str) -> str:
        return f"{self._location_prefix}{upload_id}"

    def data_path(self, upload_id: str) -> Path:
        return self._dir / upload_id

    def _load(self, upload_id: str) -> tuple[dict | None, UploadSession | None]:
        if not is_upload_id(upload_id or ""):
            return None, None
        raw = self._store.get(_KEY_PREFIX + upload_id)
        if raw is None:
            return None, None
        return raw, UploadSession.model_validate(raw)

    def create(
        self,
        total_length: int,
        *,
        max_size: int | None = None,
        client_metadata: str = "",
    ) -> UploadOutcome:
        ceiling = self._max_size if max_size is None else min(max_size, self._max_size)
        if total_length > ceiling:
            return UploadOutcome(
                UploadStatus.TOO_LARGE,
                error=f"Upload-Length {total_length} exceeds maximum size {ceiling}",
            )
        session = UploadSession(
            id=f"tus_{uuid.uuid4().hex}",
            total_length=total_length,
            offset=0,
            created_at=int(self._clock()),
            client_metadata=client_metadata,
            max_size=ceiling,
        )
        try:
            self.data_path(session.id).write_bytes(b"")
        except OSError as e:
            raise StorageError(f"Cannot create upload file {session.id}: {e}") from e
        if not self._store.compare_and_swap(
            _KEY_PREFIX + session.id, None, session.model_dump(mode="json")
        ):
            raise StorageError(f"Upload id collision: {session.id}")
        _LOG.info("Created upload %s length=%d", session.id, total_length)
        return UploadOutcome(UploadStatus.CREATED, session=session)

    def append(self, upload_id: str, offset: int, chunk: bytes) -> UploadOutcome:
        with self._locks.get(upload_id):
            raw, session = self._load(upload_id)
            if session is None:
                return UploadOutcome(UploadStatus.NOT_FOUND, error="Upload not found")
            if offset != session.offset:
                return UploadOutcome(
                    UploadStatus.OFFSET_MISMATCH,
                    session=session,
                    error="Upload-Offset mismatch",
                )
            new_offset = session.offset + len(chunk)
            if new_offset > session.total_length:
                return UploadOutcome(
                    UploadStatus.TOO_LARGE,
                    session=session,
                    error="Chunk exceeds declared Upload-Length",
                )
            if session.max_size is not None and new_offset > session.max_size:
                return UploadOutcome(
                    UploadStatus.TOO_LARGE,
                    session=session,
                    error=f"Upload exceeds maximum size {session.max_size}",
                )

            self._write_chunk(upload_id, session.offset, chunk)
            updated = session.model_copy(update={"offset": new_offset})
            if not self._store.compare_and_swap(
                _KEY_PREFIX + upload_id, raw, updated.model_dump(mode="json")
            ):
                # Another process advanced the session first; our bytes past its
                # offset get overwritten by the next matching append.
                _, current = self._load(upload_id)
                return UploadOutcome(
                    UploadStatus.OFFSET_MISMATCH,
                    session=current,
                    error="Upload-Offset mismatch",
                )

        if updated.is_complete:
            _LOG.info("Upload %s complete (%d bytes)", upload_id, updated.total_length)
        return UploadOutcome(UploadStatus.APPENDED, session=updated)

    def _write_chunk(self, upload_id: str, offset: int, chunk: bytes) -> None:
        path = self.data_path(upload_id)
        try:
            with open(path, "r+b") as f:
                f.seek(offset)
                f.write(chunk)
                f.truncate()
        except OSError as e:
            raise StorageError(f"Cannot write upload {upload_id}: {e}") from e

    def status(self, upload_id: str) -> UploadOutcome:
        _, session = self._load(upload_id)
        if session is None:
            return UploadOutcome(UploadStatus.NOT_FOUND, error="Upload not found")
        return UploadOutcome(UploadStatus.FOUND, session=session)

    def sweep_stale(self, max_age_seconds: int) -> int:
        """Remove sessions (record + bytes) older than `max_age_seconds`."""
        now = int(self._clock())
        removed = 0
        for key, value in list(self._store.scan(_KEY_PREFIX)):
            upload_id = key[len(_KEY_PREFIX) :]
            if now - int(value.get("created_at", 0)) < max_age_seconds:
                continue
            with self._locks.get(upload_id):
                self._store.delete(key)
                self.data_path(upload_id).unlink(missing_ok=True)
            self._locks.discard(upload_id)
            removed += 1
        return removed
