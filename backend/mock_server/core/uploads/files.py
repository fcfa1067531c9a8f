"""
Plain (non-resumable) uploads: raw body, multipart form, base64 JSON.

Files land in the upload directory under their basename. Resumable sessions
keep their bytes in a separate directory and their ids are refused as
filenames. No cross-request state; size limits are enforced by the caller
and re-checked here against the actual payload.
"""

import base64
import binascii
import logging
import os
import re
import time
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from mock_server.core.errors import ClientInputError, PayloadTooLarge, StorageError
from mock_server.core.uploads.tus import is_upload_id

_LOG = logging.getLogger(__name__)

_DATA_URI_RE = re.compile(r"^data:([^;]+);base64,(.+)$", re.DOTALL)


@dataclass(frozen=True)
class UploadedPart:
    """One file part of a multipart body, already read into memory."""

    field_name: str
    filename: str
    content_type: str
    content: bytes


def safe_filename(name: str) -> str:
    base = os.path.basename(name.replace("\\", "/")).strip()
    if base in ("", ".", ".."):
        raise ClientInputError("Invalid filename")
    if is_upload_id(base):
        raise ClientInputError("Filename is reserved for resumable uploads")
    return base


class FileUploads:
    def __init__(self, upload_dir: Path) -> None:
        self._dir = Path(upload_dir)
        try:
            self._dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Cannot create upload directory {self._dir}: {e}") from e

    def _save(self, filename: str, content: bytes) -> Path:
        path = self._dir / filename
        try:
            path.write_bytes(content)
        except OSError as e:
            raise StorageError(f"Failed to save file {filename}: {e}") from e
        return path

    @staticmethod
    def _check_size(size: int, max_size: int) -> None:
        if size > max_size:
            raise PayloadTooLarge(
                f"Upload size exceeds maximum allowed size of {max_size} bytes"
            )

    def save_raw(
        self, content: bytes, filename: str | None, max_size: int
    ) -> dict[str, Any]:
        if not content:
            raise ClientInputError("No data received")
        self._check_size(len(content), max_size)
        if not filename:
            filename = f"upload_{int(time.time())}_{uuid.uuid4().hex[:13]}"
        name = safe_filename(filename)
        path = self._save(name, content)
        _LOG.info("Saved raw upload %s (%d bytes)", name, len(content))
        return {
            "success": True,
            "filename": name,
            "filepath": str(path),
            "size": len(content),
            "upload_type": "raw",
        }

    def save_multipart(
        self, parts: list[UploadedPart], max_size: int
    ) -> dict[str, Any]:
        if not parts:
            raise ClientInputError("No files uploaded")
        self._check_size(sum(len(p.content) for p in parts), max_size)
        saved = []
        for part in parts:
            name = f"{int(time.time())}_{safe_filename(part.filename)}"
            path = self._save(name, part.content)
            saved.append(
                {
                    "success": True,
                    "filename": name,
                    "original_name": part.filename,
                    "filepath": str(path),
                    "size": len(part.content),
                    "type": part.content_type,
                }
            )
        _LOG.info("Saved %d multipart file(s)", len(saved))
        return {"success": True, "files": saved, "upload_type": "multipart"}

    def save_base64(self, data: dict[str, Any], max_size: int) -> dict[str, Any]:
        """`{"filename": ..., "content": <base64 or data URI>}`."""
        filename = data.get("filename")
        content = data.get("content")
        if not isinstance(filename, str) or not isinstance(content, str):
            raise ClientInputError("Missing filename or content")
        m = _DATA_URI_RE.match(content)
        if m:
            content = m.group(2)
        try:
            decoded = base64.b64decode(content, validate=True)
        except binascii.Error as e:
            raise ClientInputError("Invalid base64 content") from e
        self._check_size(len(decoded), max_size)
        name = safe_filename(filename)
        path = self._save(name, decoded)
        _LOG.info("Saved base64 upload %s (%d bytes)", name, len(decoded))
        return {
            "success": True,
            "filename": name,
            "filepath": str(path),
            "size": len(decoded),
            "upload_type": "base64",
        }

    def list_uploads(self) -> list[dict[str, Any]]:
        files = []
        try:
            entries = sorted(self._dir.iterdir())
        except OSError as e:
            raise StorageError(f"Cannot list {self._dir}: {e}") from e
        for entry in entries:
            if not entry.is_file() or entry.name.startswith("."):
                continue
            stat = entry.stat()
            files.append(
                {
                    "filename": entry.name,
                    "size": stat.st_size,
                    "uploaded": int(stat.st_mtime),
                }
            )
        return files
