"""
/upload* surface. Requests carrying Tus-Resumable go to the resumable upload
engine; anything else is a plain upload (raw, multipart, base64).
"""

import logging
import posixpath
import re

from fastapi.responses import Response

from mock_server.core.errors import ClientInputError, NotFound, PayloadTooLarge
from mock_server.core.gateway.context import GatewayContext
from mock_server.core.gateway.headers import (
    TUS_CONTENT_TYPE,
    parse_non_negative_int,
    validate_content_length,
    validate_tus_headers,
)
from mock_server.core.gateway.request_response import (
    JSON_TYPE,
    MULTIPART_TYPE,
    GatewayRequest,
    error_response,
    json_body,
    json_response,
)
from mock_server.core.gateway.services import Gateway
from mock_server.core.uploads.tus import TUS_VERSION, UploadOutcome, UploadStatus

_LOG = logging.getLogger(__name__)

_UPLOAD_ID_RE = re.compile(r"^/upload/([^/]+)")

_OUTCOME_STATUS = {
    UploadStatus.NOT_FOUND: 404,
    UploadStatus.OFFSET_MISMATCH: 409,
    UploadStatus.TOO_LARGE: 413,
}


def handle_upload(gw: Gateway, ctx: GatewayContext) -> Response:
    if ctx.request.header("Tus-Resumable") is not None:
        return handle_tus(gw, ctx)
    return handle_plain(gw, ctx)


# ---------------------------------------------------------------------------
# Resumable (TUS)
# ---------------------------------------------------------------------------


def _tus_headers(extra: dict[str, str] | None = None) -> dict[str, str]:
    headers = {"Tus-Resumable": TUS_VERSION}
    headers.update(extra or {})
    return headers


def _upload_id(path: str) -> str | None:
    m = _UPLOAD_ID_RE.match(path)
    return m.group(1) if m else None


def _outcome_error(outcome: UploadOutcome) -> Response:
    extra: dict[str, str] = {}
    if outcome.session is not None:
        extra["Upload-Offset"] = str(outcome.session.offset)
    return json_response(
        {"success": False, "error": outcome.error},
        _OUTCOME_STATUS[outcome.status],
        _tus_headers(extra),
    )


def handle_tus(gw: Gateway, ctx: GatewayContext) -> Response:
    req = ctx.request
    if not gw.settings.TUS_ENABLED:
        raise NotFound("Resumable uploads are disabled")

    check = validate_tus_headers(req.headers, req.method)
    if not check.valid:
        raise ClientInputError(check.error or "Missing required headers")
    if not gw.uploads.supports_version(req.header("Tus-Resumable")):
        return json_response(
            {
                "success": False,
                "error": f"Unsupported TUS version. Only {TUS_VERSION} is supported",
            },
            412,
            {"Tus-Version": TUS_VERSION},
        )

    if req.method == "POST":
        return _tus_create(gw, req)
    if req.method == "PATCH":
        return _tus_patch(gw, req)
    if req.method == "HEAD":
        return _tus_head(gw, req)
    return json_response(
        {"success": False, "error": "Unsupported TUS method"}, 405, _tus_headers()
    )


def _tus_create(gw: Gateway, req: GatewayRequest) -> Response:
    length = parse_non_negative_int(req.header("Upload-Length"))
    if length is None:
        raise ClientInputError("Upload-Length must be a non-negative integer")
    outcome = gw.uploads.create(
        length, client_metadata=req.header("Upload-Metadata") or ""
    )
    if not outcome.ok or outcome.session is None:
        return _outcome_error(outcome)
    location = gw.uploads.location(outcome.session.id)
    return json_response(
        {"success": True, "upload_id": outcome.session.id, "location": location},
        201,
        _tus_headers({"Location": location}),
    )


def _tus_patch(gw: Gateway, req: GatewayRequest) -> Response:
    if req.content_type.strip() != TUS_CONTENT_TYPE:
        return json_response(
            {"success": False, "error": "Invalid Content-Type for PATCH"},
            415,
            _tus_headers(),
        )
    offset = parse_non_negative_int(req.header("Upload-Offset"))
    if offset is None:
        raise ClientInputError("Upload-Offset must be a non-negative integer")
    upload_id = _upload_id(req.path)
    if upload_id is None:
        raise NotFound("Upload ID not found")

    outcome = gw.uploads.append(upload_id, offset, req.body)
    if not outcome.ok or outcome.session is None:
        return _outcome_error(outcome)
    session = outcome.session
    return json_response(
        {
            "success": True,
            "upload_id": session.id,
            "offset": session.offset,
            "complete": session.is_complete,
        },
        200,
        _tus_headers({"Upload-Offset": str(session.offset)}),
    )


def _tus_head(gw: Gateway, req: GatewayRequest) -> Response:
    upload_id = _upload_id(req.path)
    outcome = gw.uploads.status(upload_id or "")
    if outcome.session is None:
        return Response(status_code=404, headers=_tus_headers())
    return Response(
        status_code=200,
        headers=_tus_headers(
            {
                "Upload-Offset": str(outcome.session.offset),
                "Upload-Length": str(outcome.session.total_length),
                "Cache-Control": "no-store",
            }
        ),
    )


# ---------------------------------------------------------------------------
# Plain uploads
# ---------------------------------------------------------------------------


def check_declared_length(req: GatewayRequest, max_size: int) -> None:
    """Content-Length, when sent, must be a positive integer within `max_size`."""
    declared = req.header("Content-Length")
    if declared is None:
        return
    check = validate_content_length(declared, max_size)
    if check.too_large:
        raise PayloadTooLarge(
            f"Upload size exceeds maximum allowed size of {max_size} bytes"
        )
    if not check.valid:
        raise ClientInputError(check.error or "Invalid Content-Length value")


def handle_plain(gw: Gateway, ctx: GatewayContext) -> Response:
    req = ctx.request
    if req.method not in ("POST", "PUT"):
        return error_response(405, "Method not allowed")
    if not req.content_type:
        raise ClientInputError("Content-Type header is required for file uploads")
    max_size = gw.settings.max_upload_size
    check_declared_length(req, max_size)

    if req.method == "PUT":
        filename = posixpath.basename(req.path.rstrip("/")) or None
        return json_response(gw.files.save_raw(req.body, filename, max_size), 201)

    if req.has_type(JSON_TYPE):
        body = json_body(req)
        if isinstance(body, dict) and body.get("type") == "base64":
            return json_response(gw.files.save_base64(body, max_size), 201)
    if req.has_type(MULTIPART_TYPE):
        return json_response(gw.files.save_multipart(req.files, max_size), 201)
    return json_response(gw.files.save_raw(req.body, None, max_size), 201)


def list_files(gw: Gateway, ctx: GatewayContext) -> Response:
    return json_response({"files": gw.files.list_uploads()})
