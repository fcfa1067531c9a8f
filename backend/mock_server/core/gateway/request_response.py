"""
Gateway request/response: GatewayRequest, read_gateway_request, body parsing
and the JSON error envelope.

- read_gateway_request: snapshot a Starlette request (body, multipart parts,
  TLS client cert) into a plain GatewayRequest the sync pipeline can use.
- parse_body / json_body: JSON, urlencoded form, multipart fields, or text.
- json_response / error_response: ``{"error": ..., "message": ...}`` shapes.
"""

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import parse_qsl

from fastapi.responses import JSONResponse
from starlette.datastructures import UploadFile
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.requests import Request

from mock_server.core.config import Settings
from mock_server.core.errors import ClientInputError, GatewayError, PayloadTooLarge
from mock_server.core.gateway.headers import get_header, media_type, parse_non_negative_int
from mock_server.core.uploads.files import UploadedPart

JSON_TYPE = "application/json"
FORM_TYPE = "application/x-www-form-urlencoded"
MULTIPART_TYPE = "multipart/form-data"
BINARY_TYPES = ("application/octet-stream", "image/", "video/", "audio/")

UPLOAD_PREFIX = "/upload"


def is_upload_path(path: str) -> bool:
    return path.startswith(UPLOAD_PREFIX)


def body_limit(path: str, settings: Settings) -> int:
    """Largest body read into memory for `path`; upload routes use the upload ceilings."""
    if is_upload_path(path):
        return max(settings.tus_max_size, settings.max_upload_size)
    return max(settings.MAX_REQUEST_BODY_SIZE, settings.max_upload_size)


@dataclass
class GatewayRequest:
    method: str
    path: str
    headers: Mapping[str, str] = field(default_factory=dict)
    query: Mapping[str, str] = field(default_factory=dict)
    body: bytes = b""
    client_host: str | None = None
    client_cert: str | None = None
    client_dn: str | None = None
    cookies: Mapping[str, str] = field(default_factory=dict)
    files: list[UploadedPart] = field(default_factory=list)
    form: dict[str, str] = field(default_factory=dict)

    def header(self, name: str) -> str | None:
        return get_header(self.headers, name)

    @property
    def content_type(self) -> str:
        return self.header("Content-Type") or ""

    def has_type(self, marker: str) -> bool:
        return marker in self.content_type.lower()

    def is_binary(self) -> bool:
        return any(self.has_type(t) for t in BINARY_TYPES)


def parse_body(request: GatewayRequest) -> Any:
    """JSON value, form dict, or decoded text. Invalid JSON -> None."""
    if request.has_type(JSON_TYPE):
        if not request.body:
            return None
        try:
            return json.loads(request.body)
        except ValueError:
            return None
    if request.has_type(FORM_TYPE):
        text = request.body.decode("utf-8", errors="replace")
        return dict(parse_qsl(text, keep_blank_values=True))
    if request.has_type(MULTIPART_TYPE):
        return dict(request.form)
    return request.body.decode("utf-8", errors="replace")


def json_body(request: GatewayRequest) -> Any:
    """Like parse_body for JSON, but a malformed payload is a 400."""
    if not request.body:
        return None
    try:
        return json.loads(request.body)
    except ValueError as e:
        raise ClientInputError("Request body is not valid JSON") from e


def json_response(
    content: Any, status_code: int = 200, headers: Mapping[str, str] | None = None
) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=content, headers=headers)


def error_response(
    status_code: int,
    error: str,
    message: str | None = None,
    headers: Mapping[str, str] | None = None,
    **extra: Any,
) -> JSONResponse:
    body: dict[str, Any] = {"error": error}
    if message is not None:
        body["message"] = message
    body.update(extra)
    return json_response(body, status_code, headers)


def gateway_error_response(exc: GatewayError) -> JSONResponse:
    return json_response(exc.to_body(), exc.status_code)


def _client_certificate(request: Request, settings: Settings) -> tuple[str | None, str | None]:
    """Client cert + subject DN from the ASGI TLS extension, else proxy headers."""
    tls = (request.scope.get("extensions") or {}).get("tls") or {}
    chain = tls.get("client_cert_chain") or []
    if chain:
        return chain[0], tls.get("client_cert_name")
    return (
        request.headers.get(settings.MTLS_CLIENT_CERT_HEADER) or None,
        request.headers.get(settings.MTLS_CLIENT_DN_HEADER) or None,
    )


async def _read_multipart(
    request: Request,
) -> tuple[list[UploadedPart], dict[str, str]]:
    files: list[UploadedPart] = []
    fields: dict[str, str] = {}
    try:
        form = await request.form()
    except StarletteHTTPException:
        # Malformed multipart; handlers report "No files uploaded".
        return files, fields
    try:
        for name, value in form.multi_items():
            if isinstance(value, UploadFile):
                files.append(
                    UploadedPart(
                        field_name=name,
                        filename=value.filename or name,
                        content_type=value.content_type or "application/octet-stream",
                        content=await value.read(),
                    )
                )
            else:
                fields[name] = value
    finally:
        await form.close()
    return files, fields


async def _read_body(request: Request, limit: int) -> bytes:
    """
    Body capped at `limit` bytes. A declared Content-Length over the cap is
    refused before anything is read; a chunked body stops at the cap.
    """
    declared = parse_non_negative_int(request.headers.get("content-length"))
    if declared is not None and declared > limit:
        raise PayloadTooLarge(
            f"Request body exceeds maximum allowed size of {limit} bytes"
        )
    chunks: list[bytes] = []
    size = 0
    async for chunk in request.stream():
        size += len(chunk)
        if size > limit:
            raise PayloadTooLarge(
                f"Request body exceeds maximum allowed size of {limit} bytes"
            )
        chunks.append(chunk)
    return b"".join(chunks)


def _replay(request: Request, body: bytes) -> Request:
    """A request over the same scope whose receive channel yields `body`."""

    async def receive() -> dict[str, Any]:
        return {"type": "http.request", "body": body, "more_body": False}

    return Request(request.scope, receive)


async def read_gateway_request(request: Request, settings: Settings) -> GatewayRequest:
    """
    Read everything the pipeline needs up front. The body is capped by
    body_limit (PayloadTooLarge otherwise). Multipart bodies are parsed only
    when within the plain-upload ceiling; larger ones are rejected later by
    the size checks.
    """
    body = await _read_body(request, body_limit(request.url.path or "/", settings))
    files: list[UploadedPart] = []
    form: dict[str, str] = {}
    if (
        media_type(request.headers.get("content-type")) == MULTIPART_TYPE
        and len(body) <= settings.max_upload_size
    ):
        files, form = await _read_multipart(_replay(request, body))
    client_cert, client_dn = _client_certificate(request, settings)
    return GatewayRequest(
        method=request.method.upper(),
        path=request.url.path or "/",
        headers=request.headers,
        query=dict(request.query_params),
        body=body,
        client_host=request.client.host if request.client else None,
        client_cert=client_cert,
        client_dn=client_dn,
        cookies=dict(request.cookies),
        files=files,
        form=form,
    )
