"""
CRUD on arbitrary paths, backed by the flat ResourceStore. Multipart and
base64 POSTs and binary PUTs are handed to the plain upload collaborator.
"""

import posixpath

from fastapi.responses import Response

from mock_server.core.errors import ClientInputError, NotFound, UnsupportedMediaType
from mock_server.core.gateway.context import GatewayContext
from mock_server.core.gateway.request_response import (
    FORM_TYPE,
    JSON_TYPE,
    MULTIPART_TYPE,
    error_response,
    json_body,
    json_response,
    parse_body,
)
from mock_server.core.gateway.services import Gateway
from mock_server.handlers.uploads import check_declared_length


def _require_content_type(ctx: GatewayContext) -> None:
    if not ctx.request.content_type:
        raise ClientInputError(
            f"Content-Type header is required for {ctx.request.method} requests"
        )


def get_resource(gw: Gateway, ctx: GatewayContext) -> Response:
    path = ctx.request.path
    data = gw.resources.retrieve(path)
    if data is None:
        raise NotFound(f"Resource '{path}' not found")
    return json_response({"data": data})


def post_resource(gw: Gateway, ctx: GatewayContext) -> Response:
    req = ctx.request
    _require_content_type(ctx)
    max_size = gw.settings.max_upload_size

    if req.has_type(MULTIPART_TYPE):
        check_declared_length(req, max_size)
        return json_response(gw.files.save_multipart(req.files, max_size), 201)

    if req.has_type(JSON_TYPE):
        body = json_body(req)
        if isinstance(body, dict) and body.get("type") == "base64":
            return json_response(gw.files.save_base64(body, max_size), 201)
    elif req.has_type(FORM_TYPE):
        body = parse_body(req)
    else:
        raise UnsupportedMediaType(
            "Content-Type must be application/json or "
            "application/x-www-form-urlencoded for data storage"
        )

    gw.resources.store(req.path, body)
    return json_response({"message": "Resource created", "resource": req.path}, 201)


def put_resource(gw: Gateway, ctx: GatewayContext) -> Response:
    req = ctx.request
    _require_content_type(ctx)

    if req.is_binary():
        max_size = gw.settings.max_upload_size
        check_declared_length(req, max_size)
        filename = posixpath.basename(req.path.rstrip("/")) or None
        return json_response(gw.files.save_raw(req.body, filename, max_size))

    if not req.has_type(JSON_TYPE):
        raise UnsupportedMediaType("Content-Type must be application/json for data updates")
    existed = gw.resources.upsert(req.path, json_body(req))
    if existed:
        return json_response({"message": "Resource updated", "resource": req.path})
    return json_response({"message": "Resource created", "resource": req.path}, 201)


def patch_resource(gw: Gateway, ctx: GatewayContext) -> Response:
    req = ctx.request
    _require_content_type(ctx)
    if not req.has_type(JSON_TYPE):
        raise UnsupportedMediaType("Content-Type must be application/json for PATCH requests")
    merged = gw.resources.merge(req.path, json_body(req))
    if merged is None:
        return error_response(404, "Resource not found")
    return json_response({"message": "Resource patched", "resource": req.path})


def delete_resource(gw: Gateway, ctx: GatewayContext) -> Response:
    path = ctx.request.path
    if not gw.resources.delete(path):
        raise NotFound("Resource not found")
    return json_response({"message": "Resource deleted", "resource": path})


_METHODS = {
    "GET": get_resource,
    "POST": post_resource,
    "PUT": put_resource,
    "PATCH": patch_resource,
    "DELETE": delete_resource,
}


def dispatch(gw: Gateway, ctx: GatewayContext) -> Response:
    handler = _METHODS.get(ctx.request.method)
    if handler is None:
        return error_response(405, "Method not supported")
    return handler(gw, ctx)


def list_resources(gw: Gateway, ctx: GatewayContext) -> Response:
    return json_response({"resources": gw.resources.list_resources()})
