"""
Gateway catch-all: every path not claimed by another router.

The body (and multipart form) is read on the event loop, capped by the
route's body limit; the pipeline itself is sync/blocking (file and Redis
I/O) and runs in a thread pool so requests are handled in parallel.
"""

import asyncio

from fastapi import APIRouter, Request
from fastapi.responses import Response

from mock_server.api.deps import PipelineDep
from mock_server.core.errors import GatewayError
from mock_server.core.gateway import read_gateway_request

router = APIRouter(prefix="", tags=["gateway"], include_in_schema=False)

GATEWAY_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"]


@router.api_route("/{path:path}", methods=GATEWAY_METHODS)
async def gateway_entry(path: str, request: Request, pipeline: PipelineDep) -> Response:
    try:
        gateway_request = await read_gateway_request(request, pipeline.gateway.settings)
    except GatewayError as e:
        return pipeline.reject(request.headers.get("origin"), e)
    return await asyncio.to_thread(pipeline.handle, gateway_request)
