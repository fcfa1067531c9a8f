import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import sentry_sdk
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.routing import APIRoute

from mock_server.api.main import api_router
from mock_server.api.routes.gateway import router as gateway_router
from mock_server.core.config import settings
from mock_server.models import EnvironmentEnum

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
_logger = logging.getLogger(__name__)


def custom_generate_unique_id(route: APIRoute) -> str:
    return f"{route.tags[0]}-{route.name}"


if settings.SENTRY_DSN and settings.ENVIRONMENT != EnvironmentEnum.LOCAL:
    sentry_sdk.init(dsn=str(settings.SENTRY_DSN), enable_tracing=True)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    _logger.info("Starting %s with settings %s", settings.PROJECT_NAME, settings.safe_dump())
    yield


app = FastAPI(
    title=settings.PROJECT_NAME,
    openapi_url="/_mock/openapi.json",
    docs_url="/_mock/docs",
    redoc_url=None,
    generate_unique_id_function=custom_generate_unique_id,
    lifespan=lifespan,
)


# ---------------------------------------------------------------------------
# Global exception handler: standardized error response format
# ---------------------------------------------------------------------------


@app.exception_handler(Exception)
async def unhandled_exception_handler(
    request: Request, exc: Exception
) -> JSONResponse:
    """Catch-all for anything that escaped the gateway pipeline: log, 500."""
    _logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    message = "Internal server error"
    if settings.ENVIRONMENT == EnvironmentEnum.LOCAL:
        message = f"Internal server error: {exc}"
    return JSONResponse(
        status_code=500,
        content={"error": "Internal Server Error", "message": message},
    )


# Probes first; the gateway catch-all takes every remaining path.
app.include_router(api_router)
app.include_router(gateway_router)
