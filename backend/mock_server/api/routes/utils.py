from fastapi import APIRouter
from fastapi.responses import JSONResponse

from mock_server.api.deps import GatewayDep
from mock_server.core.health import liveness_check, readiness_check

router = APIRouter(prefix="/_mock", tags=["utils"])


@router.get("/liveness", response_model=None)
async def liveness() -> bool | JSONResponse:
    """
    Liveness probe: is the process alive and responsive? No I/O.
    """
    ok, failures = liveness_check()
    if not ok:
        return JSONResponse(
            status_code=503,
            content={"success": False, "message": "Process unhealthy", "data": failures},
        )
    return True


@router.get("/health-check", response_model=None)
def health_check(gateway: GatewayDep) -> bool | JSONResponse:
    """
    Readiness probe: storage directories writable, Redis reachable when it
    is the configured store. 200 with true, 503 otherwise.
    """
    ok, failures = readiness_check(gateway.settings)
    if not ok:
        return JSONResponse(
            status_code=503,
            content={
                "success": False,
                "message": "Service Unavailable",
                "data": failures,
            },
        )
    return True
