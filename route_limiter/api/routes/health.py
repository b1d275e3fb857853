from __future__ import annotations

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check() -> dict:
    """Liveness probe.

    Returns:
        dict: A dictionary with a single "status" key set to "ok".
    """

    return {"status": "ok"}


@router.get("/health/ready")
async def readiness_check(request: Request) -> JSONResponse:
    """Readiness probe reporting the counter store state.

    A missing store is not a failure (the limiter runs as a pass-through), so
    only an unreachable configured store reports 503.
    """

    limiter = getattr(request.app.state, "rate_limiter", None)
    store_status = await limiter.store_status() if limiter is not None else "not_configured"
    status_code = (
        status.HTTP_503_SERVICE_UNAVAILABLE
        if store_status == "unavailable"
        else status.HTTP_200_OK
    )
    return JSONResponse(
        status_code=status_code,
        content={
            "status": "ok" if status_code == status.HTTP_200_OK else "degraded",
            "rate_limit_store": store_status,
        },
    )
