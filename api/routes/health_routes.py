"""Health check endpoints."""

from fastapi import APIRouter, HTTPException, Request
from starlette import status

from core.config import get_settings
from core.database import check_db_connection, get_pool_status
from core.ratelimit import limiter
from schemas import HealthResponse, PoolStatusResponse, ReadinessResponse

router = APIRouter(tags=["health"])

SERVICE_NAME = "inbox-api"


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """Liveness endpoint."""
    return HealthResponse(status="healthy", service=SERVICE_NAME)


@router.get(
    "/ready",
    response_model=ReadinessResponse,
    responses={
        503: {
            "description": "Service unavailable - init failed or DB unreachable",
            "content": {
                "application/json": {"example": {"detail": "Database unavailable"}}
            },
        }
    },
)
@limiter.limit("30/minute")
async def ready(request: Request) -> ReadinessResponse:
    """Readiness endpoint.

    Returns 200 only when startup completed and the database is reachable.
    AI availability is reported but never makes the service unready; captures
    are accepted and queued without it.
    """
    init_error = getattr(request.app.state, "init_error", None)
    if init_error:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"Initialization failed: {init_error}",
        )

    if not getattr(request.app.state, "init_done", False):
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Starting",
        )

    engine = request.app.state.engine
    try:
        await check_db_connection(engine)
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database unavailable",
        ) from e

    pool = get_pool_status(engine)
    queue = getattr(request.app.state, "inbox_queue", None)

    return ReadinessResponse(
        status="ready",
        database="ok",
        ai_configured=get_settings().ai_configured,
        queue=queue.get_queue_stats() if queue is not None else None,
        pool=PoolStatusResponse(**pool._asdict()) if pool is not None else None,
    )
