"""Health check endpoints. Used for liveness and readiness probes."""

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from app.core.config import get_settings
from app.schemas.health import (
    HealthResponse,
    ReadinessErrorResponse,
    ReadinessResponse,
)

router = APIRouter()


@router.get("", response_model=HealthResponse)
def health_check() -> HealthResponse:
    """Return simple ok status for liveness."""
    return HealthResponse(version=get_settings().app_version)


@router.get(
    "/ready",
    response_model=ReadinessResponse,
    responses={503: {"description": "Database unreachable", "model": ReadinessErrorResponse}},
)
async def readiness_check() -> ReadinessResponse | JSONResponse:
    """Return 200 if the configured backend is usable; 503 if Postgres does not answer."""
    settings = get_settings()
    if settings.database_backend == "postgres":
        from app.infrastructure.persistence.database import check_connection

        if not await check_connection():
            return JSONResponse(
                status_code=503,
                content=ReadinessErrorResponse(
                    message="Database is unreachable",
                ).model_dump(),
            )
    return ReadinessResponse(database_backend=settings.database_backend)
