"""Health check API schemas."""

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Response for GET /health (liveness)."""

    status: str = Field(default="ok", description="Service status")
    version: str | None = Field(default=None, description="Application version")


class ReadinessResponse(BaseModel):
    """Response for GET /health/ready when ready."""

    status: str = Field(default="ok", description="Readiness status")
    database_backend: str


class ReadinessErrorResponse(BaseModel):
    """Response for GET /health/ready when the database is unreachable (503)."""

    status: str = Field(default="not_ready", description="Readiness status")
    message: str = Field(..., description="Reason (e.g. database unreachable)")
