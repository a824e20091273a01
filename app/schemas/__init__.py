"""Pydantic request/response schemas for the API."""

from app.schemas.health import HealthResponse, ReadinessErrorResponse, ReadinessResponse
from app.schemas.sync import (
    AccountSyncStateResponse,
    AutoScheduleResponse,
    CancelJobsResponse,
    CleanupResponse,
    EnqueueJobRequest,
    JobMetadataSchema,
    QueueRunResponse,
    ScheduleResponse,
    SyncJobResponse,
    WebhookAckResponse,
)

__all__ = [
    "AccountSyncStateResponse",
    "AutoScheduleResponse",
    "CancelJobsResponse",
    "CleanupResponse",
    "EnqueueJobRequest",
    "HealthResponse",
    "JobMetadataSchema",
    "QueueRunResponse",
    "ReadinessErrorResponse",
    "ReadinessResponse",
    "ScheduleResponse",
    "SyncJobResponse",
    "WebhookAckResponse",
]
