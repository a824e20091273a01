"""Sync orchestration API schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from app.domain.enums import (
    AccountSyncStatus,
    ScheduleMode,
    SyncJobStatus,
    SyncJobType,
)


class AccountSyncStateResponse(BaseModel):
    """Response for GET /sync/accounts/{id}."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    email_address: str
    is_active: bool
    sync_status: AccountSyncStatus
    has_cursor: bool = False
    last_sync_at: datetime | None
    last_successful_sync_at: datetime | None
    next_scheduled_sync_at: datetime | None
    error_count: int
    consecutive_errors: int
    sync_priority: int
    schedule_mode: ScheduleMode | None = None
    last_sync_error: str | None = None


class ScheduleResponse(BaseModel):
    """Response for GET /sync/accounts/{id}/schedule (computed, not persisted)."""

    model_config = ConfigDict(from_attributes=True)

    account_id: str
    immediate: bool
    next_sync_at: datetime
    priority: int
    reason: str


class JobMetadataSchema(BaseModel):
    """Executor hints carried on a job."""

    model_config = ConfigDict(from_attributes=True)

    folders: list[str] | None = Field(default=None, max_length=50)
    since: str | None = Field(default=None, max_length=64)
    limit: int | None = Field(default=None, ge=1, le=100_000)


class EnqueueJobRequest(BaseModel):
    """Request body for POST /sync/accounts/{id}/jobs."""

    job_type: SyncJobType = SyncJobType.INCREMENTAL
    priority: int = Field(default=2, ge=0, le=4, description="0 = most urgent")
    scheduled_for: datetime | None = Field(default=None, description="Default: now")
    max_retries: int | None = Field(default=None, ge=0, le=20)
    metadata: JobMetadataSchema = Field(default_factory=JobMetadataSchema)


class SyncJobResponse(BaseModel):
    """Response model for sync job endpoints."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    account_id: str
    job_type: SyncJobType
    status: SyncJobStatus
    priority: int
    scheduled_for: datetime
    started_at: datetime | None
    completed_at: datetime | None
    retry_count: int
    max_retries: int
    error_message: str | None
    metadata: JobMetadataSchema
    created_at: datetime
    updated_at: datetime


class CancelJobsResponse(BaseModel):
    """Response for DELETE /sync/accounts/{id}/jobs."""

    account_id: str
    cancelled: int


class WebhookAckResponse(BaseModel):
    """Response for POST webhook (202 Accepted)."""

    detail: str = "Webhook received"
    account_id: str
    job_id: str | None = None
    already_queued: bool = False


class AutoScheduleResponse(BaseModel):
    """Response for POST /sync/users/{user_id}/auto-schedule."""

    model_config = ConfigDict(from_attributes=True)

    user_id: str
    scheduled: int
    immediate: int
    skipped: int
    errors: int


class QueueRunResponse(BaseModel):
    """Response for POST /sync/queue/process."""

    model_config = ConfigDict(from_attributes=True)

    processed: int
    succeeded: int
    failed: int
    requeued_stale: int


class CleanupResponse(BaseModel):
    """Response for POST /sync/queue/cleanup."""

    deleted: int
    older_than_days: int
