"""DTOs for sync orchestration (no dependency on ORM)."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from app.domain.enums import (
    AccountSyncStatus,
    JobPriority,
    ScheduleMode,
    SyncJobStatus,
    SyncJobType,
    SyncMode,
)


@dataclass(frozen=True)
class AccountSyncState:
    """Sync-state fields of an email account row."""

    id: str
    user_id: str
    email_address: str
    is_active: bool
    cursor: str | None
    sync_status: AccountSyncStatus
    last_sync_at: datetime | None
    last_successful_sync_at: datetime | None
    next_scheduled_sync_at: datetime | None
    error_count: int
    consecutive_errors: int
    sync_priority: int
    schedule_mode: ScheduleMode | None = None
    last_sync_error: str | None = None


@dataclass(frozen=True)
class JobMetadata:
    """Executor hints carried on a job. Opaque to the queue."""

    folders: tuple[str, ...] | None = None
    since: str | None = None
    limit: int | None = None

    def to_dict(self) -> dict[str, Any] | None:
        """Serialize for the JSON column; None when empty."""
        data: dict[str, Any] = {}
        if self.folders:
            data["folders"] = list(self.folders)
        if self.since:
            data["since"] = self.since
        if self.limit is not None:
            data["limit"] = self.limit
        return data or None

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> JobMetadata:
        """Deserialize from the JSON column (unknown keys ignored)."""
        if not data:
            return cls()
        folders = data.get("folders")
        return cls(
            folders=tuple(folders) if folders else None,
            since=data.get("since"),
            limit=data.get("limit"),
        )


@dataclass(frozen=True)
class EnqueueOptions:
    """Options for JobQueue.enqueue. scheduled_for None means now; max_retries None means the configured default."""

    job_type: SyncJobType = SyncJobType.INCREMENTAL
    priority: int = JobPriority.NORMAL
    scheduled_for: datetime | None = None
    metadata: JobMetadata = field(default_factory=JobMetadata)
    max_retries: int | None = None


@dataclass(frozen=True)
class SyncJobResult:
    """Sync job row."""

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
    metadata: JobMetadata
    created_at: datetime
    updated_at: datetime

    @property
    def is_active(self) -> bool:
        """True while the job holds the account's single-flight slot."""
        return self.status in SyncJobStatus.active()


@dataclass(frozen=True)
class SyncRequest:
    """Arguments for one Sync Executor round-trip."""

    account_id: str
    mode: SyncMode
    cursor: str | None = None
    folders: tuple[str, ...] | None = None
    since: str | None = None
    limit: int | None = None


@dataclass(frozen=True)
class SyncExecutionResult:
    """Outcome reported by the Sync Executor.

    items_total / items_failed describe partial batches; when both are set
    the dispatcher applies the partial-failure threshold.
    """

    success: bool
    cursor: str | None = None
    error: BaseException | str | None = None
    items_total: int | None = None
    items_failed: int | None = None


@dataclass(frozen=True)
class QueueRunResult:
    """Summary of one dispatcher pass."""

    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    requeued_stale: int = 0


@dataclass(frozen=True)
class AutoScheduleResult:
    """Summary of auto_schedule for one user."""

    user_id: str
    scheduled: int = 0
    immediate: int = 0
    skipped: int = 0
    errors: int = 0
