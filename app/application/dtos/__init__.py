"""Application DTOs (no ORM dependency)."""

from app.application.dtos.sync import (
    AccountSyncState,
    AutoScheduleResult,
    EnqueueOptions,
    JobMetadata,
    QueueRunResult,
    SyncExecutionResult,
    SyncJobResult,
    SyncRequest,
)

__all__ = [
    "AccountSyncState",
    "AutoScheduleResult",
    "EnqueueOptions",
    "JobMetadata",
    "QueueRunResult",
    "SyncExecutionResult",
    "SyncJobResult",
    "SyncRequest",
]
