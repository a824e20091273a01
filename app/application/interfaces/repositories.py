"""Repository interfaces (ports) for the application layer.

Protocols define contracts that infrastructure implementations must fulfill (DIP).
All types reference application DTOs only; no infrastructure imports.
Postgres and in-memory backends both implement these.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any, Protocol

from app.domain.enums import SyncJobStatus, SyncJobType

if TYPE_CHECKING:
    from app.application.dtos.sync import AccountSyncState, JobMetadata, SyncJobResult
    from app.domain.value_objects.sync import AccountActivity


# Account sync-state repository interface
class ISyncAccountRepository(Protocol):
    """Protocol for reading and writing the sync-state fields of email accounts."""

    async def get_state(self, account_id: str) -> AccountSyncState | None:
        """Return sync state for the account, or None if it does not exist."""

    async def update_state(self, account_id: str, **values: Any) -> bool:
        """Set the given sync-state columns. Return False if the account does not exist."""

    async def record_failure(self, account_id: str, message: str, at: datetime) -> bool:
        """Atomically set status=error, store message, bump error_count and
        consecutive_errors, and set last_sync_at. Return False if not found."""

    async def list_schedulable(self, user_id: str) -> list[AccountSyncState]:
        """Return the user's active accounts whose status is not paused."""

    async def list_user_ids_with_active_accounts(self) -> list[str]:
        """Return distinct ids of users owning at least one active account."""

    async def get_activity(self, account_id: str, now: datetime) -> AccountActivity:
        """Return message counts for the last 24h / 7d and hours since the last read."""


# Sync job repository interface
class ISyncJobRepository(Protocol):
    """Protocol for the persistent sync job queue."""

    async def create_if_no_active(
        self,
        account_id: str,
        job_type: SyncJobType,
        priority: int,
        scheduled_for: datetime,
        metadata: JobMetadata,
        max_retries: int,
    ) -> SyncJobResult:
        """Insert a pending job unless the account already has a pending or
        in-progress one. The check and the insert are atomic; raises
        JobAlreadyQueuedException on conflict."""

    async def get_by_id(self, job_id: str) -> SyncJobResult | None:
        """Return job by ID."""

    async def get_active_for_account(self, account_id: str) -> SyncJobResult | None:
        """Return the account's pending or in-progress job, if any."""

    async def get_next_eligible(self, now: datetime) -> SyncJobResult | None:
        """Return the pending job with scheduled_for <= now, ordered by
        (priority asc, scheduled_for asc)."""

    async def transition(
        self,
        job_id: str,
        from_status: SyncJobStatus,
        to_status: SyncJobStatus,
        **values: Any,
    ) -> SyncJobResult | None:
        """Compare-and-set the job status and apply values. Return the updated
        job, or None when the job is missing or not in from_status."""

    async def list_in_progress_started_before(self, cutoff: datetime) -> list[SyncJobResult]:
        """Return in-progress jobs whose started_at is older than cutoff."""

    async def cancel_pending_for_account(
        self, account_id: str, message: str, at: datetime
    ) -> int:
        """Move all pending jobs of the account to failed. Return how many."""

    async def delete_completed_before(self, cutoff: datetime) -> int:
        """Delete completed jobs whose completed_at is older than cutoff. Return how many."""

    async def list_by_account(self, account_id: str, limit: int = 10) -> list[SyncJobResult]:
        """Return the account's jobs, newest first."""
