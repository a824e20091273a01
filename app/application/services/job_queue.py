"""Persistent sync job queue: priority + scheduled-time ordering, single-flight per account.

Lifecycle: pending -> in_progress -> completed, or back to pending with a
bumped retry_count (transient retry), or failed (terminal). The
check-then-insert in enqueue and the claim in start are atomic in the
repository, so several dispatchers may share one queue.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from app.application.dtos.sync import EnqueueOptions, SyncJobResult
from app.domain.enums import JobPriority, SyncJobStatus
from app.domain.exceptions import (
    InvalidJobTransitionException,
    ResourceNotFoundException,
    ValidationException,
)
from app.shared.utils.datetime import ensure_utc, utc_now

if TYPE_CHECKING:
    from app.application.interfaces.repositories import ISyncJobRepository
    from app.application.services.backoff_policy import BackoffPolicy

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 5
DEFAULT_RETENTION_DAYS = 7
CANCELLED_MESSAGE = "Cancelled by user"
TIMED_OUT_MESSAGE = "Sync job timed out"
# Attempts to claim a job when another worker wins the race for it.
_CLAIM_ATTEMPTS = 5


class JobQueue:
    """Sync job queue over ISyncJobRepository."""

    def __init__(
        self,
        job_repo: "ISyncJobRepository",
        backoff: "BackoffPolicy",
        default_max_retries: int = DEFAULT_MAX_RETRIES,
    ) -> None:
        if default_max_retries < 0:
            raise ValueError("default_max_retries must be >= 0")
        self._repo = job_repo
        self._backoff = backoff
        self._default_max_retries = default_max_retries

    async def enqueue(
        self, account_id: str, options: EnqueueOptions | None = None
    ) -> SyncJobResult:
        """Create a pending job for the account.

        Raises:
            JobAlreadyQueuedException: the account already has a pending or
                in-progress job (sync already in flight; not fatal).
            ValidationException: priority outside [0, 4] or negative max_retries.
        """
        options = options or EnqueueOptions()
        if not JobPriority.is_valid(options.priority):
            raise ValidationException(
                f"priority must be an integer in [0, 4], got {options.priority!r}",
                field="priority",
            )
        max_retries = (
            self._default_max_retries
            if options.max_retries is None
            else options.max_retries
        )
        if max_retries < 0:
            raise ValidationException("max_retries must be >= 0", field="max_retries")
        scheduled_for = ensure_utc(options.scheduled_for) or utc_now()
        job = await self._repo.create_if_no_active(
            account_id=account_id,
            job_type=options.job_type,
            priority=int(options.priority),
            scheduled_for=scheduled_for,
            metadata=options.metadata,
            max_retries=max_retries,
        )
        logger.info(
            "Queued %s sync job %s for account %s (priority=%d, scheduled_for=%s)",
            job.job_type.value,
            job.id,
            account_id,
            job.priority,
            job.scheduled_for.isoformat(),
        )
        return job

    async def next_eligible(self, now: datetime | None = None) -> SyncJobResult | None:
        """Return the due pending job with the lowest priority value, earliest first."""
        return await self._repo.get_next_eligible(ensure_utc(now) or utc_now())

    async def start(self, job_id: str) -> SyncJobResult:
        """Claim a pending job (compare-and-set to in_progress) and stamp started_at."""
        now = utc_now()
        job = await self._repo.transition(
            job_id,
            SyncJobStatus.PENDING,
            SyncJobStatus.IN_PROGRESS,
            started_at=now,
            updated_at=now,
        )
        if job is None:
            raise await self._transition_error(job_id, SyncJobStatus.IN_PROGRESS)
        return job

    async def claim_next(self, now: datetime | None = None) -> SyncJobResult | None:
        """Find the next eligible job and claim it; retry if another worker claimed it first."""
        for _ in range(_CLAIM_ATTEMPTS):
            candidate = await self.next_eligible(now)
            if candidate is None:
                return None
            try:
                return await self.start(candidate.id)
            except InvalidJobTransitionException:
                logger.debug("Sync job %s was claimed by another worker", candidate.id)
        return None

    async def complete(self, job_id: str) -> SyncJobResult:
        """Mark an in-progress job completed and stamp completed_at."""
        now = utc_now()
        job = await self._repo.transition(
            job_id,
            SyncJobStatus.IN_PROGRESS,
            SyncJobStatus.COMPLETED,
            completed_at=now,
            updated_at=now,
        )
        if job is None:
            raise await self._transition_error(job_id, SyncJobStatus.COMPLETED)
        return job

    async def fail(
        self,
        job_id: str,
        error_message: str,
        *,
        retry_after_seconds: float | None = None,
        terminal: bool = False,
    ) -> SyncJobResult:
        """Record a failed attempt of an in-progress job.

        While retry_count < max_retries (and terminal is False) the job goes
        back to pending with retry_count + 1 and a backoff delay; a provider
        supplied retry_after_seconds replaces the computed delay. Otherwise
        the job becomes failed.
        """
        job = await self._repo.get_by_id(job_id)
        if job is None:
            raise ResourceNotFoundException("sync_job", job_id)
        now = utc_now()
        if not terminal and job.retry_count < job.max_retries:
            retry_count = job.retry_count + 1
            delay = self._backoff.resolve_delay(retry_count, retry_after_seconds)
            updated = await self._repo.transition(
                job_id,
                SyncJobStatus.IN_PROGRESS,
                SyncJobStatus.PENDING,
                retry_count=retry_count,
                scheduled_for=now + timedelta(seconds=delay),
                error_message=error_message,
                started_at=None,
                updated_at=now,
            )
            if updated is None:
                raise await self._transition_error(job_id, SyncJobStatus.PENDING)
            logger.info(
                "Sync job %s failed (attempt %d/%d); retrying in %.1fs: %s",
                job_id,
                retry_count,
                job.max_retries,
                delay,
                error_message,
            )
            return updated

        updated = await self._repo.transition(
            job_id,
            SyncJobStatus.IN_PROGRESS,
            SyncJobStatus.FAILED,
            error_message=error_message,
            completed_at=now,
            updated_at=now,
        )
        if updated is None:
            raise await self._transition_error(job_id, SyncJobStatus.FAILED)
        logger.warning(
            "Sync job %s for account %s failed permanently after %d retries: %s",
            job_id,
            job.account_id,
            job.retry_count,
            error_message,
        )
        return updated

    async def cancel_account_jobs(self, account_id: str) -> int:
        """Fail all pending jobs of the account with reason "cancelled". In-progress jobs are left alone."""
        count = await self._repo.cancel_pending_for_account(
            account_id, CANCELLED_MESSAGE, utc_now()
        )
        if count:
            logger.info("Cancelled %d pending sync job(s) for account %s", count, account_id)
        return count

    async def cleanup(self, older_than_days: int = DEFAULT_RETENTION_DAYS) -> int:
        """Delete completed jobs older than the retention window. Failed and pending jobs are kept."""
        if older_than_days < 0:
            raise ValidationException("older_than_days must be >= 0", field="older_than_days")
        cutoff = utc_now() - timedelta(days=older_than_days)
        deleted = await self._repo.delete_completed_before(cutoff)
        logger.info("Deleted %d completed sync job(s) older than %s", deleted, cutoff.isoformat())
        return deleted

    async def requeue_stale(self, timeout_seconds: float) -> int:
        """Fail in-progress jobs whose started_at is older than timeout_seconds.

        Each goes through fail(), so it is retried or failed like any other
        attempt and the account's single-flight slot is released.
        """
        cutoff = utc_now() - timedelta(seconds=timeout_seconds)
        stale = await self._repo.list_in_progress_started_before(cutoff)
        reaped = 0
        for job in stale:
            try:
                await self.fail(job.id, TIMED_OUT_MESSAGE)
            except InvalidJobTransitionException:
                # Finished between the listing and the update.
                continue
            reaped += 1
        if reaped:
            logger.warning("Reaped %d stale in-progress sync job(s)", reaped)
        return reaped

    async def get_job(self, job_id: str) -> SyncJobResult:
        """Return a job by id. Raises ResourceNotFoundException if missing."""
        job = await self._repo.get_by_id(job_id)
        if job is None:
            raise ResourceNotFoundException("sync_job", job_id)
        return job

    async def list_account_jobs(self, account_id: str, limit: int = 10) -> list[SyncJobResult]:
        """Return the account's most recent jobs."""
        return await self._repo.list_by_account(account_id, limit=limit)

    async def _transition_error(
        self, job_id: str, target: SyncJobStatus
    ) -> Exception:
        job = await self._repo.get_by_id(job_id)
        if job is None:
            return ResourceNotFoundException("sync_job", job_id)
        return InvalidJobTransitionException(job_id, job.status.value, target.value)
