"""Sync job repository: persistent queue with atomic enqueue and claim."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.application.dtos.sync import JobMetadata, SyncJobResult
from app.domain.enums import SyncJobStatus, SyncJobType
from app.domain.exceptions import JobAlreadyQueuedException, ResourceNotFoundException
from app.infrastructure.persistence.models.sync_job import SyncJob
from app.infrastructure.persistence.repositories.base import BaseRepository
from app.shared.utils.datetime import ensure_utc

_ACTIVE_VALUES = tuple(s.value for s in SyncJobStatus.active())


def _to_result(j: SyncJob) -> SyncJobResult:
    """Map SyncJob ORM to SyncJobResult DTO."""
    return SyncJobResult(
        id=j.id,
        account_id=j.account_id,
        job_type=SyncJobType(j.job_type),
        status=SyncJobStatus(j.status),
        priority=j.priority,
        scheduled_for=ensure_utc(j.scheduled_for),
        started_at=ensure_utc(j.started_at),
        completed_at=ensure_utc(j.completed_at),
        retry_count=j.retry_count,
        max_retries=j.max_retries,
        error_message=j.error_message,
        metadata=JobMetadata.from_dict(j.job_metadata),
        created_at=ensure_utc(j.created_at),
        updated_at=ensure_utc(j.updated_at),
    )


class SyncJobRepository(BaseRepository[SyncJob]):
    """Sync job repository. Implements ISyncJobRepository.

    Single-flight per account is enforced by the uq_sync_job_active_account
    partial unique index; the claim is an UPDATE ... WHERE status = :from
    RETURNING, so only one worker wins.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        super().__init__(session_factory, SyncJob)

    async def create_if_no_active(
        self,
        account_id: str,
        job_type: SyncJobType,
        priority: int,
        scheduled_for: datetime,
        metadata: JobMetadata,
        max_retries: int,
    ) -> SyncJobResult:
        """Insert a pending job; JobAlreadyQueuedException if one is already active."""
        job = SyncJob(
            account_id=account_id,
            job_type=job_type.value,
            status=SyncJobStatus.PENDING.value,
            priority=priority,
            scheduled_for=scheduled_for,
            retry_count=0,
            max_retries=max_retries,
            job_metadata=metadata.to_dict(),
        )
        async with self._transaction() as session:
            try:
                async with session.begin_nested():
                    session.add(job)
                    await session.flush()
            except IntegrityError as e:
                detail = str(e.orig)
                if "foreign key" in detail.lower():
                    raise ResourceNotFoundException("email_account", account_id) from e
                if "uq_sync_job_active_account" not in detail:
                    raise
                existing = await session.execute(
                    select(SyncJob.id).where(
                        SyncJob.account_id == account_id,
                        SyncJob.status.in_(_ACTIVE_VALUES),
                    )
                )
                raise JobAlreadyQueuedException(
                    account_id, existing.scalars().first()
                ) from e
            await session.refresh(job)
            return _to_result(job)

    async def get_by_id(self, job_id: str) -> SyncJobResult | None:
        """Return job by ID."""
        async with self._session() as session:
            row = await self._get_orm(session, job_id)
            return _to_result(row) if row else None

    async def get_active_for_account(self, account_id: str) -> SyncJobResult | None:
        """Return the account's pending or in-progress job, if any."""
        async with self._session() as session:
            result = await session.execute(
                select(SyncJob).where(
                    SyncJob.account_id == account_id,
                    SyncJob.status.in_(_ACTIVE_VALUES),
                )
            )
            row = result.scalars().first()
            return _to_result(row) if row else None

    async def get_next_eligible(self, now: datetime) -> SyncJobResult | None:
        """Due pending job with the lowest (priority, scheduled_for)."""
        async with self._session() as session:
            result = await session.execute(
                select(SyncJob)
                .where(
                    SyncJob.status == SyncJobStatus.PENDING.value,
                    SyncJob.scheduled_for <= now,
                )
                .order_by(SyncJob.priority.asc(), SyncJob.scheduled_for.asc())
                .limit(1)
            )
            row = result.scalar_one_or_none()
            return _to_result(row) if row else None

    async def transition(
        self,
        job_id: str,
        from_status: SyncJobStatus,
        to_status: SyncJobStatus,
        **values: Any,
    ) -> SyncJobResult | None:
        """Compare-and-set status; None if the job is missing or not in from_status."""
        async with self._transaction() as session:
            result = await session.execute(
                update(SyncJob)
                .where(SyncJob.id == job_id, SyncJob.status == from_status.value)
                .values(status=to_status.value, **values)
                .returning(SyncJob)
                .execution_options(synchronize_session=False)
            )
            row = result.scalar_one_or_none()
            return _to_result(row) if row else None

    async def list_in_progress_started_before(self, cutoff: datetime) -> list[SyncJobResult]:
        """In-progress jobs whose started_at is older than cutoff."""
        async with self._session() as session:
            result = await session.execute(
                select(SyncJob)
                .where(
                    SyncJob.status == SyncJobStatus.IN_PROGRESS.value,
                    SyncJob.started_at < cutoff,
                )
                .order_by(SyncJob.started_at.asc())
            )
            return [_to_result(j) for j in result.scalars().all()]

    async def cancel_pending_for_account(
        self, account_id: str, message: str, at: datetime
    ) -> int:
        """Move the account's pending jobs to failed with message. Return how many."""
        async with self._transaction() as session:
            result = await session.execute(
                update(SyncJob)
                .where(
                    SyncJob.account_id == account_id,
                    SyncJob.status == SyncJobStatus.PENDING.value,
                )
                .values(
                    status=SyncJobStatus.FAILED.value,
                    error_message=message,
                    completed_at=at,
                    updated_at=func.now(),
                )
            )
            return result.rowcount

    async def delete_completed_before(self, cutoff: datetime) -> int:
        """Delete completed jobs whose completed_at is older than cutoff."""
        async with self._transaction() as session:
            result = await session.execute(
                delete(SyncJob).where(
                    SyncJob.status == SyncJobStatus.COMPLETED.value,
                    SyncJob.completed_at < cutoff,
                )
            )
            return result.rowcount

    async def list_by_account(self, account_id: str, limit: int = 10) -> list[SyncJobResult]:
        """The account's jobs, newest first."""
        async with self._session() as session:
            result = await session.execute(
                select(SyncJob)
                .where(SyncJob.account_id == account_id)
                .order_by(SyncJob.created_at.desc(), SyncJob.id.desc())
                .limit(limit)
            )
            return [_to_result(j) for j in result.scalars().all()]
