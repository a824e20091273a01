"""In-process persistence backend (database_backend = "memory").

Repositories share one InMemorySyncStore; every read-modify-write runs
under the store's asyncio.Lock, which gives the same atomicity the SQL
backend gets from its unique index and compare-and-set UPDATE. State lives
for the life of the process. Used for local development and tests.
"""

from __future__ import annotations

import asyncio
import itertools
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Any

from app.application.dtos.sync import AccountSyncState, JobMetadata, SyncJobResult
from app.domain.enums import AccountSyncStatus, ScheduleMode, SyncJobStatus, SyncJobType
from app.domain.exceptions import JobAlreadyQueuedException, ResourceNotFoundException
from app.domain.value_objects.sync import AccountActivity
from app.infrastructure.persistence.repositories.email_account_repo import SYNC_STATE_COLUMNS
from app.shared.utils.datetime import ensure_utc, utc_now
from app.shared.utils.generators import generate_cuid


@dataclass
class _StoredMessage:
    account_id: str
    provider_message_id: str
    received_at: datetime
    read_at: datetime | None = None


@dataclass
class InMemorySyncStore:
    """Accounts, jobs and messages held in dicts, guarded by one lock."""

    accounts: dict[str, AccountSyncState] = field(default_factory=dict)
    jobs: dict[str, SyncJobResult] = field(default_factory=dict)
    messages: list[_StoredMessage] = field(default_factory=list)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    # Insertion order for stable newest-first listing.
    _job_seq: dict[str, int] = field(default_factory=dict)
    _counter: itertools.count = field(default_factory=itertools.count)

    def add_account(
        self,
        user_id: str,
        email_address: str,
        *,
        account_id: str | None = None,
        is_active: bool = True,
        sync_status: AccountSyncStatus = AccountSyncStatus.IDLE,
        cursor: str | None = None,
        last_sync_at: datetime | None = None,
        consecutive_errors: int = 0,
        schedule_mode: ScheduleMode | None = None,
    ) -> AccountSyncState:
        """Seed an account (not part of the repository protocol)."""
        state = AccountSyncState(
            id=account_id or generate_cuid(),
            user_id=user_id,
            email_address=email_address,
            is_active=is_active,
            cursor=cursor,
            sync_status=sync_status,
            last_sync_at=ensure_utc(last_sync_at),
            last_successful_sync_at=None,
            next_scheduled_sync_at=None,
            error_count=consecutive_errors,
            consecutive_errors=consecutive_errors,
            sync_priority=2,
            schedule_mode=schedule_mode,
        )
        self.accounts[state.id] = state
        return state

    def add_message(
        self,
        account_id: str,
        received_at: datetime,
        read_at: datetime | None = None,
        provider_message_id: str | None = None,
    ) -> None:
        """Seed a synced message for activity analysis."""
        self.messages.append(
            _StoredMessage(
                account_id=account_id,
                provider_message_id=provider_message_id or generate_cuid(),
                received_at=ensure_utc(received_at),
                read_at=ensure_utc(read_at),
            )
        )


class InMemoryEmailAccountRepository:
    """Implements ISyncAccountRepository over InMemorySyncStore."""

    def __init__(self, store: InMemorySyncStore) -> None:
        self._store = store

    async def get_state(self, account_id: str) -> AccountSyncState | None:
        return self._store.accounts.get(account_id)

    async def update_state(self, account_id: str, **values: Any) -> bool:
        unknown = set(values) - SYNC_STATE_COLUMNS
        if unknown:
            raise ValueError(f"Not sync-state columns: {sorted(unknown)}")
        async with self._store.lock:
            state = self._store.accounts.get(account_id)
            if state is None:
                return False
            self._store.accounts[account_id] = replace(state, **values)
            return True

    async def record_failure(self, account_id: str, message: str, at: datetime) -> bool:
        async with self._store.lock:
            state = self._store.accounts.get(account_id)
            if state is None:
                return False
            self._store.accounts[account_id] = replace(
                state,
                sync_status=AccountSyncStatus.ERROR,
                last_sync_error=message,
                last_sync_at=at,
                error_count=state.error_count + 1,
                consecutive_errors=state.consecutive_errors + 1,
            )
            return True

    async def list_schedulable(self, user_id: str) -> list[AccountSyncState]:
        return [
            a
            for a in self._store.accounts.values()
            if a.user_id == user_id
            and a.is_active
            and a.sync_status != AccountSyncStatus.PAUSED
        ]

    async def list_user_ids_with_active_accounts(self) -> list[str]:
        return sorted({a.user_id for a in self._store.accounts.values() if a.is_active})

    async def get_activity(self, account_id: str, now: datetime) -> AccountActivity:
        day_ago = now - timedelta(days=1)
        week_ago = now - timedelta(days=7)
        mine = [m for m in self._store.messages if m.account_id == account_id]
        reads = [m.read_at for m in mine if m.read_at is not None]
        last_read = max(reads) if reads else None
        return AccountActivity(
            emails_last_24h=sum(1 for m in mine if m.received_at >= day_ago),
            emails_last_7d=sum(1 for m in mine if m.received_at >= week_ago),
            hours_since_read=(
                (now - last_read).total_seconds() / 3600 if last_read is not None else None
            ),
        )


class InMemorySyncJobRepository:
    """Implements ISyncJobRepository over InMemorySyncStore."""

    def __init__(self, store: InMemorySyncStore) -> None:
        self._store = store

    def _active_for(self, account_id: str) -> SyncJobResult | None:
        for job in self._store.jobs.values():
            if job.account_id == account_id and job.is_active:
                return job
        return None

    async def create_if_no_active(
        self,
        account_id: str,
        job_type: SyncJobType,
        priority: int,
        scheduled_for: datetime,
        metadata: JobMetadata,
        max_retries: int,
    ) -> SyncJobResult:
        async with self._store.lock:
            if account_id not in self._store.accounts:
                raise ResourceNotFoundException("email_account", account_id)
            existing = self._active_for(account_id)
            if existing is not None:
                raise JobAlreadyQueuedException(account_id, existing.id)
            now = utc_now()
            job = SyncJobResult(
                id=generate_cuid(),
                account_id=account_id,
                job_type=job_type,
                status=SyncJobStatus.PENDING,
                priority=priority,
                scheduled_for=scheduled_for,
                started_at=None,
                completed_at=None,
                retry_count=0,
                max_retries=max_retries,
                error_message=None,
                metadata=metadata,
                created_at=now,
                updated_at=now,
            )
            self._store.jobs[job.id] = job
            self._store._job_seq[job.id] = next(self._store._counter)
            return job

    async def get_by_id(self, job_id: str) -> SyncJobResult | None:
        return self._store.jobs.get(job_id)

    async def get_active_for_account(self, account_id: str) -> SyncJobResult | None:
        return self._active_for(account_id)

    async def get_next_eligible(self, now: datetime) -> SyncJobResult | None:
        due = [
            j
            for j in self._store.jobs.values()
            if j.status == SyncJobStatus.PENDING and j.scheduled_for <= now
        ]
        if not due:
            return None
        return min(due, key=lambda j: (j.priority, j.scheduled_for, self._store._job_seq[j.id]))

    async def transition(
        self,
        job_id: str,
        from_status: SyncJobStatus,
        to_status: SyncJobStatus,
        **values: Any,
    ) -> SyncJobResult | None:
        async with self._store.lock:
            job = self._store.jobs.get(job_id)
            if job is None or job.status != from_status:
                return None
            updated = replace(job, status=to_status, **values)
            self._store.jobs[job_id] = updated
            return updated

    async def list_in_progress_started_before(self, cutoff: datetime) -> list[SyncJobResult]:
        return sorted(
            (
                j
                for j in self._store.jobs.values()
                if j.status == SyncJobStatus.IN_PROGRESS
                and j.started_at is not None
                and j.started_at < cutoff
            ),
            key=lambda j: j.started_at,
        )

    async def cancel_pending_for_account(
        self, account_id: str, message: str, at: datetime
    ) -> int:
        async with self._store.lock:
            pending = [
                j
                for j in self._store.jobs.values()
                if j.account_id == account_id and j.status == SyncJobStatus.PENDING
            ]
            for job in pending:
                self._store.jobs[job.id] = replace(
                    job,
                    status=SyncJobStatus.FAILED,
                    error_message=message,
                    completed_at=at,
                    updated_at=at,
                )
            return len(pending)

    async def delete_completed_before(self, cutoff: datetime) -> int:
        async with self._store.lock:
            doomed = [
                j.id
                for j in self._store.jobs.values()
                if j.status == SyncJobStatus.COMPLETED
                and j.completed_at is not None
                and j.completed_at < cutoff
            ]
            for job_id in doomed:
                del self._store.jobs[job_id]
                self._store._job_seq.pop(job_id, None)
            return len(doomed)

    async def list_by_account(self, account_id: str, limit: int = 10) -> list[SyncJobResult]:
        jobs = [j for j in self._store.jobs.values() if j.account_id == account_id]
        jobs.sort(key=lambda j: self._store._job_seq[j.id], reverse=True)
        return jobs[:limit]
