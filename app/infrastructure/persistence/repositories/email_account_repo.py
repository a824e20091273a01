"""Email account repository: sync-state reads/writes and activity analysis."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.application.dtos.sync import AccountSyncState
from app.domain.enums import AccountSyncStatus, ScheduleMode
from app.domain.value_objects.sync import AccountActivity
from app.infrastructure.persistence.models.email_account import EmailAccount
from app.infrastructure.persistence.models.synced_message import SyncedMessage
from app.infrastructure.persistence.repositories.base import BaseRepository
from app.shared.utils.datetime import ensure_utc

# Columns update_state may write.
SYNC_STATE_COLUMNS = frozenset({
    "cursor",
    "sync_status",
    "last_sync_at",
    "last_successful_sync_at",
    "next_scheduled_sync_at",
    "error_count",
    "consecutive_errors",
    "sync_priority",
    "schedule_mode",
    "last_sync_error",
})


def _to_state(a: EmailAccount) -> AccountSyncState:
    """Map EmailAccount ORM to AccountSyncState DTO."""
    return AccountSyncState(
        id=a.id,
        user_id=a.user_id,
        email_address=a.email_address,
        is_active=a.is_active,
        cursor=a.cursor,
        sync_status=AccountSyncStatus(a.sync_status),
        last_sync_at=ensure_utc(a.last_sync_at),
        last_successful_sync_at=ensure_utc(a.last_successful_sync_at),
        next_scheduled_sync_at=ensure_utc(a.next_scheduled_sync_at),
        error_count=a.error_count,
        consecutive_errors=a.consecutive_errors,
        sync_priority=a.sync_priority,
        schedule_mode=ScheduleMode(a.schedule_mode) if a.schedule_mode else None,
        last_sync_error=a.last_sync_error,
    )


def _column_values(values: dict[str, Any]) -> dict[str, Any]:
    unknown = set(values) - SYNC_STATE_COLUMNS
    if unknown:
        raise ValueError(f"Not sync-state columns: {sorted(unknown)}")
    return {k: v.value if hasattr(v, "value") else v for k, v in values.items()}


class EmailAccountRepository(BaseRepository[EmailAccount]):
    """Email account repository. Implements ISyncAccountRepository."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        super().__init__(session_factory, EmailAccount)

    async def create_email_account(
        self,
        user_id: str,
        provider_type: str,
        email_address: str,
        *,
        is_active: bool = True,
        schedule_mode: ScheduleMode | None = None,
    ) -> AccountSyncState:
        """Create an email account in idle state (used by seeding and tests)."""
        account = EmailAccount(
            user_id=user_id,
            provider_type=provider_type.strip().lower(),
            email_address=email_address.strip(),
            is_active=is_active,
            sync_status=AccountSyncStatus.IDLE.value,
            schedule_mode=schedule_mode.value if schedule_mode else None,
        )
        async with self._transaction() as session:
            session.add(account)
            await session.flush()
            await session.refresh(account)
            return _to_state(account)

    async def get_state(self, account_id: str) -> AccountSyncState | None:
        """Return sync state for the account, or None."""
        async with self._session() as session:
            row = await self._get_orm(session, account_id)
            return _to_state(row) if row else None

    async def update_state(self, account_id: str, **values: Any) -> bool:
        """Set sync-state columns. Return False if the account does not exist."""
        async with self._transaction() as session:
            result = await session.execute(
                update(EmailAccount)
                .where(EmailAccount.id == account_id)
                .values(**_column_values(values), updated_at=func.now())
            )
            return result.rowcount > 0

    async def record_failure(self, account_id: str, message: str, at: datetime) -> bool:
        """Set status=error and bump both error counters in one UPDATE."""
        async with self._transaction() as session:
            result = await session.execute(
                update(EmailAccount)
                .where(EmailAccount.id == account_id)
                .values(
                    sync_status=AccountSyncStatus.ERROR.value,
                    last_sync_error=message,
                    last_sync_at=at,
                    error_count=EmailAccount.error_count + 1,
                    consecutive_errors=EmailAccount.consecutive_errors + 1,
                    updated_at=func.now(),
                )
            )
            return result.rowcount > 0

    async def list_schedulable(self, user_id: str) -> list[AccountSyncState]:
        """Return the user's active, non-paused accounts."""
        async with self._session() as session:
            result = await session.execute(
                select(EmailAccount)
                .where(
                    EmailAccount.user_id == user_id,
                    EmailAccount.is_active.is_(True),
                    EmailAccount.sync_status != AccountSyncStatus.PAUSED.value,
                )
                .order_by(EmailAccount.created_at.asc())
            )
            return [_to_state(a) for a in result.scalars().all()]

    async def list_user_ids_with_active_accounts(self) -> list[str]:
        """Distinct user ids owning at least one active account (cron fan-out)."""
        async with self._session() as session:
            result = await session.execute(
                select(EmailAccount.user_id)
                .where(EmailAccount.is_active.is_(True))
                .distinct()
                .order_by(EmailAccount.user_id)
            )
            return list(result.scalars().all())

    async def get_activity(self, account_id: str, now: datetime) -> AccountActivity:
        """Counts of messages received in the last 24h / 7d and hours since the last read."""
        day_ago = now - timedelta(days=1)
        week_ago = now - timedelta(days=7)
        async with self._session() as session:
            result = await session.execute(
                select(
                    func.count().filter(SyncedMessage.received_at >= day_ago),
                    func.count().filter(SyncedMessage.received_at >= week_ago),
                    func.max(SyncedMessage.read_at),
                ).where(SyncedMessage.account_id == account_id)
            )
            last_24h, last_7d, last_read = result.one()
        last_read = ensure_utc(last_read)
        hours_since_read = (
            (now - last_read).total_seconds() / 3600 if last_read is not None else None
        )
        return AccountActivity(
            emails_last_24h=int(last_24h or 0),
            emails_last_7d=int(last_7d or 0),
            hours_since_read=hours_since_read,
        )
