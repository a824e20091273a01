"""Cursor store: per-account sync cursor and last-known sync status.

Pure state accessor over ISyncAccountRepository. It records outcomes; it
does not decide retry policy. The dispatcher is the only caller of the
mutators during normal operation.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from app.domain.enums import AccountSyncStatus
from app.domain.exceptions import ResourceNotFoundException
from app.shared.utils.datetime import ensure_utc, utc_now

if TYPE_CHECKING:
    from app.application.dtos.sync import AccountSyncState
    from app.application.interfaces.repositories import ISyncAccountRepository


class CursorStore:
    """Reads and writes cursor, status and error counters on the account row."""

    def __init__(self, account_repo: "ISyncAccountRepository") -> None:
        self._repo = account_repo

    async def get_state(self, account_id: str) -> AccountSyncState:
        """Return the account's sync state. Raises ResourceNotFoundException if missing."""
        state = await self._repo.get_state(account_id)
        if state is None:
            raise ResourceNotFoundException("email_account", account_id)
        return state

    async def get_cursor(self, account_id: str) -> str | None:
        """Return the stored resume token, or None (next run is a full resync)."""
        state = await self.get_state(account_id)
        return state.cursor

    async def save_cursor(
        self, account_id: str, cursor: str, timestamp: datetime | None = None
    ) -> None:
        """Store cursor and set last_sync_at. Error counters are not touched."""
        await self._update(
            account_id,
            cursor=cursor,
            last_sync_at=ensure_utc(timestamp) or utc_now(),
        )

    async def clear_cursor(self, account_id: str) -> None:
        """Drop the cursor so the next sync is a full resync."""
        await self._update(account_id, cursor=None)

    async def mark_syncing(self, account_id: str) -> None:
        """Set status to syncing when a job starts."""
        await self._update(account_id, sync_status=AccountSyncStatus.SYNCING)

    async def mark_success(self, account_id: str, cursor: str | None = None) -> None:
        """Record a successful sync and reset error counters."""
        now = utc_now()
        values: dict[str, object] = {
            "sync_status": AccountSyncStatus.SUCCESS,
            "last_successful_sync_at": now,
            "last_sync_at": now,
            "error_count": 0,
            "consecutive_errors": 0,
            "last_sync_error": None,
        }
        if cursor is not None:
            values["cursor"] = cursor
        await self._update(account_id, **values)

    async def mark_failed(self, account_id: str, message: str) -> None:
        """Record a failed sync: status error, message stored, both counters incremented."""
        found = await self._repo.record_failure(account_id, message, utc_now())
        if not found:
            raise ResourceNotFoundException("email_account", account_id)

    async def note_partial_failure(self, account_id: str, message: str) -> None:
        """Store a warning for a sync that succeeded with some failed items."""
        await self._update(account_id, last_sync_error=message)

    async def _update(self, account_id: str, **values: object) -> None:
        found = await self._repo.update_state(account_id, **values)
        if not found:
            raise ResourceNotFoundException("email_account", account_id)
