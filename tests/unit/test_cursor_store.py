"""Tests for CursorStore over the in-memory account repository."""

from datetime import UTC, datetime

import pytest

from app.application.services.cursor_store import CursorStore
from app.domain.enums import AccountSyncStatus
from app.domain.exceptions import ResourceNotFoundException
from app.infrastructure.persistence.memory import InMemorySyncStore


@pytest.fixture
def account(store: InMemorySyncStore):
    return store.add_account("user-1", "ada@example.com", cursor="history-100")


async def test_get_state_unknown_account(cursor_store: CursorStore) -> None:
    with pytest.raises(ResourceNotFoundException):
        await cursor_store.get_state("missing")


async def test_get_and_save_cursor(cursor_store: CursorStore, account) -> None:
    assert await cursor_store.get_cursor(account.id) == "history-100"
    at = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)
    await cursor_store.save_cursor(account.id, "history-200", at)
    state = await cursor_store.get_state(account.id)
    assert state.cursor == "history-200"
    assert state.last_sync_at == at
    assert state.consecutive_errors == 0


async def test_clear_cursor(cursor_store: CursorStore, account) -> None:
    await cursor_store.clear_cursor(account.id)
    assert await cursor_store.get_cursor(account.id) is None


async def test_mark_failed_increments_both_counters(cursor_store: CursorStore, account) -> None:
    await cursor_store.mark_failed(account.id, "Provider unavailable")
    await cursor_store.mark_failed(account.id, "Provider unavailable again")
    state = await cursor_store.get_state(account.id)
    assert state.sync_status == AccountSyncStatus.ERROR
    assert state.last_sync_error == "Provider unavailable again"
    assert state.error_count == 2
    assert state.consecutive_errors == 2
    assert state.last_sync_at is not None


async def test_mark_success_resets_errors_and_stores_cursor(
    cursor_store: CursorStore, account
) -> None:
    await cursor_store.mark_failed(account.id, "boom")
    await cursor_store.mark_syncing(account.id)
    assert (await cursor_store.get_state(account.id)).sync_status == AccountSyncStatus.SYNCING

    await cursor_store.mark_success(account.id, "history-300")
    state = await cursor_store.get_state(account.id)
    assert state.sync_status == AccountSyncStatus.SUCCESS
    assert state.cursor == "history-300"
    assert state.consecutive_errors == 0
    assert state.error_count == 0
    assert state.last_sync_error is None
    assert state.last_successful_sync_at is not None


async def test_mark_success_without_cursor_keeps_existing(
    cursor_store: CursorStore, account
) -> None:
    await cursor_store.mark_success(account.id)
    assert await cursor_store.get_cursor(account.id) == "history-100"


async def test_partial_failure_note_keeps_status(cursor_store: CursorStore, account) -> None:
    await cursor_store.mark_success(account.id)
    await cursor_store.note_partial_failure(account.id, "3 of 40 items failed to sync")
    state = await cursor_store.get_state(account.id)
    assert state.sync_status == AccountSyncStatus.SUCCESS
    assert state.last_sync_error == "3 of 40 items failed to sync"


@pytest.mark.parametrize("method", ["clear_cursor", "mark_syncing", "mark_success"])
async def test_mutators_on_missing_account(cursor_store: CursorStore, method: str) -> None:
    with pytest.raises(ResourceNotFoundException):
        await getattr(cursor_store, method)("missing")


async def test_mark_failed_on_missing_account(cursor_store: CursorStore) -> None:
    with pytest.raises(ResourceNotFoundException):
        await cursor_store.mark_failed("missing", "boom")
