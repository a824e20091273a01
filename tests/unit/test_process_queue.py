"""Tests for the sync dispatcher: executor calls, outcome recording, deadlines, stop."""

import asyncio
from dataclasses import replace
from datetime import timedelta

import pytest

from app.application.dtos.sync import (
    EnqueueOptions,
    JobMetadata,
    SyncExecutionResult,
    SyncJobResult,
)
from app.application.services.backoff_policy import MAX_RETRY_AFTER_SECONDS
from app.application.services.cursor_store import CursorStore
from app.application.services.job_queue import JobQueue
from app.application.use_cases.sync.process_queue import (
    SyncDispatcher,
    build_sync_request,
    partial_failure_rate,
)
from app.domain.enums import (
    AccountSyncStatus,
    SyncJobStatus,
    SyncJobType,
    SyncMode,
    SyncStage,
)
from app.domain.exceptions import SyncExecutorException
from app.infrastructure.persistence.memory import InMemorySyncStore
from app.shared.utils.datetime import utc_now
from tests.fakes import FakeExecutor, FakePublisher


def _dispatcher(
    job_queue: JobQueue,
    cursor_store: CursorStore,
    executor: FakeExecutor,
    publisher: FakePublisher | None = None,
    **kwargs,
) -> SyncDispatcher:
    kwargs.setdefault("inter_job_delay_seconds", 0)
    return SyncDispatcher(job_queue, cursor_store, executor, publisher=publisher, **kwargs)


@pytest.fixture
def publisher() -> FakePublisher:
    return FakePublisher()


@pytest.fixture
def account(store: InMemorySyncStore):
    return store.add_account(
        "user-1", "ada@example.com", cursor="c1", last_sync_at=utc_now() - timedelta(hours=1)
    )


def _job(**overrides) -> SyncJobResult:
    now = utc_now()
    values = dict(
        id="job-1",
        account_id="acc-1",
        job_type=SyncJobType.INCREMENTAL,
        status=SyncJobStatus.IN_PROGRESS,
        priority=2,
        scheduled_for=now,
        started_at=now,
        completed_at=None,
        retry_count=0,
        max_retries=5,
        error_message=None,
        metadata=JobMetadata(),
        created_at=now,
        updated_at=now,
    )
    values.update(overrides)
    return SyncJobResult(**values)


def test_incremental_request_carries_cursor() -> None:
    request = build_sync_request(_job(metadata=JobMetadata(folders=("INBOX",))), "c1")
    assert request.mode == SyncMode.INCREMENTAL
    assert request.cursor == "c1"
    assert request.folders == ("INBOX",)


def test_missing_cursor_forces_full_sync() -> None:
    request = build_sync_request(_job(), None)
    assert request.mode == SyncMode.FULL
    assert request.cursor is None


def test_full_job_ignores_cursor() -> None:
    request = build_sync_request(_job(job_type=SyncJobType.FULL), "c1")
    assert request.mode == SyncMode.FULL
    assert request.cursor is None


def test_partial_failure_rate() -> None:
    assert partial_failure_rate(SyncExecutionResult(success=True)) == 0.0
    assert partial_failure_rate(SyncExecutionResult(success=True, items_total=0, items_failed=0)) == 0.0
    assert partial_failure_rate(
        SyncExecutionResult(success=True, items_total=40, items_failed=10)
    ) == 0.25


async def test_successful_sync(
    job_queue: JobQueue, cursor_store: CursorStore, store: InMemorySyncStore, account, publisher
) -> None:
    executor = FakeExecutor(SyncExecutionResult(success=True, cursor="c2"))
    job = await job_queue.enqueue(account.id)

    result = await _dispatcher(job_queue, cursor_store, executor, publisher).process_queue()

    assert (result.processed, result.succeeded, result.failed) == (1, 1, 0)
    assert executor.requests[0].mode == SyncMode.INCREMENTAL
    assert executor.requests[0].cursor == "c1"
    state = store.accounts[account.id]
    assert state.sync_status == AccountSyncStatus.SUCCESS
    assert state.cursor == "c2"
    assert (await job_queue.get_job(job.id)).status == SyncJobStatus.COMPLETED
    assert publisher.stages == [SyncStage.STARTED, SyncStage.COMPLETED]


async def test_empty_queue(job_queue: JobQueue, cursor_store: CursorStore) -> None:
    executor = FakeExecutor()
    result = await _dispatcher(job_queue, cursor_store, executor).process_queue()
    assert result.processed == 0
    assert executor.requests == []


async def test_provider_failure_is_retried(
    job_queue: JobQueue, cursor_store: CursorStore, store: InMemorySyncStore, account, publisher
) -> None:
    executor = FakeExecutor(SyncExecutorException("Service Unavailable", status_code=503))
    job = await job_queue.enqueue(account.id)
    before = utc_now()

    result = await _dispatcher(job_queue, cursor_store, executor, publisher).process_queue()

    assert (result.processed, result.succeeded, result.failed) == (1, 0, 1)
    retried = await job_queue.get_job(job.id)
    assert retried.status == SyncJobStatus.PENDING
    assert retried.retry_count == 1
    assert retried.error_message == "Service Unavailable"
    assert (retried.scheduled_for - before).total_seconds() >= 300
    state = store.accounts[account.id]
    assert state.sync_status == AccountSyncStatus.ERROR
    assert state.consecutive_errors == 1
    assert "temporarily unavailable" in state.last_sync_error
    assert state.cursor == "c1"
    assert publisher.stages == [SyncStage.STARTED, SyncStage.RETRY_SCHEDULED]


async def test_reported_failure_without_exception(
    job_queue: JobQueue, cursor_store: CursorStore, account
) -> None:
    executor = FakeExecutor(SyncExecutionResult(success=False, error="ETIMEDOUT"))
    job = await job_queue.enqueue(account.id)
    await _dispatcher(job_queue, cursor_store, executor).process_queue()
    assert (await job_queue.get_job(job.id)).error_message == "ETIMEDOUT"


async def test_auth_failure_retried_by_default(
    job_queue: JobQueue, cursor_store: CursorStore, account
) -> None:
    executor = FakeExecutor(SyncExecutorException("Unauthorized", status_code=401))
    job = await job_queue.enqueue(account.id)
    await _dispatcher(job_queue, cursor_store, executor).process_queue()
    assert (await job_queue.get_job(job.id)).status == SyncJobStatus.PENDING


async def test_auth_failure_fails_fast_when_enabled(
    job_queue: JobQueue, cursor_store: CursorStore, account, publisher
) -> None:
    executor = FakeExecutor(SyncExecutorException("Unauthorized", status_code=401))
    job = await job_queue.enqueue(account.id)
    await _dispatcher(
        job_queue, cursor_store, executor, publisher, fail_fast_non_retryable=True
    ).process_queue()
    failed = await job_queue.get_job(job.id)
    assert failed.status == SyncJobStatus.FAILED
    assert failed.retry_count == 0
    assert publisher.stages[-1] == SyncStage.FAILED


async def test_small_partial_failure_completes_with_warning(
    job_queue: JobQueue, cursor_store: CursorStore, store: InMemorySyncStore, account
) -> None:
    executor = FakeExecutor(
        SyncExecutionResult(success=True, cursor="c2", items_total=100, items_failed=10)
    )
    job = await job_queue.enqueue(account.id)
    result = await _dispatcher(job_queue, cursor_store, executor).process_queue()
    assert result.succeeded == 1
    assert (await job_queue.get_job(job.id)).status == SyncJobStatus.COMPLETED
    state = store.accounts[account.id]
    assert state.sync_status == AccountSyncStatus.SUCCESS
    assert state.cursor == "c2"
    assert state.last_sync_error == "10 of 100 items failed to sync"


async def test_large_partial_failure_is_a_failure(
    job_queue: JobQueue, cursor_store: CursorStore, store: InMemorySyncStore, account
) -> None:
    executor = FakeExecutor(
        SyncExecutionResult(success=True, cursor="c2", items_total=100, items_failed=30)
    )
    job = await job_queue.enqueue(account.id)
    result = await _dispatcher(job_queue, cursor_store, executor).process_queue()
    assert result.failed == 1
    retried = await job_queue.get_job(job.id)
    assert retried.status == SyncJobStatus.PENDING
    assert retried.error_message == "30 of 100 items failed to sync (30%)"
    # Cursor is not advanced past a failed batch.
    assert store.accounts[account.id].cursor == "c1"


async def test_deadline_exceeded(
    job_queue: JobQueue, cursor_store: CursorStore, store: InMemorySyncStore, account
) -> None:
    async def hang(request):
        await asyncio.sleep(5)
        return SyncExecutionResult(success=True)

    executor = FakeExecutor(hang)
    job = await job_queue.enqueue(account.id)
    result = await _dispatcher(
        job_queue, cursor_store, executor, job_timeout_seconds=0.05
    ).process_queue()
    assert result.failed == 1
    retried = await job_queue.get_job(job.id)
    assert retried.status == SyncJobStatus.PENDING
    assert "deadline" in retried.error_message
    assert "Network" in store.accounts[account.id].last_sync_error


async def test_missing_account_fails_job_terminally(
    job_queue: JobQueue, cursor_store: CursorStore, store: InMemorySyncStore, account
) -> None:
    executor = FakeExecutor()
    job = await job_queue.enqueue(account.id)
    del store.accounts[account.id]
    result = await _dispatcher(job_queue, cursor_store, executor).process_queue()
    assert result.failed == 1
    assert executor.requests == []
    failed = await job_queue.get_job(job.id)
    assert failed.status == SyncJobStatus.FAILED
    assert "not found" in failed.error_message


async def test_full_job_type_runs_full_sync(
    job_queue: JobQueue, cursor_store: CursorStore, account
) -> None:
    executor = FakeExecutor()
    await job_queue.enqueue(account.id, EnqueueOptions(job_type=SyncJobType.FULL))
    await _dispatcher(job_queue, cursor_store, executor).process_queue()
    assert executor.requests[0].mode == SyncMode.FULL
    assert executor.requests[0].cursor is None


async def test_stop_finishes_job_in_flight(
    job_queue: JobQueue, cursor_store: CursorStore, store: InMemorySyncStore
) -> None:
    first = store.add_account("u", "first@example.com")
    second = store.add_account("u", "second@example.com")
    await job_queue.enqueue(first.id, EnqueueOptions(priority=0))
    second_job = await job_queue.enqueue(second.id, EnqueueOptions(priority=1))

    dispatcher = None

    def stop_after_first(request):
        dispatcher.stop()
        return SyncExecutionResult(success=True)

    dispatcher = _dispatcher(job_queue, cursor_store, FakeExecutor(stop_after_first))
    result = await dispatcher.process_queue()

    assert dispatcher.stopping
    assert (result.processed, result.succeeded) == (1, 1)
    assert (await job_queue.get_job(second_job.id)).status == SyncJobStatus.PENDING


async def test_pass_reaps_stale_jobs_first(
    job_queue: JobQueue, cursor_store: CursorStore, store: InMemorySyncStore, account
) -> None:
    job = await job_queue.enqueue(account.id)
    await job_queue.start(job.id)
    store.jobs[job.id] = replace(store.jobs[job.id], started_at=utc_now() - timedelta(hours=2))

    executor = FakeExecutor()
    result = await _dispatcher(
        job_queue, cursor_store, executor, job_timeout_seconds=1800
    ).process_queue()

    assert result.requeued_stale == 1
    # Requeued with backoff, so not due in this pass.
    assert result.processed == 0
    reaped = await job_queue.get_job(job.id)
    assert reaped.status == SyncJobStatus.PENDING
    assert reaped.retry_count == 1


async def test_run_forever_until_stopped(
    job_queue: JobQueue, cursor_store: CursorStore, store: InMemorySyncStore, account
) -> None:
    executor = FakeExecutor()
    dispatcher = _dispatcher(job_queue, cursor_store, executor)
    worker = asyncio.create_task(dispatcher.run_forever(0.01))

    job = await job_queue.enqueue(account.id)
    for _ in range(200):
        if (await job_queue.get_job(job.id)).status == SyncJobStatus.COMPLETED:
            break
        await asyncio.sleep(0.01)

    dispatcher.stop()
    await asyncio.wait_for(worker, timeout=1)
    assert (await job_queue.get_job(job.id)).status == SyncJobStatus.COMPLETED
    assert len(executor.requests) == 1


@pytest.mark.parametrize(
    ("retry_after", "expected_delay"),
    [("1e20", MAX_RETRY_AFTER_SECONDS), ("inf", 60.0), ("nan", 60.0)],
)
async def test_unbounded_retry_after_does_not_stall_the_pass(
    job_queue: JobQueue,
    cursor_store: CursorStore,
    store: InMemorySyncStore,
    retry_after: str,
    expected_delay: float,
) -> None:
    limited = store.add_account("u", "limited@example.com")
    other = store.add_account("u", "other@example.com")
    limited_job = await job_queue.enqueue(limited.id, EnqueueOptions(priority=0))
    other_job = await job_queue.enqueue(other.id, EnqueueOptions(priority=1))
    executor = FakeExecutor(
        SyncExecutorException(
            "Too Many Requests", status_code=429, headers={"Retry-After": retry_after}
        ),
        SyncExecutionResult(success=True),
    )
    before = utc_now()

    result = await _dispatcher(job_queue, cursor_store, executor).process_queue()

    assert (result.processed, result.succeeded, result.failed) == (2, 1, 1)
    retried = await job_queue.get_job(limited_job.id)
    assert retried.status == SyncJobStatus.PENDING
    assert retried.retry_count == 1
    delay = (retried.scheduled_for - before).total_seconds()
    assert expected_delay <= delay < expected_delay + 5
    assert (await job_queue.get_job(other_job.id)).status == SyncJobStatus.COMPLETED


async def test_concurrent_passes_run_each_job_once(
    job_queue: JobQueue, cursor_store: CursorStore, store: InMemorySyncStore
) -> None:
    accounts = [store.add_account("u", f"user{i}@example.com") for i in range(10)]
    jobs = [await job_queue.enqueue(a.id) for a in accounts]

    async def slow_success(request):
        await asyncio.sleep(0)
        return SyncExecutionResult(success=True)

    executor = FakeExecutor(*([slow_success] * 10))
    first = _dispatcher(job_queue, cursor_store, executor)
    second = _dispatcher(job_queue, cursor_store, executor)

    results = await asyncio.gather(first.process_queue(), second.process_queue())

    assert sum(r.processed for r in results) == 10
    assert sum(r.succeeded for r in results) == 10
    assert len(executor.requests) == 10
    assert {r.account_id for r in executor.requests} == {a.id for a in accounts}
    for job in jobs:
        assert (await job_queue.get_job(job.id)).status == SyncJobStatus.COMPLETED


async def test_stop_before_worker_starts(
    job_queue: JobQueue, cursor_store: CursorStore, account
) -> None:
    executor = FakeExecutor()
    job = await job_queue.enqueue(account.id)
    dispatcher = _dispatcher(job_queue, cursor_store, executor)

    dispatcher.stop()
    await asyncio.wait_for(dispatcher.run_forever(30), timeout=1)

    assert executor.requests == []
    assert (await job_queue.get_job(job.id)).status == SyncJobStatus.PENDING
