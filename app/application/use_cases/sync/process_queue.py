"""Dispatcher: drain the sync job queue, run each job through the executor, record outcomes."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from app.application.dtos.sync import QueueRunResult, SyncRequest
from app.application.services.error_classifier import ErrorClassifier
from app.domain.enums import SyncJobStatus, SyncJobType, SyncMode, SyncStage
from app.domain.exceptions import MailSyncException, ResourceNotFoundException
from app.shared.telemetry.tracing import TracedOperation, add_span_attributes

if TYPE_CHECKING:
    from app.application.dtos.sync import SyncExecutionResult, SyncJobResult
    from app.application.interfaces.services import ISyncExecutor, ISyncProgressPublisher
    from app.application.services.cursor_store import CursorStore
    from app.application.services.job_queue import JobQueue

logger = logging.getLogger(__name__)

DEFAULT_JOB_TIMEOUT_SECONDS = 1800.0
DEFAULT_INTER_JOB_DELAY_SECONDS = 0.1
DEFAULT_PARTIAL_FAILURE_THRESHOLD = 0.25


def build_sync_request(job: SyncJobResult, cursor: str | None) -> SyncRequest:
    """Executor arguments for a job. Full resync when asked for or when there is no cursor."""
    if job.job_type == SyncJobType.FULL or cursor is None:
        mode = SyncMode.FULL
    else:
        mode = SyncMode.INCREMENTAL
    return SyncRequest(
        account_id=job.account_id,
        mode=mode,
        cursor=cursor if mode == SyncMode.INCREMENTAL else None,
        folders=job.metadata.folders,
        since=job.metadata.since,
        limit=job.metadata.limit,
    )


def partial_failure_rate(result: SyncExecutionResult) -> float:
    """Fraction of items that failed, or 0.0 when the executor did not report counts."""
    if not result.items_total or not result.items_failed:
        return 0.0
    return result.items_failed / result.items_total


def _error_text(error: BaseException | str | None) -> str:
    if error is None:
        return "Sync executor reported failure"
    if isinstance(error, str):
        return error or "Sync executor reported failure"
    return str(error) or type(error).__name__


class SyncDispatcher:
    """Runs queued sync jobs one at a time, in (priority, scheduled_for) order.

    Per job: claim, mark the account syncing, call the executor under a
    deadline, then record success (cursor + complete) or failure (classify,
    mark account failed, let the queue decide retry vs terminal).
    """

    def __init__(
        self,
        job_queue: "JobQueue",
        cursor_store: "CursorStore",
        executor: "ISyncExecutor",
        classifier: ErrorClassifier | None = None,
        publisher: "ISyncProgressPublisher | None" = None,
        *,
        job_timeout_seconds: float = DEFAULT_JOB_TIMEOUT_SECONDS,
        inter_job_delay_seconds: float = DEFAULT_INTER_JOB_DELAY_SECONDS,
        partial_failure_threshold: float = DEFAULT_PARTIAL_FAILURE_THRESHOLD,
        fail_fast_non_retryable: bool = False,
    ) -> None:
        self._job_queue = job_queue
        self._cursor_store = cursor_store
        self._executor = executor
        self._classifier = classifier or ErrorClassifier()
        self._publisher = publisher
        self._job_timeout = job_timeout_seconds
        self._inter_job_delay = inter_job_delay_seconds
        self._partial_threshold = partial_failure_threshold
        self._fail_fast = fail_fast_non_retryable
        self._stop_event = asyncio.Event()

    def stop(self) -> None:
        """Ask the current pass (and run_forever) to stop after the job in flight."""
        self._stop_event.set()

    @property
    def stopping(self) -> bool:
        return self._stop_event.is_set()

    async def process_queue(self) -> QueueRunResult:
        """Reap stale jobs, then run eligible jobs until the queue is empty or stop() is called."""
        requeued_stale = await self._job_queue.requeue_stale(self._job_timeout)
        processed = succeeded = failed = 0

        while not self._stop_event.is_set():
            job = await self._job_queue.claim_next()
            if job is None:
                break
            processed += 1
            try:
                ok = await self._run_job(job)
            except MailSyncException:
                # Bookkeeping failed; the reaper recovers the job.
                logger.exception("Failed to record outcome of sync job %s", job.id)
                ok = False
            if ok:
                succeeded += 1
            else:
                failed += 1
            if await self._wait_for_stop(self._inter_job_delay):
                break

        if processed or requeued_stale:
            logger.info(
                "Sync queue pass: processed=%d succeeded=%d failed=%d requeued_stale=%d",
                processed,
                succeeded,
                failed,
                requeued_stale,
            )
        return QueueRunResult(
            processed=processed,
            succeeded=succeeded,
            failed=failed,
            requeued_stale=requeued_stale,
        )

    async def run_forever(self, poll_interval_seconds: float) -> None:
        """Background worker: run passes every poll_interval_seconds until stop().

        A stop() issued before the worker first runs is honoured: it exits
        without starting a pass.
        """
        logger.info("Sync worker started (poll every %.1fs)", poll_interval_seconds)
        while not self._stop_event.is_set():
            try:
                await self.process_queue()
            except Exception:
                logger.exception("Sync queue pass failed")
            if await self._wait_for_stop(poll_interval_seconds):
                break
        logger.info("Sync worker stopped")

    async def _wait_for_stop(self, delay: float) -> bool:
        """Sleep up to delay seconds; return True if stop() was called."""
        if delay <= 0:
            return self._stop_event.is_set()
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
        except TimeoutError:
            return False
        return True

    async def _run_job(self, job: SyncJobResult) -> bool:
        attributes = {
            "sync.job_id": job.id,
            "sync.account_id": job.account_id,
            "sync.job_type": job.job_type.value,
            "sync.retry_count": job.retry_count,
        }
        async with TracedOperation("sync.dispatch_job", attributes):
            try:
                state = await self._cursor_store.get_state(job.account_id)
            except ResourceNotFoundException as e:
                logger.warning("Sync job %s references missing account %s", job.id, job.account_id)
                await self._job_queue.fail(job.id, e.message, terminal=True)
                add_span_attributes(**{"sync.outcome": "account_missing"})
                return False

            await self._cursor_store.mark_syncing(job.account_id)
            await self._publish(job, SyncStage.STARTED)
            request = build_sync_request(job, state.cursor)
            logger.info(
                "Running %s sync for account %s (job %s, attempt %d)",
                request.mode.value,
                job.account_id,
                job.id,
                job.retry_count + 1,
            )

            try:
                async with asyncio.timeout(self._job_timeout):
                    result = await self._executor.execute(request)
            except TimeoutError:
                return await self._record_failure(
                    job, TimeoutError(f"Sync exceeded {self._job_timeout:.0f}s deadline")
                )
            except Exception as e:
                return await self._record_failure(job, e)

            if not result.success:
                return await self._record_failure(job, result.error)

            rate = partial_failure_rate(result)
            if rate > self._partial_threshold:
                return await self._record_failure(
                    job,
                    f"{result.items_failed} of {result.items_total} items failed to sync ({rate:.0%})",
                )

            await self._cursor_store.mark_success(job.account_id, result.cursor)
            completed = await self._job_queue.complete(job.id)
            if result.items_failed:
                message = f"{result.items_failed} of {result.items_total} items failed to sync"
                logger.warning("Partial sync for account %s: %s", job.account_id, message)
                await self._cursor_store.note_partial_failure(job.account_id, message)
            add_span_attributes(**{"sync.outcome": "completed"})
            await self._publish(completed, SyncStage.COMPLETED)
            return True

    async def _record_failure(
        self, job: SyncJobResult, error: BaseException | str | None
    ) -> bool:
        info = self._classifier.classify(error)
        raw_message = _error_text(error)
        logger.warning(
            "Sync job %s for account %s failed (%s): %s",
            job.id,
            job.account_id,
            info.kind.value,
            raw_message,
        )
        await self._cursor_store.mark_failed(job.account_id, info.operator_message())
        updated = await self._job_queue.fail(
            job.id,
            raw_message,
            retry_after_seconds=info.retry_after_seconds,
            terminal=self._fail_fast and not info.retryable,
        )
        stage = (
            SyncStage.FAILED
            if updated.status == SyncJobStatus.FAILED
            else SyncStage.RETRY_SCHEDULED
        )
        add_span_attributes(**{"sync.outcome": stage.value, "sync.error_kind": info.kind.value})
        await self._publish(updated, stage, raw_message)
        return False

    async def _publish(
        self, job: SyncJobResult, stage: SyncStage, error: str | None = None
    ) -> None:
        if self._publisher is not None:
            await self._publisher.publish_job_event(job, stage, error)
