"""Sync orchestration endpoints: account sync state, job queue triggers, webhooks."""

import hashlib
import hmac
import logging
from dataclasses import asdict
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel

from app.api.v1.dependencies import (
    get_cursor_store,
    get_dispatcher,
    get_job_queue,
    get_scheduler,
    require_sync_admin_key,
)
from app.application.dtos.sync import AccountSyncState, EnqueueOptions, JobMetadata
from app.application.services.cursor_store import CursorStore
from app.application.services.job_queue import JobQueue
from app.application.use_cases.sync.process_queue import SyncDispatcher
from app.application.use_cases.sync.schedule_sync import SyncScheduler
from app.core.config import get_settings
from app.core.limiter import limit_queue_admin, limit_triggers, limit_webhooks
from app.domain.enums import JobPriority, ScheduleMode, SyncJobType
from app.domain.exceptions import JobAlreadyQueuedException
from app.schemas.sync import (
    AccountSyncStateResponse,
    AutoScheduleResponse,
    CancelJobsResponse,
    CleanupResponse,
    EnqueueJobRequest,
    QueueRunResponse,
    ScheduleResponse,
    SyncJobResponse,
    WebhookAckResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()

CursorStoreDep = Annotated[CursorStore, Depends(get_cursor_store)]
JobQueueDep = Annotated[JobQueue, Depends(get_job_queue)]
SchedulerDep = Annotated[SyncScheduler, Depends(get_scheduler)]
DispatcherDep = Annotated[SyncDispatcher, Depends(get_dispatcher)]
AdminKey = Depends(require_sync_admin_key)


class SyncPriorityResponse(BaseModel):
    """Response for POST /sync/accounts/{id}/adapt-frequency."""

    account_id: str
    sync_priority: int


def _state_response(state: AccountSyncState) -> AccountSyncStateResponse:
    """Account state without the raw cursor (opaque provider token)."""
    return AccountSyncStateResponse(**asdict(state), has_cursor=state.cursor is not None)


def _verify_webhook_signature(body: bytes, signature_header: str | None, secret: str) -> bool:
    """Return True if X-Webhook-Signature-256 matches HMAC-SHA256(secret, body)."""
    if not signature_header or not signature_header.startswith("sha256="):
        return False
    expected = hmac.HMAC(
        secret.encode(), body, hashlib.sha256
    ).hexdigest()
    return hmac.compare_digest(signature_header[7:].strip(), expected)


@router.get("/accounts/{account_id}", response_model=AccountSyncStateResponse)
async def get_account_sync_state(account_id: str, cursor_store: CursorStoreDep):
    """Current sync status, counters and schedule of an account."""
    state = await cursor_store.get_state(account_id)
    return _state_response(state)


@router.get("/accounts/{account_id}/schedule", response_model=ScheduleResponse)
async def get_account_schedule(
    account_id: str,
    scheduler: SchedulerDep,
    mode: ScheduleMode | None = Query(None, description="Override the account/default mode"),
):
    """Compute the account's schedule from state and activity. Nothing is queued or stored."""
    schedule = await scheduler.calculate_schedule(account_id, mode)
    return ScheduleResponse(account_id=account_id, **asdict(schedule))


@router.post(
    "/accounts/{account_id}/jobs",
    response_model=SyncJobResponse,
    status_code=202,
    dependencies=[AdminKey],
    responses={409: {"description": "A sync job is already queued or in progress"}},
)
@limit_triggers
async def enqueue_sync_job(
    request: Request,
    account_id: str,
    body: EnqueueJobRequest,
    job_queue: JobQueueDep,
):
    """Queue a sync job for the account (one active job per account)."""
    options = EnqueueOptions(
        job_type=body.job_type,
        priority=body.priority,
        scheduled_for=body.scheduled_for,
        metadata=JobMetadata(
            folders=tuple(body.metadata.folders) if body.metadata.folders else None,
            since=body.metadata.since,
            limit=body.metadata.limit,
        ),
        max_retries=body.max_retries,
    )
    job = await job_queue.enqueue(account_id, options)
    return SyncJobResponse.model_validate(job)


@router.get("/accounts/{account_id}/jobs", response_model=list[SyncJobResponse])
async def list_account_jobs(
    account_id: str,
    cursor_store: CursorStoreDep,
    job_queue: JobQueueDep,
    limit: int = Query(10, ge=1, le=100),
):
    """Most recent jobs of the account, newest first."""
    await cursor_store.get_state(account_id)
    jobs = await job_queue.list_account_jobs(account_id, limit=limit)
    return [SyncJobResponse.model_validate(j) for j in jobs]


@router.delete(
    "/accounts/{account_id}/jobs",
    response_model=CancelJobsResponse,
    dependencies=[AdminKey],
)
@limit_triggers
async def cancel_account_jobs(
    request: Request,
    account_id: str,
    cursor_store: CursorStoreDep,
    job_queue: JobQueueDep,
):
    """Cancel the account's pending jobs. A job already in progress is not interrupted."""
    await cursor_store.get_state(account_id)
    cancelled = await job_queue.cancel_account_jobs(account_id)
    return CancelJobsResponse(account_id=account_id, cancelled=cancelled)


@router.post(
    "/accounts/{account_id}/cursor/reset",
    response_model=AccountSyncStateResponse,
    dependencies=[AdminKey],
)
@limit_triggers
async def reset_account_cursor(
    request: Request,
    account_id: str,
    cursor_store: CursorStoreDep,
):
    """Drop the stored cursor so the next sync is a full resync."""
    await cursor_store.clear_cursor(account_id)
    logger.info("Cursor reset for account %s", account_id)
    return _state_response(await cursor_store.get_state(account_id))


@router.post(
    "/accounts/{account_id}/adapt-frequency",
    response_model=SyncPriorityResponse,
    dependencies=[AdminKey],
)
@limit_triggers
async def adapt_account_frequency(
    request: Request,
    account_id: str,
    scheduler: SchedulerDep,
):
    """Recompute the account's standing sync priority from recent activity."""
    priority = await scheduler.adapt_sync_frequency(account_id)
    return SyncPriorityResponse(account_id=account_id, sync_priority=priority)


@router.post(
    "/accounts/{account_id}/webhook",
    response_model=WebhookAckResponse,
    status_code=202,
)
@limit_webhooks
async def sync_account_webhook(
    request: Request,
    account_id: str,
    job_queue: JobQueueDep,
):
    """Provider push notification: queue an immediate webhook-triggered sync.

    SYNC_WEBHOOK_SECRET must be set, and callers must send
    X-Webhook-Signature-256: sha256=<hmac_sha256(secret, body)>. A sync
    already in flight for the account absorbs the notification.
    """
    body = await request.body()
    settings = get_settings()
    secret = (
        settings.sync_webhook_secret.get_secret_value()
        if settings.sync_webhook_secret is not None
        else ""
    )
    if not secret:
        raise HTTPException(
            status_code=503,
            detail="Sync webhook is not configured (SYNC_WEBHOOK_SECRET is not set).",
        )
    sig = request.headers.get("X-Webhook-Signature-256")
    if not _verify_webhook_signature(body, sig, secret):
        raise HTTPException(
            status_code=401, detail="Invalid or missing webhook signature"
        )
    try:
        job = await job_queue.enqueue(
            account_id,
            EnqueueOptions(
                job_type=SyncJobType.WEBHOOK_TRIGGERED,
                priority=JobPriority.IMMEDIATE,
            ),
        )
    except JobAlreadyQueuedException as e:
        return WebhookAckResponse(
            account_id=account_id,
            job_id=e.details.get("existing_job_id"),
            already_queued=True,
        )
    return WebhookAckResponse(account_id=account_id, job_id=job.id)


@router.get("/jobs/{job_id}", response_model=SyncJobResponse)
async def get_sync_job(job_id: str, job_queue: JobQueueDep):
    """Get a sync job by id."""
    return SyncJobResponse.model_validate(await job_queue.get_job(job_id))


@router.post(
    "/users/{user_id}/auto-schedule",
    response_model=AutoScheduleResponse,
    dependencies=[AdminKey],
)
@limit_queue_admin
async def auto_schedule_user(
    request: Request,
    user_id: str,
    scheduler: SchedulerDep,
    mode: ScheduleMode | None = Query(None, description="Override the account/default mode"),
):
    """Queue an incremental sync for each of the user's active accounts per its schedule."""
    result = await scheduler.auto_schedule(user_id, mode)
    return AutoScheduleResponse.model_validate(result)


@router.post(
    "/queue/process",
    response_model=QueueRunResponse,
    dependencies=[AdminKey],
)
@limit_queue_admin
async def process_sync_queue(request: Request, dispatcher: DispatcherDep):
    """Run one dispatcher pass: reap stale jobs, then drain eligible jobs."""
    result = await dispatcher.process_queue()
    return QueueRunResponse.model_validate(result)


@router.post(
    "/queue/cleanup",
    response_model=CleanupResponse,
    dependencies=[AdminKey],
)
@limit_queue_admin
async def cleanup_sync_jobs(
    request: Request,
    job_queue: JobQueueDep,
    older_than_days: int | None = Query(None, ge=0, le=3650),
):
    """Delete completed jobs older than the retention window (default SYNC_JOB_RETENTION_DAYS)."""
    days = older_than_days if older_than_days is not None else get_settings().sync_job_retention_days
    deleted = await job_queue.cleanup(days)
    return CleanupResponse(deleted=deleted, older_than_days=days)
