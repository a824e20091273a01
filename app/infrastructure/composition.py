"""Composition root for sync orchestration.

Builds repositories, services and use cases for the configured backend
(postgres or memory). The app lifespan, API dependencies and cron scripts
all go through build_sync_container so they wire the same way.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from app.application.services.backoff_policy import BackoffPolicy
from app.application.services.cursor_store import CursorStore
from app.application.services.error_classifier import ErrorClassifier
from app.application.services.job_queue import JobQueue
from app.application.use_cases.sync.process_queue import SyncDispatcher
from app.application.use_cases.sync.schedule_sync import SyncScheduler
from app.domain.enums import ScheduleMode
from app.domain.exceptions import SyncExecutorNotConfiguredException

if TYPE_CHECKING:
    import httpx

    from app.application.interfaces.repositories import (
        ISyncAccountRepository,
        ISyncJobRepository,
    )
    from app.application.interfaces.services import ISyncExecutor, ISyncProgressPublisher
    from app.core.config import Settings
    from app.infrastructure.persistence.memory import InMemorySyncStore

logger = logging.getLogger(__name__)


@dataclass
class SyncContainer:
    """Wired sync components. dispatcher is None when no executor is configured."""

    account_repo: ISyncAccountRepository
    job_repo: ISyncJobRepository
    cursor_store: CursorStore
    job_queue: JobQueue
    scheduler: SyncScheduler
    dispatcher: SyncDispatcher | None
    memory_store: InMemorySyncStore | None = None

    def require_dispatcher(self) -> SyncDispatcher:
        """Return the dispatcher or raise SyncExecutorNotConfiguredException."""
        if self.dispatcher is None:
            raise SyncExecutorNotConfiguredException()
        return self.dispatcher


def _build_repositories(
    settings: Settings, memory_store: InMemorySyncStore | None
) -> tuple[ISyncAccountRepository, ISyncJobRepository, InMemorySyncStore | None]:
    if settings.database_backend == "memory":
        from app.infrastructure.persistence.memory import (
            InMemoryEmailAccountRepository,
            InMemorySyncJobRepository,
            InMemorySyncStore,
        )

        store = memory_store or InMemorySyncStore()
        return (
            InMemoryEmailAccountRepository(store),
            InMemorySyncJobRepository(store),
            store,
        )

    from app.infrastructure.persistence.database import get_session_factory
    from app.infrastructure.persistence.repositories import (
        EmailAccountRepository,
        SyncJobRepository,
    )

    session_factory = get_session_factory()
    return EmailAccountRepository(session_factory), SyncJobRepository(session_factory), None


def _build_executor(
    settings: Settings, http_client: httpx.AsyncClient | None
) -> ISyncExecutor | None:
    if not settings.sync_executor_url:
        return None
    from app.infrastructure.external.sync_executor import HttpSyncExecutor

    token = settings.sync_executor_token.get_secret_value() if settings.sync_executor_token else None
    return HttpSyncExecutor(
        settings.sync_executor_url,
        timeout_seconds=settings.sync_executor_timeout_seconds,
        token=token,
        http_client=http_client,
    )


def build_sync_container(
    settings: Settings,
    *,
    executor: ISyncExecutor | None = None,
    publisher: ISyncProgressPublisher | None = None,
    memory_store: InMemorySyncStore | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> SyncContainer:
    """Wire the sync components from settings.

    executor overrides the HTTP executor built from SYNC_EXECUTOR_URL;
    memory_store lets callers share or pre-seed the in-memory backend.
    """
    account_repo, job_repo, store = _build_repositories(settings, memory_store)
    backoff = BackoffPolicy(
        base_seconds=settings.sync_backoff_base_seconds,
        max_seconds=settings.sync_backoff_max_seconds,
    )
    cursor_store = CursorStore(account_repo)
    job_queue = JobQueue(job_repo, backoff, default_max_retries=settings.sync_max_retries)
    scheduler = SyncScheduler(
        account_repo,
        job_queue,
        default_mode=ScheduleMode(settings.sync_default_mode),
    )
    executor = executor or _build_executor(settings, http_client)
    dispatcher = None
    if executor is not None:
        dispatcher = SyncDispatcher(
            job_queue,
            cursor_store,
            executor,
            ErrorClassifier(),
            publisher,
            job_timeout_seconds=settings.sync_job_timeout_seconds,
            inter_job_delay_seconds=settings.sync_inter_job_delay_seconds,
            partial_failure_threshold=settings.sync_partial_failure_threshold,
            fail_fast_non_retryable=settings.sync_fail_fast_non_retryable,
        )
    else:
        logger.info("SYNC_EXECUTOR_URL not set; queue processing is disabled")
    return SyncContainer(
        account_repo=account_repo,
        job_repo=job_repo,
        cursor_store=cursor_store,
        job_queue=job_queue,
        scheduler=scheduler,
        dispatcher=dispatcher,
        memory_store=store,
    )
