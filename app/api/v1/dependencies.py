"""Presentation-layer dependency injection.

Routes depend only on these functions, never on infrastructure directly.
The sync container is built once per app (lifespan) and stored on
app.state.sync; when it is missing (e.g. an ASGI test client that skips
lifespan) it is built on first use from the current settings.
"""

from __future__ import annotations

import hmac
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request

from app.application.services.cursor_store import CursorStore
from app.application.services.job_queue import JobQueue
from app.application.use_cases.sync.process_queue import SyncDispatcher
from app.application.use_cases.sync.schedule_sync import SyncScheduler
from app.core.config import get_settings
from app.domain.exceptions import AuthenticationException
from app.infrastructure.composition import SyncContainer, build_sync_container
from app.infrastructure.messaging.redis_pubsub import get_sync_publisher


def get_sync_container(request: Request) -> SyncContainer:
    """Return the app's sync container, building it on first use."""
    container = getattr(request.app.state, "sync", None)
    if container is None:
        container = build_sync_container(
            get_settings(),
            publisher=get_sync_publisher(),
            http_client=getattr(request.app.state, "http_client", None),
        )
        request.app.state.sync = container
    return container


SyncContainerDep = Annotated[SyncContainer, Depends(get_sync_container)]


def get_cursor_store(container: SyncContainerDep) -> CursorStore:
    return container.cursor_store


def get_job_queue(container: SyncContainerDep) -> JobQueue:
    return container.job_queue


def get_scheduler(container: SyncContainerDep) -> SyncScheduler:
    return container.scheduler


def get_dispatcher(container: SyncContainerDep) -> SyncDispatcher:
    """Dispatcher; 503 (SERVICE_UNAVAILABLE) when no sync executor is configured."""
    return container.require_dispatcher()


def require_sync_admin_key(
    x_sync_admin_key: Annotated[str | None, Header()] = None,
) -> None:
    """Guard for trigger endpoints: X-Sync-Admin-Key must match SYNC_ADMIN_KEY.

    503 when SYNC_ADMIN_KEY is not configured, 401 when the header is
    missing or wrong.
    """
    settings = get_settings()
    if not settings.sync_admin_key or not settings.sync_admin_key.get_secret_value():
        raise HTTPException(
            status_code=503,
            detail="Sync triggers are not configured (SYNC_ADMIN_KEY is not set).",
        )
    expected = settings.sync_admin_key.get_secret_value()
    if not x_sync_admin_key or not hmac.compare_digest(x_sync_admin_key, expected):
        raise AuthenticationException("Invalid or missing sync admin key")
