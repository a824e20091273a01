"""Application lifespan: startup and shutdown.

Single place for all startup/shutdown logic (SRP). Used by main.py;
no business logic here, only wiring of infrastructure (HTTP client,
Redis publisher, telemetry, sync container, background worker, DB engine
dispose).
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

import httpx
from fastapi import FastAPI

from app.core.config import get_settings
from app.infrastructure.composition import build_sync_container
from app.shared.telemetry.logging import setup_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def create_lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Run startup then yield; on exit run shutdown.

    Startup order: logging, shared HTTP client, Redis publisher (if
    enabled), sync container, telemetry (if enabled), sync worker (if
    enabled). Shutdown runs in reverse: worker stop, HTTP client close,
    Redis disconnect, telemetry shutdown, SQL engine dispose.
    """
    settings = get_settings()
    setup_logging()

    # ---- Startup ----
    # Shared HTTP client for the sync executor (connection reuse).
    app.state.http_client = httpx.AsyncClient(timeout=settings.sync_executor_timeout_seconds)

    publisher = None
    if settings.redis_enabled:
        from app.infrastructure.messaging.redis_pubsub import (
            SyncProgressPublisher,
            set_sync_publisher,
        )

        publisher = SyncProgressPublisher()
        await publisher.connect()
        set_sync_publisher(publisher)
    app.state.sync_publisher = publisher

    if getattr(app.state, "sync", None) is None:
        app.state.sync = build_sync_container(
            settings, publisher=publisher, http_client=app.state.http_client
        )

    telemetry = None
    if settings.telemetry_enabled:
        from app.infrastructure.persistence import database
        from app.shared.telemetry.telemetry import TelemetryConfig, set_telemetry

        telemetry = TelemetryConfig(
            service_name=settings.app_name,
            service_version=settings.app_version,
            enabled=True,
            environment=settings.telemetry_environment,
        )
        telemetry.setup_telemetry(
            exporter_type=settings.telemetry_exporter,
            otlp_endpoint=settings.telemetry_otlp_endpoint,
            sample_rate=settings.telemetry_sample_rate,
        )
        set_telemetry(telemetry)
        # The engine exists once the container was built for postgres.
        installed = telemetry.instrument_app(
            app, engine=database.engine, redis=settings.redis_enabled
        )
        logger.info("Telemetry initialized (%s)", ", ".join(installed) or "no instrumentation")

    app.state.sync_worker_task = None
    dispatcher = app.state.sync.dispatcher
    if settings.sync_worker_enabled:
        if dispatcher is None:
            logger.warning("SYNC_WORKER_ENABLED is set but SYNC_EXECUTOR_URL is not; worker not started")
        else:
            app.state.sync_worker_task = asyncio.create_task(
                dispatcher.run_forever(settings.sync_worker_poll_seconds)
            )

    yield

    # ---- Shutdown ----
    worker = app.state.sync_worker_task
    if worker is not None:
        dispatcher.stop()
        try:
            await asyncio.wait_for(worker, timeout=settings.sync_job_timeout_seconds)
        except TimeoutError:
            logger.warning("Sync worker did not stop in time; in-flight job left to the reaper")
        app.state.sync_worker_task = None
        logger.info("Sync worker stopped")

    if getattr(app.state, "http_client", None) is not None:
        await app.state.http_client.aclose()
        app.state.http_client = None
        logger.info("HTTP client closed")

    if publisher is not None:
        from app.infrastructure.messaging.redis_pubsub import set_sync_publisher

        await publisher.disconnect()
        set_sync_publisher(None)

    if telemetry is not None:
        from app.shared.telemetry.telemetry import set_telemetry

        telemetry.shutdown()
        set_telemetry(None)
        logger.info("Telemetry shutdown complete")

    if settings.database_backend == "postgres":
        from app.infrastructure.persistence.database import dispose_engine

        await dispose_engine()
