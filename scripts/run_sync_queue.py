"""Drain the sync job queue once (cron), or keep polling with --forever.

Usage:
    uv run python -m scripts.run_sync_queue [--forever]
Requires Postgres (DATABASE_URL) and SYNC_EXECUTOR_URL.
"""

import asyncio
import signal
import sys

import httpx

from app.core.config import get_settings
from app.infrastructure.composition import build_sync_container
from app.infrastructure.persistence.database import dispose_engine
from app.shared.telemetry.logging import setup_logging


async def main() -> None:
    """Reap stale jobs, then run eligible jobs through the executor."""
    settings = get_settings()
    setup_logging()
    if not settings.sync_executor_url:
        print("Set SYNC_EXECUTOR_URL to process the sync queue", file=sys.stderr)
        sys.exit(1)
    forever = "--forever" in sys.argv[1:]

    async with httpx.AsyncClient(timeout=settings.sync_executor_timeout_seconds) as client:
        container = build_sync_container(settings, http_client=client)
        dispatcher = container.require_dispatcher()
        try:
            if forever:
                loop = asyncio.get_running_loop()
                for sig in (signal.SIGINT, signal.SIGTERM):
                    loop.add_signal_handler(sig, dispatcher.stop)
                await dispatcher.run_forever(settings.sync_worker_poll_seconds)
            else:
                result = await dispatcher.process_queue()
                print(
                    f"Done. processed={result.processed} succeeded={result.succeeded} "
                    f"failed={result.failed} requeued_stale={result.requeued_stale}"
                )
        finally:
            await dispose_engine()


if __name__ == "__main__":
    asyncio.run(main())
