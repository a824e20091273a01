"""Delete completed sync jobs older than the retention window.

Usage:
    uv run python -m scripts.cleanup_sync_jobs [older_than_days]
Defaults to SYNC_JOB_RETENTION_DAYS. Failed and cancelled jobs are kept.
"""

import asyncio
import sys

from app.core.config import get_settings
from app.infrastructure.composition import build_sync_container
from app.infrastructure.persistence.database import dispose_engine


async def main() -> None:
    """Delete old completed jobs and print how many were removed."""
    settings = get_settings()
    days = settings.sync_job_retention_days
    if len(sys.argv) > 1:
        try:
            days = int(sys.argv[1])
        except ValueError:
            print(f"older_than_days must be an integer, got {sys.argv[1]!r}", file=sys.stderr)
            sys.exit(1)
    if days < 0:
        print("older_than_days must be >= 0", file=sys.stderr)
        sys.exit(1)

    container = build_sync_container(settings)
    try:
        deleted = await container.job_queue.cleanup(days)
    finally:
        await dispose_engine()
    print(f"Done. Deleted {deleted} completed job(s) older than {days} day(s)")


if __name__ == "__main__":
    asyncio.run(main())
