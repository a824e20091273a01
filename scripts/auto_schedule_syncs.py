"""Queue incremental syncs for users' active accounts according to their schedules.

Usage:
    uv run python -m scripts.auto_schedule_syncs [user_id] [--mode aggressive|balanced|conservative]
If user_id is omitted, processes every user with at least one active account.
"""

import asyncio
import sys

from app.core.config import get_settings
from app.domain.enums import ScheduleMode
from app.infrastructure.composition import build_sync_container
from app.infrastructure.persistence.database import dispose_engine
from app.shared.telemetry.logging import setup_logging


def _parse_args(argv: list[str]) -> tuple[str | None, ScheduleMode | None]:
    user_id = None
    mode = None
    args = iter(argv)
    for arg in args:
        if arg == "--mode":
            value = next(args, None)
            if value not in ScheduleMode.values():
                print(f"--mode must be one of {ScheduleMode.values()}", file=sys.stderr)
                sys.exit(1)
            mode = ScheduleMode(value)
        else:
            user_id = arg
    return user_id, mode


async def main() -> None:
    """Run auto_schedule per user and print per-user counts."""
    settings = get_settings()
    setup_logging()
    user_filter, mode = _parse_args(sys.argv[1:])
    container = build_sync_container(settings)
    try:
        if user_filter:
            user_ids = [user_filter]
        else:
            user_ids = await container.account_repo.list_user_ids_with_active_accounts()

        totals = {"scheduled": 0, "immediate": 0, "skipped": 0, "errors": 0}
        for user_id in user_ids:
            result = await container.scheduler.auto_schedule(user_id, mode)
            totals["scheduled"] += result.scheduled
            totals["immediate"] += result.immediate
            totals["skipped"] += result.skipped
            totals["errors"] += result.errors
            if result.scheduled or result.errors:
                print(
                    f"User {user_id}: scheduled={result.scheduled} immediate={result.immediate} "
                    f"skipped={result.skipped} errors={result.errors}"
                )
        print(
            f"Done. users={len(user_ids)} "
            + " ".join(f"{k}={v}" for k, v in totals.items())
        )
        if totals["errors"]:
            sys.exit(1)
    finally:
        await dispose_engine()


if __name__ == "__main__":
    asyncio.run(main())
