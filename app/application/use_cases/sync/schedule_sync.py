"""Adaptive sync scheduling: decide when and how urgently each account syncs."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, NamedTuple

from app.application.dtos.sync import AccountSyncState, AutoScheduleResult, EnqueueOptions
from app.domain.enums import JobPriority, ScheduleMode, SyncJobType
from app.domain.exceptions import JobAlreadyQueuedException, ResourceNotFoundException
from app.domain.value_objects.sync import AccountActivity, Schedule
from app.shared.utils.datetime import ensure_utc, utc_now

if TYPE_CHECKING:
    from app.application.interfaces.repositories import ISyncAccountRepository
    from app.application.services.job_queue import JobQueue

logger = logging.getLogger(__name__)

ERROR_BACKOFF_THRESHOLD = 3
ERROR_BACKOFF_BASE_MINUTES = 5
ERROR_BACKOFF_MAX_MINUTES = 240


class _Threshold(NamedTuple):
    minutes: int
    priority: int
    reason: str


# Keyed by (is_active, is_high_volume).
_THRESHOLDS: dict[ScheduleMode, dict[tuple[bool, bool], _Threshold]] = {
    ScheduleMode.AGGRESSIVE: {
        (True, True): _Threshold(5, 0, "Aggressive mode with active user"),
        (True, False): _Threshold(5, 0, "Aggressive mode with active user"),
        (False, True): _Threshold(15, 1, "Aggressive mode with high volume"),
        (False, False): _Threshold(30, 2, "Aggressive mode - regular sync"),
    },
    ScheduleMode.BALANCED: {
        (True, True): _Threshold(15, 1, "Active user with high email volume"),
        (True, False): _Threshold(30, 2, "Active user"),
        (False, True): _Threshold(60, 2, "High email volume"),
        (False, False): _Threshold(240, 3, "Balanced mode - standard interval"),
    },
    ScheduleMode.CONSERVATIVE: {
        (True, True): _Threshold(120, 3, "Conservative mode with activity"),
        (True, False): _Threshold(120, 3, "Conservative mode with activity"),
        (False, True): _Threshold(120, 3, "Conservative mode with activity"),
        (False, False): _Threshold(720, 4, "Conservative mode - minimal syncing"),
    },
}


def determine_schedule(
    state: AccountSyncState,
    activity: AccountActivity,
    mode: ScheduleMode,
    now: datetime,
) -> Schedule:
    """Compute the schedule for one account.

    Rules, first match wins: persistent errors back off; an account that has
    never synced goes now; otherwise the mode's threshold table keyed by
    (is_active, is_high_volume) decides.
    """
    now = ensure_utc(now)
    if state.consecutive_errors >= ERROR_BACKOFF_THRESHOLD:
        minutes = min(
            2**state.consecutive_errors * ERROR_BACKOFF_BASE_MINUTES,
            ERROR_BACKOFF_MAX_MINUTES,
        )
        return Schedule(
            immediate=False,
            next_sync_at=now + timedelta(minutes=minutes),
            priority=int(JobPriority.BACKGROUND),
            reason=f"Backing off due to {state.consecutive_errors} consecutive errors",
        )

    if state.last_sync_at is None:
        return Schedule(
            immediate=True,
            next_sync_at=now,
            priority=int(JobPriority.IMMEDIATE),
            reason="Initial sync required",
        )

    threshold = _THRESHOLDS[mode][(activity.is_active, activity.is_high_volume)]
    hours_since_last_sync = (now - ensure_utc(state.last_sync_at)).total_seconds() / 3600
    return Schedule(
        immediate=hours_since_last_sync > threshold.minutes / 60,
        next_sync_at=now + timedelta(minutes=threshold.minutes),
        priority=threshold.priority,
        reason=threshold.reason,
    )


def activity_priority(activity: AccountActivity) -> int:
    """Standing sync priority from activity alone: 1 active and high volume, 2 either, 3 neither."""
    if activity.is_active and activity.is_high_volume:
        return int(JobPriority.HIGH)
    if activity.is_active or activity.is_high_volume:
        return int(JobPriority.NORMAL)
    return int(JobPriority.LOW)


class SyncScheduler:
    """Loads account state and activity, computes schedules and queues jobs from them."""

    def __init__(
        self,
        account_repo: "ISyncAccountRepository",
        job_queue: "JobQueue",
        default_mode: ScheduleMode = ScheduleMode.BALANCED,
    ) -> None:
        self._account_repo = account_repo
        self._job_queue = job_queue
        self._default_mode = default_mode

    def _resolve_mode(self, state: AccountSyncState, mode: ScheduleMode | None) -> ScheduleMode:
        return mode or state.schedule_mode or self._default_mode

    async def _load_state(self, account_id: str) -> AccountSyncState:
        state = await self._account_repo.get_state(account_id)
        if state is None:
            raise ResourceNotFoundException("email_account", account_id)
        return state

    async def calculate_schedule(
        self, account_id: str, mode: ScheduleMode | None = None
    ) -> Schedule:
        """Compute the account's schedule without side effects.

        Mode precedence: argument, then the account's own schedule_mode, then
        the configured default.
        """
        state = await self._load_state(account_id)
        now = utc_now()
        activity = await self._account_repo.get_activity(account_id, now)
        return determine_schedule(state, activity, self._resolve_mode(state, mode), now)

    async def auto_schedule(
        self, user_id: str, mode: ScheduleMode | None = None
    ) -> AutoScheduleResult:
        """Queue an incremental sync for every schedulable account of the user.

        Accounts that already have a job in flight are counted as skipped; the
        computed schedule is still recorded on the account. A failure on one
        account is logged and counted, and the batch continues.
        """
        accounts = await self._account_repo.list_schedulable(user_id)
        scheduled = immediate = skipped = errors = 0

        for state in accounts:
            try:
                now = utc_now()
                activity = await self._account_repo.get_activity(state.id, now)
                schedule = determine_schedule(
                    state, activity, self._resolve_mode(state, mode), now
                )
                try:
                    await self._job_queue.enqueue(
                        state.id,
                        EnqueueOptions(
                            job_type=SyncJobType.INCREMENTAL,
                            priority=schedule.priority,
                            scheduled_for=now if schedule.immediate else schedule.next_sync_at,
                        ),
                    )
                except JobAlreadyQueuedException:
                    skipped += 1
                else:
                    if schedule.immediate:
                        immediate += 1
                    else:
                        scheduled += 1
                await self._account_repo.update_state(
                    state.id,
                    next_scheduled_sync_at=schedule.next_sync_at,
                    sync_priority=schedule.priority,
                )
            except Exception:
                errors += 1
                logger.exception("Failed to schedule sync for account %s", state.id)

        logger.info(
            "Auto-schedule for user %s: scheduled=%d immediate=%d skipped=%d errors=%d",
            user_id,
            scheduled,
            immediate,
            skipped,
            errors,
        )
        return AutoScheduleResult(
            user_id=user_id,
            scheduled=scheduled,
            immediate=immediate,
            skipped=skipped,
            errors=errors,
        )

    async def adapt_sync_frequency(self, account_id: str) -> int:
        """Recompute the account's standing sync priority from activity and persist it."""
        await self._load_state(account_id)
        activity = await self._account_repo.get_activity(account_id, utc_now())
        priority = activity_priority(activity)
        await self._account_repo.update_state(account_id, sync_priority=priority)
        return priority
