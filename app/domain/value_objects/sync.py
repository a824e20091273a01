"""Sync value objects: classified errors, schedule decisions, account activity.

Immutable and transient; none of these are persisted as-is.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from app.domain.enums import ErrorKind, JobPriority

# Read activity within this many hours marks the account as active.
ACTIVE_WITHIN_HOURS = 2.0
# Seven-day average daily message count above this marks the account as high volume.
HIGH_VOLUME_DAILY_RATE = 50.0


@dataclass(frozen=True)
class ErrorInfo:
    """Structured classification of a sync failure.

    user_message and action_message are operator-facing text; control flow
    only looks at kind, retryable and retry_after_seconds.
    """

    kind: ErrorKind
    message: str
    user_message: str
    action_message: str
    retryable: bool
    retry_after_seconds: float | None = None

    def operator_message(self) -> str:
        """Message stored on the account row (explanation plus what to do)."""
        if self.action_message:
            return f"{self.user_message} {self.action_message}"
        return self.user_message


@dataclass(frozen=True)
class Schedule:
    """Scheduler decision for one account."""

    immediate: bool
    next_sync_at: datetime
    priority: int
    reason: str

    def __post_init__(self) -> None:
        if not JobPriority.is_valid(self.priority):
            raise ValueError(f"Schedule priority must be in [0, 4], got {self.priority!r}")


@dataclass(frozen=True)
class AccountActivity:
    """Recent activity for an account, measured from locally synced messages."""

    emails_last_24h: int = 0
    emails_last_7d: int = 0
    hours_since_read: float | None = None

    @property
    def average_daily_rate(self) -> float:
        """Seven-day average of messages received per day."""
        return self.emails_last_7d / 7

    @property
    def is_active(self) -> bool:
        """True when the user read mail within the last two hours."""
        return (
            self.hours_since_read is not None
            and self.hours_since_read < ACTIVE_WITHIN_HOURS
        )

    @property
    def is_high_volume(self) -> bool:
        """True when the seven-day daily average exceeds the high-volume threshold."""
        return self.average_daily_rate > HIGH_VOLUME_DAILY_RATE
