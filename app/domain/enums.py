"""Domain enumerations for the sync orchestrator.

Enums represent fixed sets of domain values (account sync status, job
lifecycle, scheduler mode, error taxonomy).
"""

from enum import Enum, IntEnum


class _ValuesMixin:
    """Mixin that adds a values() classmethod to str Enums."""

    @classmethod
    def values(cls) -> list[str]:
        """Return all valid values as strings."""
        return [member.value for member in cls]


class AccountSyncStatus(_ValuesMixin, str, Enum):
    """Last-known sync status of an email account."""

    IDLE = "idle"
    SYNCING = "syncing"
    PAUSED = "paused"
    ERROR = "error"
    SUCCESS = "success"


class SyncJobType(_ValuesMixin, str, Enum):
    """Kind of sync work a job asks the executor to perform."""

    FULL = "full"
    INCREMENTAL = "incremental"
    SELECTIVE = "selective"
    WEBHOOK_TRIGGERED = "webhook_triggered"


class SyncJobStatus(_ValuesMixin, str, Enum):
    """Sync job lifecycle status.

    PENDING and IN_PROGRESS are the active states; at most one job per
    account may be in either of them.
    """

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"

    @classmethod
    def active(cls) -> tuple["SyncJobStatus", ...]:
        """Statuses that hold the per-account single-flight slot."""
        return (cls.PENDING, cls.IN_PROGRESS)


class SyncMode(_ValuesMixin, str, Enum):
    """Mode passed to the sync executor."""

    FULL = "full"
    INCREMENTAL = "incremental"


class ScheduleMode(_ValuesMixin, str, Enum):
    """Scheduler aggressiveness."""

    AGGRESSIVE = "aggressive"
    BALANCED = "balanced"
    CONSERVATIVE = "conservative"


class SyncStage(_ValuesMixin, str, Enum):
    """Job lifecycle stages published to progress subscribers."""

    STARTED = "started"
    COMPLETED = "completed"
    RETRY_SCHEDULED = "retry_scheduled"
    FAILED = "failed"


class ErrorKind(_ValuesMixin, str, Enum):
    """Sync failure taxonomy, in classification priority order."""

    NETWORK = "network"
    AUTH = "auth"
    RATE_LIMIT = "rate_limit"
    PROVIDER = "provider"
    INVALID_DATA = "invalid_data"
    UNKNOWN = "unknown"


class JobPriority(IntEnum):
    """Job dispatch priority. Lower value is dispatched first."""

    IMMEDIATE = 0
    HIGH = 1
    NORMAL = 2
    LOW = 3
    BACKGROUND = 4

    @classmethod
    def is_valid(cls, value: int) -> bool:
        """Return True if value is an integer in [0, 4]."""
        return isinstance(value, int) and cls.IMMEDIATE <= value <= cls.BACKGROUND
