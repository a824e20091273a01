"""Domain layer: value objects, enums, and exceptions.

No dependencies on infrastructure or presentation. Used by application
and infrastructure layers.
"""

from app.domain.enums import (
    AccountSyncStatus,
    ErrorKind,
    JobPriority,
    ScheduleMode,
    SyncJobStatus,
    SyncJobType,
    SyncMode,
    SyncStage,
)
from app.domain.exceptions import (
    AuthenticationException,
    InvalidJobTransitionException,
    JobAlreadyQueuedException,
    MailSyncException,
    ResourceNotFoundException,
    SqlNotConfiguredException,
    SyncExecutorException,
    SyncExecutorNotConfiguredException,
    ValidationException,
)
from app.domain.value_objects import AccountActivity, ErrorInfo, Schedule

__all__ = [
    # Enums
    "AccountSyncStatus",
    "ErrorKind",
    "JobPriority",
    "ScheduleMode",
    "SyncJobStatus",
    "SyncJobType",
    "SyncMode",
    "SyncStage",
    # Exceptions
    "AuthenticationException",
    "InvalidJobTransitionException",
    "JobAlreadyQueuedException",
    "MailSyncException",
    "ResourceNotFoundException",
    "SqlNotConfiguredException",
    "SyncExecutorException",
    "SyncExecutorNotConfiguredException",
    "ValidationException",
    # Value objects
    "AccountActivity",
    "ErrorInfo",
    "Schedule",
]
