"""Application layer: interfaces, services, use cases.

Depends only on domain and protocol definitions (DIP).
Infrastructure implements the interfaces (repositories, executor, publisher).
"""

from app.application.interfaces import (
    ISyncAccountRepository,
    ISyncExecutor,
    ISyncJobRepository,
    ISyncProgressPublisher,
)
from app.application.services import (
    BackoffPolicy,
    CursorStore,
    ErrorClassifier,
    JobQueue,
)
from app.application.use_cases import SyncDispatcher, SyncScheduler

__all__ = [
    "BackoffPolicy",
    "CursorStore",
    "ErrorClassifier",
    "ISyncAccountRepository",
    "ISyncExecutor",
    "ISyncJobRepository",
    "ISyncProgressPublisher",
    "JobQueue",
    "SyncDispatcher",
    "SyncScheduler",
]
