"""Persistence repositories. Re-exports for dependency injection."""

from app.infrastructure.persistence.repositories.base import BaseRepository
from app.infrastructure.persistence.repositories.email_account_repo import (
    EmailAccountRepository,
)
from app.infrastructure.persistence.repositories.sync_job_repo import SyncJobRepository

__all__ = [
    "BaseRepository",
    "EmailAccountRepository",
    "SyncJobRepository",
]
