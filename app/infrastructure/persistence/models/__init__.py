"""Persistence models: ORM entities and mixins."""

from app.infrastructure.persistence.models.email_account import EmailAccount
from app.infrastructure.persistence.models.mixins import (
    CuidMixin,
    SyncModel,
    TimestampMixin,
)
from app.infrastructure.persistence.models.sync_job import SyncJob
from app.infrastructure.persistence.models.synced_message import SyncedMessage

__all__ = [
    "CuidMixin",
    "EmailAccount",
    "SyncJob",
    "SyncModel",
    "SyncedMessage",
    "TimestampMixin",
]
