"""SyncJob ORM model. One unit of sync work in the persistent queue."""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, ForeignKey, Index, Integer, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from app.infrastructure.persistence.database import Base
from app.infrastructure.persistence.models.mixins import SyncModel

ACTIVE_STATUSES_SQL = "status IN ('pending', 'in_progress')"


class SyncJob(SyncModel, Base):
    """Sync job. Table: sync_job.

    The partial unique index allows at most one pending or in-progress job
    per account; inserts that would break it fail with IntegrityError.
    """

    __tablename__ = "sync_job"
    __table_args__ = (
        Index(
            "uq_sync_job_active_account",
            "account_id",
            unique=True,
            postgresql_where=text(ACTIVE_STATUSES_SQL),
            sqlite_where=text(ACTIVE_STATUSES_SQL),
        ),
        Index("ix_sync_job_dispatch", "status", "priority", "scheduled_for"),
        Index("ix_sync_job_account_created", "account_id", "created_at"),
    )

    account_id: Mapped[str] = mapped_column(
        String, ForeignKey("email_account.id", ondelete="CASCADE"), nullable=False
    )
    job_type: Mapped[str] = mapped_column(String(32), nullable=False)
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default="pending", server_default="pending"
    )
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=2)
    scheduled_for: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    max_retries: Mapped[int] = mapped_column(Integer, nullable=False, default=5, server_default="5")
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    # "metadata" is reserved on declarative classes.
    job_metadata: Mapped[dict[str, Any] | None] = mapped_column("metadata", JSON, nullable=True)
