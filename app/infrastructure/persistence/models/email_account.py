"""EmailAccount ORM model. Connected mailbox and its sync bookkeeping."""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.infrastructure.persistence.database import Base
from app.infrastructure.persistence.models.mixins import SyncModel


class EmailAccount(SyncModel, Base):
    """Email account and its sync state. Table: email_account.

    cursor, sync_status, error counters and last_sync_error are written only
    through the cursor store.
    """

    __tablename__ = "email_account"
    __table_args__ = (
        Index("ix_email_account_user_active", "user_id", "is_active"),
    )

    user_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    provider_type: Mapped[str] = mapped_column(String(32), nullable=False)
    email_address: Mapped[str] = mapped_column(String(320), nullable=False, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    cursor: Mapped[str | None] = mapped_column(Text, nullable=True)
    sync_status: Mapped[str] = mapped_column(
        String(16), nullable=False, default="idle", server_default="idle", index=True
    )
    last_sync_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_successful_sync_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    next_scheduled_sync_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    error_count: Mapped[int] = mapped_column(Integer, default=0, server_default="0", nullable=False)
    consecutive_errors: Mapped[int] = mapped_column(
        Integer, default=0, server_default="0", nullable=False
    )
    sync_priority: Mapped[int] = mapped_column(Integer, default=2, server_default="2", nullable=False)
    schedule_mode: Mapped[str | None] = mapped_column(String(16), nullable=True)
    last_sync_error: Mapped[str | None] = mapped_column(Text, nullable=True)
