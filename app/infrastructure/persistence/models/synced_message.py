"""SyncedMessage ORM model. Minimal per-message record used for activity analysis."""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.infrastructure.persistence.database import Base
from app.infrastructure.persistence.models.mixins import SyncModel


class SyncedMessage(SyncModel, Base):
    """Message seen by a sync. Table: synced_message.

    Only the timestamps the scheduler needs are kept: when the message
    arrived and when the user read it.
    """

    __tablename__ = "synced_message"
    __table_args__ = (
        UniqueConstraint(
            "account_id", "provider_message_id", name="uq_synced_message_provider_id"
        ),
        Index("ix_synced_message_account_received", "account_id", "received_at"),
        Index("ix_synced_message_account_read", "account_id", "read_at"),
    )

    account_id: Mapped[str] = mapped_column(
        String, ForeignKey("email_account.id", ondelete="CASCADE"), nullable=False
    )
    provider_message_id: Mapped[str] = mapped_column(String(255), nullable=False)
    received_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    read_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
