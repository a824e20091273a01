"""Create sync tables

Revision ID: c4a8e2f1d9b3
Revises:
Create Date: 2026-10-18 09:00:00.000000

Creates email_account (sync state), sync_job (persistent queue) and
synced_message (activity analysis). The partial unique index
uq_sync_job_active_account allows one pending or in-progress job per account.
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "c4a8e2f1d9b3"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create email_account, sync_job and synced_message."""
    op.create_table(
        "email_account",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("provider_type", sa.String(32), nullable=False),
        sa.Column("email_address", sa.String(320), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("cursor", sa.Text(), nullable=True),
        sa.Column("sync_status", sa.String(16), nullable=False, server_default="idle"),
        sa.Column("last_sync_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_successful_sync_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("next_scheduled_sync_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("error_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("consecutive_errors", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("sync_priority", sa.Integer(), nullable=False, server_default="2"),
        sa.Column("schedule_mode", sa.String(16), nullable=True),
        sa.Column("last_sync_error", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            "sync_status IN ('idle', 'syncing', 'paused', 'error', 'success')",
            name="ck_email_account_sync_status",
        ),
        sa.CheckConstraint(
            "sync_priority BETWEEN 0 AND 4", name="ck_email_account_sync_priority"
        ),
    )
    op.create_index("ix_email_account_user_id", "email_account", ["user_id"])
    op.create_index("ix_email_account_email_address", "email_account", ["email_address"])
    op.create_index("ix_email_account_sync_status", "email_account", ["sync_status"])
    op.create_index("ix_email_account_user_active", "email_account", ["user_id", "is_active"])

    op.create_table(
        "sync_job",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column(
            "account_id",
            sa.String(),
            sa.ForeignKey("email_account.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("job_type", sa.String(32), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("priority", sa.Integer(), nullable=False),
        sa.Column("scheduled_for", sa.DateTime(timezone=True), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("retry_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("max_retries", sa.Integer(), nullable=False, server_default="5"),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            "status IN ('pending', 'in_progress', 'completed', 'failed')",
            name="ck_sync_job_status",
        ),
        sa.CheckConstraint(
            "job_type IN ('full', 'incremental', 'selective', 'webhook_triggered')",
            name="ck_sync_job_type",
        ),
        sa.CheckConstraint("priority BETWEEN 0 AND 4", name="ck_sync_job_priority"),
        sa.CheckConstraint("retry_count >= 0 AND max_retries >= 0", name="ck_sync_job_retries"),
    )
    op.create_index(
        "uq_sync_job_active_account",
        "sync_job",
        ["account_id"],
        unique=True,
        postgresql_where=sa.text("status IN ('pending', 'in_progress')"),
    )
    op.create_index("ix_sync_job_dispatch", "sync_job", ["status", "priority", "scheduled_for"])
    op.create_index("ix_sync_job_account_created", "sync_job", ["account_id", "created_at"])

    op.create_table(
        "synced_message",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column(
            "account_id",
            sa.String(),
            sa.ForeignKey("email_account.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("provider_message_id", sa.String(255), nullable=False),
        sa.Column("received_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint(
            "account_id", "provider_message_id", name="uq_synced_message_provider_id"
        ),
    )
    op.create_index(
        "ix_synced_message_account_received", "synced_message", ["account_id", "received_at"]
    )
    op.create_index(
        "ix_synced_message_account_read", "synced_message", ["account_id", "read_at"]
    )


def downgrade() -> None:
    """Drop sync tables."""
    op.drop_index("ix_synced_message_account_read", table_name="synced_message")
    op.drop_index("ix_synced_message_account_received", table_name="synced_message")
    op.drop_table("synced_message")
    op.drop_index("ix_sync_job_account_created", table_name="sync_job")
    op.drop_index("ix_sync_job_dispatch", table_name="sync_job")
    op.drop_index("uq_sync_job_active_account", table_name="sync_job")
    op.drop_table("sync_job")
    op.drop_index("ix_email_account_user_active", table_name="email_account")
    op.drop_index("ix_email_account_sync_status", table_name="email_account")
    op.drop_index("ix_email_account_email_address", table_name="email_account")
    op.drop_index("ix_email_account_user_id", table_name="email_account")
    op.drop_table("email_account")
