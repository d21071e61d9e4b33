"""Relay schema - users, sessions, events

Revision ID: 0001
Revises:
Create Date: 2026-10-18

Creates the users table (provider mode + encrypted credentials), agent
sessions, and the append-only per-session event log.
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # ==========================================================================
    # users table
    # ==========================================================================
    op.create_table(
        "users",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("provider", sa.String(32), server_default="hosted", nullable=False),
        sa.Column("api_key_enc", sa.Text(), nullable=True),
        sa.Column("session_key_enc", sa.Text(), nullable=True),
        sa.Column("org_uuid", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "provider IN ('hosted', 'byok', 'debug')",
            name="provider_mode",
        ),
    )

    # ==========================================================================
    # sessions table
    # ==========================================================================
    op.create_table(
        "sessions",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("user_id", sa.UUID(), nullable=True),
        sa.Column("title", sa.Text(), server_default="", nullable=False),
        sa.Column("status", sa.String(32), server_default="idle", nullable=False),
        sa.Column("type", sa.Text(), server_default="internal_session", nullable=False),
        sa.Column("session_context", sa.JSON(), nullable=False),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(
            ["user_id"],
            ["users.id"],
            ondelete="SET NULL",
        ),
        sa.CheckConstraint(
            "status IN ('idle', 'running', 'paused', 'completed', 'failed', 'archived', 'deleted')",
            name="session_status",
        ),
    )
    op.create_index("idx_sessions_user_id", "sessions", ["user_id"])
    op.create_index("idx_sessions_status", "sessions", ["status"])
    op.create_index("idx_sessions_created_at", "sessions", ["created_at"])

    # ==========================================================================
    # events table
    # ==========================================================================
    op.create_table(
        "events",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("session_id", sa.UUID(), nullable=False),
        sa.Column("type", sa.Text(), nullable=False),
        sa.Column("subtype", sa.Text(), nullable=True),
        sa.Column("data", sa.JSON(), nullable=False),
        sa.Column("parent_tool_use_id", sa.Text(), nullable=True),
        sa.Column("sequence_num", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(32), server_default="sent", nullable=False),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(
            ["session_id"],
            ["sessions.id"],
            ondelete="CASCADE",
        ),
        # Total order of events within a session
        sa.UniqueConstraint("session_id", "sequence_num", name="uq_events_session_sequence"),
        sa.CheckConstraint(
            "status IN ('pending', 'sent')",
            name="event_status",
        ),
    )


def downgrade() -> None:
    # Drop tables in reverse order (respecting foreign key dependencies)
    op.drop_table("events")
    op.drop_index("idx_sessions_created_at", table_name="sessions")
    op.drop_index("idx_sessions_status", table_name="sessions")
    op.drop_index("idx_sessions_user_id", table_name="sessions")
    op.drop_table("sessions")
    op.drop_table("users")
