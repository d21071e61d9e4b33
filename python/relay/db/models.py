"""SQLAlchemy ORM models for the relay.

Defines all database tables using SQLAlchemy 2.x declarative patterns.
Column types are portable (Uuid, JSON, non-native enums) so the same models
back Postgres in production and SQLite in tests.
"""

from datetime import datetime
from enum import Enum as PyEnum
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Text,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# =============================================================================
# Enums
# =============================================================================


class ProviderMode(str, PyEnum):
    """Credential-sourcing strategy used to reach the upstream session API.

    Modes:
        hosted: Served locally, no user secrets needed
        byok: User supplied their own API key
        debug: Forward verbatim to the upstream API with the user's session key
    """

    hosted = "hosted"
    byok = "byok"
    debug = "debug"


class SessionStatus(str, PyEnum):
    """Agent session lifecycle states.

    `archived` is terminal for the archive operation; `deleted` sessions are
    hidden from listings.
    """

    idle = "idle"
    running = "running"
    paused = "paused"
    completed = "completed"
    failed = "failed"
    archived = "archived"
    deleted = "deleted"


class EventStatus(str, PyEnum):
    """Delivery state of a stored event."""

    pending = "pending"
    sent = "sent"


def _enum_column(enum_cls: type[PyEnum], name: str) -> Enum:
    return Enum(
        enum_cls,
        name=name,
        native_enum=False,
        create_constraint=True,
        values_callable=lambda members: [m.value for m in members],
        length=32,
    )


# =============================================================================
# Models
# =============================================================================


class User(Base):
    """User model - provider mode and encrypted upstream credentials.

    Invariants (checked at resolution time, not enforced by the schema):
    - byok requires api_key_enc
    - debug requires session_key_enc and org_uuid
    """

    __tablename__ = "users"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True)
    provider: Mapped[ProviderMode] = mapped_column(
        _enum_column(ProviderMode, "provider_mode"),
        default=ProviderMode.hosted,
        server_default=ProviderMode.hosted.value,
        nullable=False,
    )
    # Vault ciphertext (relay.services.crypto), never plaintext
    api_key_enc: Mapped[str | None] = mapped_column(Text, nullable=True)
    session_key_enc: Mapped[str | None] = mapped_column(Text, nullable=True)
    org_uuid: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    sessions: Mapped[list["AgentSession"]] = relationship("AgentSession", back_populates="user")


class AgentSession(Base):
    """Agent session owned by one user."""

    __tablename__ = "sessions"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    user_id: Mapped[UUID | None] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    title: Mapped[str] = mapped_column(Text, default="", server_default="", nullable=False)
    status: Mapped[SessionStatus] = mapped_column(
        _enum_column(SessionStatus, "session_status"),
        default=SessionStatus.idle,
        server_default=SessionStatus.idle.value,
        nullable=False,
    )
    type: Mapped[str] = mapped_column(
        Text,
        default="internal_session",
        server_default="internal_session",
        nullable=False,
    )
    session_context: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    __table_args__ = (
        Index("idx_sessions_user_id", "user_id"),
        Index("idx_sessions_status", "status"),
        Index("idx_sessions_created_at", "created_at"),
    )

    user: Mapped["User | None"] = relationship("User", back_populates="sessions")
    events: Mapped[list["Event"]] = relationship(
        "Event", back_populates="session", cascade="all, delete-orphan", passive_deletes=True
    )


class Event(Base):
    """Append-only session event with a per-session sequence number."""

    __tablename__ = "events"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    session_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("sessions.id", ondelete="CASCADE"),
        nullable=False,
    )
    type: Mapped[str] = mapped_column(Text, nullable=False)
    subtype: Mapped[str | None] = mapped_column(Text, nullable=True)
    data: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    parent_tool_use_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    sequence_num: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[EventStatus] = mapped_column(
        _enum_column(EventStatus, "event_status"),
        default=EventStatus.sent,
        server_default=EventStatus.sent.value,
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint("session_id", "sequence_num", name="uq_events_session_sequence"),
    )

    session: Mapped["AgentSession"] = relationship("AgentSession", back_populates="events")
