"""Database module for the relay.

Provides engine creation, session management, transaction helpers, and ORM models.
"""

from relay.db.engine import create_db_engine, get_engine
from relay.db.models import (
    AgentSession,
    Base,
    Event,
    EventStatus,
    ProviderMode,
    SessionStatus,
    User,
)
from relay.db.session import get_db, session_scope, transaction

__all__ = [
    # Engine and session
    "create_db_engine",
    "get_engine",
    "get_db",
    "session_scope",
    "transaction",
    # Base
    "Base",
    # Enums
    "ProviderMode",
    "SessionStatus",
    "EventStatus",
    # Models
    "User",
    "AgentSession",
    "Event",
]
