"""Session Pydantic schemas.

Session responses mirror the upstream session API shape so a client sees the
same body whether a request was served locally or forwarded.
"""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict

from relay.db.models import SessionStatus


class SessionOut(BaseModel):
    """Public session projection."""

    id: str  # external id (session_...)
    title: str
    session_status: SessionStatus
    session_context: dict[str, Any]
    created_at: datetime
    updated_at: datetime
    type: Literal["internal_session"] = "internal_session"

    model_config = ConfigDict(from_attributes=True)


class UpdateSessionRequest(BaseModel):
    """Request schema for PATCH /sessions/{id}."""

    title: str
