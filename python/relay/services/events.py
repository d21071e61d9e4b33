"""Event store access.

Events are append-only and totally ordered within a session by
`sequence_num`. Reads here return both pending and sent events; UI-facing
reads do not filter on delivery status.

Fetch window semantics (see relay.services.pagination):
- rows are returned in ascending sequence order
- the cursor row is excluded (skip=1)
- a negative take returns the rows immediately before the cursor, still in
  ascending order
- a cursor that matches no event in the session yields no rows
"""

from collections.abc import Mapping
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from relay.db.models import Event
from relay.errors import ApiErrorCode, InvalidRequestError
from relay.logging import get_logger
from relay.schemas.events import EventData
from relay.services.pagination import (
    PaginationParams,
    ensure_finite_window,
    paginated_response,
    parse_pagination_params,
)
from relay.services.sessions import get_owned_session

logger = get_logger(__name__)


def parse_event_id(event_id: str) -> UUID:
    """Parse an external event id (the event's UUID) used as a cursor."""
    try:
        return UUID(event_id)
    except ValueError as e:
        raise InvalidRequestError(ApiErrorCode.E_INVALID_CURSOR, "Invalid cursor") from e


def fetch_events(db: Session, session_uuid: UUID, window: PaginationParams) -> list[Event]:
    """Keyset range scan over one session's events.

    Raises:
        InvalidRequestError: E_INVALID_REQUEST if the window is not finite.
    """
    ensure_finite_window(window)
    take = int(window.take)
    count = abs(take)
    if count == 0:
        return []

    stmt = select(Event).where(Event.session_id == session_uuid)

    if window.cursor is not None:
        anchor = db.scalar(
            select(Event.sequence_num).where(
                Event.session_id == session_uuid,
                Event.id == window.cursor.id,
            )
        )
        if anchor is None:
            return []
        if take > 0:
            stmt = stmt.where(Event.sequence_num >= anchor)
        else:
            stmt = stmt.where(Event.sequence_num <= anchor)

    if take > 0:
        stmt = stmt.order_by(Event.sequence_num.asc())
    else:
        stmt = stmt.order_by(Event.sequence_num.desc())

    rows = list(db.scalars(stmt.offset(window.skip).limit(count)).all())
    if take < 0:
        rows.reverse()
    return rows


def event_to_payload(event: Event) -> dict[str, Any]:
    """Project a stored event to its wire payload."""
    return EventData.model_validate(event.data).model_dump(mode="json", exclude_unset=True)


def list_events(
    db: Session, user_id: UUID, session_id: str, query: Mapping[str, str]
) -> dict[str, Any]:
    """List a session's events with cursor pagination.

    Raises:
        InvalidRequestError: E_INVALID_SESSION_ID, E_INVALID_CURSOR or
            E_INVALID_REQUEST (400).
        NotFoundError: E_SESSION_NOT_FOUND (404).
        ForbiddenError: E_FORBIDDEN (403).

    Returns:
        {"data": [event, ...], "has_more", "first_id"?, "last_id"?}
    """
    session = get_owned_session(db, user_id, session_id)
    window = parse_pagination_params(query, parse_event_id)

    rows = fetch_events(db, session.id, window)
    data = [event_to_payload(row) for row in rows]

    logger.debug(
        "events_listed",
        session_id=session_id,
        count=len(data),
        backward=window.is_backward,
    )
    return paginated_response(data, window.limit, lambda e: e["uuid"])
