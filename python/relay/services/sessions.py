"""Session service layer.

All session-related business logic lives here. Routes are transport-only and
call exactly one function from this module.

Access checks always run in the same order:
    decode external id (400) -> load (404) -> ownership (403)

Archiving is a one-way transition guarded by a compare-and-set UPDATE so two
concurrent archive requests for the same session cannot both succeed.
"""

from collections.abc import Mapping
from uuid import UUID

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.orm import Session

from relay.db.models import AgentSession, SessionStatus
from relay.db.session import transaction
from relay.errors import (
    ApiErrorCode,
    ConflictError,
    ForbiddenError,
    InvalidRequestError,
    NotFoundError,
)
from relay.logging import get_logger
from relay.schemas.session import SessionOut
from relay.services.ids import InvalidIdError, session_id_to_uuid, uuid_to_session_id
from relay.services.pagination import (
    PaginationParams,
    ensure_finite_window,
    paginated_response,
    parse_pagination_params,
)

logger = get_logger(__name__)


# =============================================================================
# Helpers
# =============================================================================


def decode_session_id(session_id: str) -> UUID:
    """Decode an external session id, raising 400 on malformed input."""
    try:
        return session_id_to_uuid(session_id)
    except InvalidIdError as e:
        raise InvalidRequestError(ApiErrorCode.E_INVALID_SESSION_ID, "Invalid session ID") from e


def session_to_out(session: AgentSession) -> SessionOut:
    """Project an ORM session to its public shape."""
    return SessionOut(
        id=uuid_to_session_id(session.id),
        title=session.title,
        session_status=session.status,
        session_context=session.session_context or {},
        created_at=session.created_at,
        updated_at=session.updated_at,
    )


def get_owned_session(db: Session, user_id: UUID, session_id: str) -> AgentSession:
    """Load a session the caller owns.

    Raises:
        InvalidRequestError: E_INVALID_SESSION_ID if the id does not decode.
        NotFoundError: E_SESSION_NOT_FOUND if no such session.
        ForbiddenError: E_FORBIDDEN if another user owns it.
    """
    session_uuid = decode_session_id(session_id)

    session = db.get(AgentSession, session_uuid)
    if session is None:
        raise NotFoundError(ApiErrorCode.E_SESSION_NOT_FOUND, "Session not found")

    if session.user_id != user_id:
        raise ForbiddenError(ApiErrorCode.E_FORBIDDEN, "Access denied")

    return session


# =============================================================================
# Reads
# =============================================================================


def get_session(db: Session, user_id: UUID, session_id: str) -> SessionOut:
    """Get one session owned by the caller."""
    return session_to_out(get_owned_session(db, user_id, session_id))


def _fetch_session_window(
    db: Session, user_id: UUID, window: PaginationParams
) -> list[AgentSession]:
    """Keyset scan over the caller's visible sessions, newest first.

    Ordering is (created_at DESC, id DESC). The cursor row is located first;
    a cursor outside the caller's visible sessions yields an empty page.
    """
    ensure_finite_window(window)
    take = int(window.take)
    count = abs(take)
    if count == 0:
        return []

    stmt = select(AgentSession).where(
        AgentSession.user_id == user_id,
        AgentSession.status != SessionStatus.deleted,
    )

    if window.cursor is not None:
        anchor = db.scalars(stmt.where(AgentSession.id == window.cursor.id)).first()
        if anchor is None:
            return []
        if take > 0:
            stmt = stmt.where(
                or_(
                    AgentSession.created_at < anchor.created_at,
                    and_(
                        AgentSession.created_at == anchor.created_at,
                        AgentSession.id <= anchor.id,
                    ),
                )
            )
        else:
            stmt = stmt.where(
                or_(
                    AgentSession.created_at > anchor.created_at,
                    and_(
                        AgentSession.created_at == anchor.created_at,
                        AgentSession.id >= anchor.id,
                    ),
                )
            )

    if take > 0:
        stmt = stmt.order_by(AgentSession.created_at.desc(), AgentSession.id.desc())
    else:
        stmt = stmt.order_by(AgentSession.created_at.asc(), AgentSession.id.asc())

    rows = list(db.scalars(stmt.offset(window.skip).limit(count)).all())
    if take < 0:
        rows.reverse()
    return rows


def list_sessions(db: Session, user_id: UUID, query: Mapping[str, str]) -> dict:
    """List the caller's sessions (newest first, deleted excluded).

    Cursors are external session ids.

    Returns:
        {"data": [session, ...], "has_more", "first_id"?, "last_id"?}
    """
    window = parse_pagination_params(query, decode_session_id)
    rows = _fetch_session_window(db, user_id, window)
    data = [session_to_out(row).model_dump(mode="json") for row in rows]
    return paginated_response(data, window.limit, lambda s: s["id"])


# =============================================================================
# Mutations
# =============================================================================


def update_session_title(db: Session, user_id: UUID, session_id: str, title: str) -> SessionOut:
    """Rename a session owned by the caller."""
    session = get_owned_session(db, user_id, session_id)

    with transaction(db):
        session.title = title

    db.refresh(session)
    return session_to_out(session)


def archive_session(db: Session, user_id: UUID, session_id: str) -> SessionOut:
    """Archive a session owned by the caller.

    Raises:
        InvalidRequestError: E_INVALID_SESSION_ID (400)
        NotFoundError: E_SESSION_NOT_FOUND (404)
        ForbiddenError: E_FORBIDDEN (403)
        ConflictError: E_SESSION_ALREADY_ARCHIVED (409), including when a
            concurrent request archived it between the read and the update.
    """
    session = get_owned_session(db, user_id, session_id)

    if session.status == SessionStatus.archived:
        raise ConflictError(ApiErrorCode.E_SESSION_ALREADY_ARCHIVED, "Session is already archived")

    with transaction(db):
        result = db.execute(
            update(AgentSession)
            .where(
                AgentSession.id == session.id,
                AgentSession.status != SessionStatus.archived,
            )
            .values(status=SessionStatus.archived, updated_at=func.now())
            .execution_options(synchronize_session=False)
        )
        archived = result.rowcount == 1

    if not archived:
        logger.info("session_archive_conflict", session_id=session_id)
        raise ConflictError(ApiErrorCode.E_SESSION_ALREADY_ARCHIVED, "Session is already archived")

    db.refresh(session)
    logger.info("session_archived", session_id=session_id)
    return session_to_out(session)
