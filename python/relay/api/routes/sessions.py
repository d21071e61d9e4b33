"""Session routes.

Route handlers for agent sessions and their events.
Routes are transport-only: each either forwards upstream (debug mode) or
calls exactly one service function.

Every route first resolves the caller's provider context:
- debug: forward verbatim to the matching upstream path under v1/sessions
- hosted / byok: serve from the local store

Success bodies mirror the upstream session API (no envelope).
Error envelope: {"error": {"code": "...", "message": "...", "request_id": "..."}}
"""

from typing import Annotated

import httpx
from fastapi import APIRouter, Depends, Request, Response
from pydantic import ValidationError
from sqlalchemy.orm import Session

from relay.api.deps import get_db, get_raw_body, get_upstream_client
from relay.auth.provider_context import Authenticated, DebugContext, require_provider_context
from relay.errors import ApiErrorCode, InvalidRequestError
from relay.schemas.session import UpdateSessionRequest
from relay.services import events as events_service
from relay.services import sessions as sessions_service
from relay.services.upstream_proxy import UpstreamCredentials, proxy_to_upstream

router = APIRouter()

UPSTREAM_SESSIONS_PATH = "v1/sessions"


def _forward_if_debug(
    ctx: Authenticated,
    request: Request,
    body: bytes,
    client: httpx.Client,
    path: str,
) -> Response | None:
    """Relay the request upstream when the caller is in debug mode."""
    if not isinstance(ctx.provider, DebugContext):
        return None
    credentials = UpstreamCredentials.from_context(ctx.provider)
    return proxy_to_upstream(client, request, body, path, credentials).to_response()


@router.get("/sessions", response_model=None)
def list_sessions(
    request: Request,
    ctx: Annotated[Authenticated, Depends(require_provider_context)],
    db: Annotated[Session, Depends(get_db)],
    client: Annotated[httpx.Client, Depends(get_upstream_client)],
    body: Annotated[bytes, Depends(get_raw_body)],
) -> Response | dict:
    """List the caller's sessions, newest first.

    Query: limit, after_id, before_id (session ids).

    Returns:
        {"data": [Session, ...], "has_more", "first_id"?, "last_id"?}
    """
    forwarded = _forward_if_debug(ctx, request, body, client, UPSTREAM_SESSIONS_PATH)
    if forwarded is not None:
        return forwarded
    return sessions_service.list_sessions(db, ctx.user_id, request.query_params)


@router.get("/sessions/{session_id}", response_model=None)
def get_session(
    session_id: str,
    request: Request,
    ctx: Annotated[Authenticated, Depends(require_provider_context)],
    db: Annotated[Session, Depends(get_db)],
    client: Annotated[httpx.Client, Depends(get_upstream_client)],
    body: Annotated[bytes, Depends(get_raw_body)],
) -> Response | dict:
    """Get one session.

    Errors:
        E_INVALID_SESSION_ID (400), E_SESSION_NOT_FOUND (404), E_FORBIDDEN (403)
    """
    path = f"{UPSTREAM_SESSIONS_PATH}/{session_id}"
    forwarded = _forward_if_debug(ctx, request, body, client, path)
    if forwarded is not None:
        return forwarded
    session = sessions_service.get_session(db, ctx.user_id, session_id)
    return session.model_dump(mode="json")


@router.patch("/sessions/{session_id}", response_model=None)
def update_session(
    session_id: str,
    request: Request,
    ctx: Annotated[Authenticated, Depends(require_provider_context)],
    db: Annotated[Session, Depends(get_db)],
    client: Annotated[httpx.Client, Depends(get_upstream_client)],
    body: Annotated[bytes, Depends(get_raw_body)],
) -> Response | dict:
    """Rename a session.

    The body is parsed locally only when the request is not forwarded, so
    debug mode relays whatever the client sent.

    Errors:
        E_INVALID_REQUEST (400): Body is not {"title": str}
        E_INVALID_SESSION_ID (400), E_SESSION_NOT_FOUND (404), E_FORBIDDEN (403)
    """
    path = f"{UPSTREAM_SESSIONS_PATH}/{session_id}"
    forwarded = _forward_if_debug(ctx, request, body, client, path)
    if forwarded is not None:
        return forwarded

    try:
        payload = UpdateSessionRequest.model_validate_json(body or b"{}")
    except ValidationError as e:
        raise InvalidRequestError(ApiErrorCode.E_INVALID_REQUEST, "Invalid request body") from e

    session = sessions_service.update_session_title(db, ctx.user_id, session_id, payload.title)
    return session.model_dump(mode="json")


@router.post("/sessions/{session_id}/archive", response_model=None)
def archive_session(
    session_id: str,
    request: Request,
    ctx: Annotated[Authenticated, Depends(require_provider_context)],
    db: Annotated[Session, Depends(get_db)],
    client: Annotated[httpx.Client, Depends(get_upstream_client)],
    body: Annotated[bytes, Depends(get_raw_body)],
) -> Response | dict:
    """Archive a session (one-way).

    Returns:
        The updated session.

    Errors:
        E_INVALID_SESSION_ID (400), E_SESSION_NOT_FOUND (404), E_FORBIDDEN (403),
        E_SESSION_ALREADY_ARCHIVED (409)
    """
    path = f"{UPSTREAM_SESSIONS_PATH}/{session_id}/archive"
    forwarded = _forward_if_debug(ctx, request, body, client, path)
    if forwarded is not None:
        return forwarded
    session = sessions_service.archive_session(db, ctx.user_id, session_id)
    return session.model_dump(mode="json")


@router.get("/sessions/{session_id}/events", response_model=None)
def list_session_events(
    session_id: str,
    request: Request,
    ctx: Annotated[Authenticated, Depends(require_provider_context)],
    db: Annotated[Session, Depends(get_db)],
    client: Annotated[httpx.Client, Depends(get_upstream_client)],
    body: Annotated[bytes, Depends(get_raw_body)],
) -> Response | dict:
    """List a session's events in sequence order.

    Query: limit, after_id, before_id (event uuids).

    Returns:
        {"data": [Event, ...], "has_more", "first_id"?, "last_id"?}

    Errors:
        E_INVALID_SESSION_ID / E_INVALID_CURSOR / E_INVALID_REQUEST (400),
        E_SESSION_NOT_FOUND (404), E_FORBIDDEN (403)
    """
    path = f"{UPSTREAM_SESSIONS_PATH}/{session_id}/events"
    forwarded = _forward_if_debug(ctx, request, body, client, path)
    if forwarded is not None:
        return forwarded
    return events_service.list_events(db, ctx.user_id, session_id, request.query_params)
