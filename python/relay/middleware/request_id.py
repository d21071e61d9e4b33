"""Request correlation: every response carries X-Request-ID.

Register this middleware last. Starlette runs middleware in reverse order of
registration, so it then wraps auth and the id is present on auth failures.
"""

import re
import time
import uuid

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from relay.logging import clear_request_context, get_logger, set_request_context

REQUEST_ID_HEADER = "X-Request-ID"
MAX_REQUEST_ID_BYTES = 128

_TOKEN_RE = re.compile(r"[A-Za-z0-9._-]+")
_UUID_RE = re.compile(r"[0-9a-f]{8}(-[0-9a-f]{4}){3}-[0-9a-f]{12}", re.IGNORECASE)

logger = get_logger(__name__)


def is_valid_request_id(value: str) -> bool:
    """A caller-supplied id is kept if it is a short token of [A-Za-z0-9._-]."""
    if not value or len(value.encode("utf-8")) > MAX_REQUEST_ID_BYTES:
        return False
    return _TOKEN_RE.fullmatch(value) is not None


def normalize_request_id(value: str) -> str:
    return value.lower() if _UUID_RE.fullmatch(value) else value


def resolve_request_id(incoming: str | None) -> str:
    """Keep a valid incoming id (UUIDs lowercased), otherwise mint a UUID4."""
    if incoming and is_valid_request_id(incoming):
        return normalize_request_id(incoming)
    return str(uuid.uuid4())


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Binds the request id to request.state and the log context.

    With `log_requests`, one `request_completed` event is emitted per request.
    """

    def __init__(self, app, log_requests: bool = True):
        super().__init__(app)
        self.log_requests = log_requests

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        started = time.monotonic()
        request_id = resolve_request_id(request.headers.get(REQUEST_ID_HEADER))
        request.state.request_id = request_id
        set_request_context(request_id, path=request.url.path, method=request.method)

        try:
            response = await call_next(request)
        except Exception:
            logger.exception("request_failed")
            clear_request_context()
            raise

        try:
            auth = getattr(request.state, "auth", None)
            if auth is not None:
                set_request_context(request_id, user_id=str(auth.user_id))
            response.headers[REQUEST_ID_HEADER] = request_id

            if self.log_requests:
                logger.info(
                    "request_completed",
                    status_code=response.status_code,
                    duration_ms=round((time.monotonic() - started) * 1000, 2),
                )
            return response
        finally:
            clear_request_context()
