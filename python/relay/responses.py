"""Error envelope helpers and exception handlers.

Errors always use the same envelope:
    { "error": { "code": "E_...", "message": "...", "request_id": "..." } }

Successful session responses are not wrapped: they mirror the upstream
session API so clients see one shape whether a request was served locally
or forwarded.
"""

from typing import Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from relay.errors import ApiError, ApiErrorCode
from relay.logging import get_logger, get_request_id

logger = get_logger(__name__)

# Common HTTP statuses raised by Starlette itself (routing, method checks)
STATUS_TO_CODE: dict[int, ApiErrorCode] = {
    400: ApiErrorCode.E_INVALID_REQUEST,
    401: ApiErrorCode.E_UNAUTHENTICATED,
    403: ApiErrorCode.E_FORBIDDEN,
    404: ApiErrorCode.E_NOT_FOUND,
    405: ApiErrorCode.E_INVALID_REQUEST,
    409: ApiErrorCode.E_SESSION_ALREADY_ARCHIVED,
    422: ApiErrorCode.E_INVALID_REQUEST,
}


def error_response(code: ApiErrorCode, message: str, request_id: str | None = None) -> dict:
    """The error envelope. `request_id` defaults to the current request's id."""
    request_id = request_id or get_request_id()
    body: dict[str, Any] = {"code": code.value, "message": message}
    if request_id:
        body["request_id"] = request_id
    return {"error": body}


def error_json_response(code: ApiErrorCode, message: str, status_code: int) -> JSONResponse:
    """Build a JSONResponse carrying the error envelope."""
    return JSONResponse(status_code=status_code, content=error_response(code, message))


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.warning("api_error", code=exc.code.value, status_code=exc.status_code)
    return error_json_response(exc.code, exc.message, exc.status_code)


async def http_exception_handler(request: Request, exc: Any) -> JSONResponse:
    """Handle Starlette HTTPException and return proper JSON response."""
    code = STATUS_TO_CODE.get(exc.status_code, ApiErrorCode.E_INTERNAL)
    return error_json_response(code, str(exc.detail or "An error occurred"), exc.status_code)


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Handle request validation errors (bad query params, malformed bodies)."""
    return error_json_response(ApiErrorCode.E_INVALID_REQUEST, "Invalid request", 400)


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """500 E_INTERNAL. The exception is logged here and never echoed to the caller."""
    logger.exception("unhandled_exception", error_type=type(exc).__name__)
    return error_json_response(ApiErrorCode.E_INTERNAL, "Internal server error", 500)
