"""Error codes and the exceptions that carry them to the error envelope.

Services raise ApiError (or a subclass); the handlers in relay.responses turn
it into `{"error": {"code", "message", "request_id"}}` with the status that
ERROR_CODE_TO_STATUS assigns to the code.
"""

from enum import Enum


class ApiErrorCode(str, Enum):
    E_UNAUTHENTICATED = "E_UNAUTHENTICATED"
    E_FORBIDDEN = "E_FORBIDDEN"
    E_INTERNAL_ONLY = "E_INTERNAL_ONLY"
    E_NOT_FOUND = "E_NOT_FOUND"
    E_SESSION_NOT_FOUND = "E_SESSION_NOT_FOUND"
    E_SESSION_ALREADY_ARCHIVED = "E_SESSION_ALREADY_ARCHIVED"
    E_INVALID_REQUEST = "E_INVALID_REQUEST"
    E_INVALID_SESSION_ID = "E_INVALID_SESSION_ID"
    E_INVALID_CURSOR = "E_INVALID_CURSOR"
    E_PROVIDER_MISCONFIGURED = "E_PROVIDER_MISCONFIGURED"
    E_SETTINGS_INVALID = "E_SETTINGS_INVALID"
    E_UPSTREAM_UNAVAILABLE = "E_UPSTREAM_UNAVAILABLE"
    E_AUTH_UNAVAILABLE = "E_AUTH_UNAVAILABLE"
    E_INTERNAL = "E_INTERNAL"


_CODES_BY_STATUS: dict[int, tuple[ApiErrorCode, ...]] = {
    400: (
        ApiErrorCode.E_INVALID_REQUEST,
        ApiErrorCode.E_INVALID_SESSION_ID,
        ApiErrorCode.E_INVALID_CURSOR,
        ApiErrorCode.E_PROVIDER_MISCONFIGURED,
        ApiErrorCode.E_SETTINGS_INVALID,
    ),
    401: (ApiErrorCode.E_UNAUTHENTICATED,),
    403: (ApiErrorCode.E_FORBIDDEN, ApiErrorCode.E_INTERNAL_ONLY),
    404: (ApiErrorCode.E_NOT_FOUND, ApiErrorCode.E_SESSION_NOT_FOUND),
    409: (ApiErrorCode.E_SESSION_ALREADY_ARCHIVED,),
    500: (ApiErrorCode.E_INTERNAL,),
    502: (ApiErrorCode.E_UPSTREAM_UNAVAILABLE,),
    503: (ApiErrorCode.E_AUTH_UNAVAILABLE,),
}

ERROR_CODE_TO_STATUS: dict[ApiErrorCode, int] = {
    code: status for status, codes in _CODES_BY_STATUS.items() for code in codes
}


class ApiError(Exception):
    """An error with a stable code; `status_code` follows from the code."""

    default_code = ApiErrorCode.E_INTERNAL
    default_message = "Internal server error"

    def __init__(self, code: ApiErrorCode | None = None, message: str | None = None):
        self.code = code or self.default_code
        self.message = message or self.default_message
        self.status_code = ERROR_CODE_TO_STATUS.get(self.code, 500)
        super().__init__(self.message)


class NotFoundError(ApiError):
    default_code = ApiErrorCode.E_NOT_FOUND
    default_message = "Not found"


class ForbiddenError(ApiError):
    default_code = ApiErrorCode.E_FORBIDDEN
    default_message = "Forbidden"


class InvalidRequestError(ApiError):
    default_code = ApiErrorCode.E_INVALID_REQUEST
    default_message = "Invalid request"


class ConflictError(ApiError):
    """Invalid state transition, such as archiving an archived session."""

    default_code = ApiErrorCode.E_SESSION_ALREADY_ARCHIVED
    default_message = "Conflict"


class UpstreamError(ApiError):
    """The upstream API could not be reached (connect failure or timeout)."""

    default_code = ApiErrorCode.E_UPSTREAM_UNAVAILABLE
    default_message = "Upstream service unavailable"
