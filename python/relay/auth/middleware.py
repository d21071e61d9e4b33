"""Bearer-token authentication for every non-public route.

The middleware attaches an AuthContext to `request.state.auth`; routes read
it back through `get_auth_context`. In staging and prod the relay sits behind
the web tier, which proves itself with the X-Relay-Internal shared secret.
That header is checked before the bearer token.
"""

import hmac
from collections.abc import Callable
from dataclasses import dataclass
from uuid import UUID

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response
from starlette.types import ASGIApp

from relay.auth.verifier import TokenVerifier
from relay.errors import ApiError, ApiErrorCode, ForbiddenError
from relay.logging import get_logger
from relay.responses import error_json_response

logger = get_logger(__name__)

INTERNAL_HEADER = "x-relay-internal"
BEARER_PREFIX = "bearer "

PUBLIC_PATHS = frozenset({"/health", "/docs", "/redoc", "/openapi.json"})


@dataclass(frozen=True)
class AuthContext:
    """Authenticated caller. `user_id` is the JWT `sub` claim."""

    user_id: UUID


def _unauthenticated(message: str) -> ApiError:
    return ApiError(ApiErrorCode.E_UNAUTHENTICATED, message)


def parse_bearer_token(header_value: str | None) -> str:
    """Return the token from an Authorization header value.

    The scheme is matched case-insensitively.

    Raises:
        ApiError(E_UNAUTHENTICATED): header missing, not Bearer, or empty token.
    """
    if not header_value:
        raise _unauthenticated("Authentication required")
    scheme, token = header_value[: len(BEARER_PREFIX)], header_value[len(BEARER_PREFIX) :]
    token = token.strip()
    if scheme.lower() != BEARER_PREFIX or not token:
        raise _unauthenticated("Invalid authorization header format")
    return token


class AuthMiddleware(BaseHTTPMiddleware):
    def __init__(
        self,
        app: ASGIApp,
        verifier: TokenVerifier,
        requires_internal_header: bool = False,
        internal_secret: str | None = None,
        bootstrap_callback: Callable[[UUID], None] | None = None,
    ):
        """
        Args:
            verifier: Verifies bearer tokens and returns their claims.
            requires_internal_header: Enforce X-Relay-Internal (staging, prod).
            internal_secret: Expected X-Relay-Internal value.
            bootstrap_callback: Called with the user id after every successful
                verification; creates the user row on first sight.
        """
        super().__init__(app)
        self.verifier = verifier
        self.requires_internal_header = requires_internal_header
        self.internal_secret = internal_secret
        self.bootstrap_callback = bootstrap_callback

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.url.path in PUBLIC_PATHS:
            return await call_next(request)

        try:
            request.state.auth = self.authenticate(request)
        except ApiError as exc:
            if exc.status_code < 500:
                logger.warning("auth_failure", code=exc.code.value, reason=exc.message)
            return error_json_response(exc.code, exc.message, exc.status_code)

        return await call_next(request)

    def authenticate(self, request: Request) -> AuthContext:
        if self.requires_internal_header:
            self._check_internal_header(request.headers.get(INTERNAL_HEADER))

        token = parse_bearer_token(request.headers.get("authorization"))
        user_id = UUID(self.verifier.verify(token)["sub"])

        if self.bootstrap_callback is not None:
            try:
                self.bootstrap_callback(user_id)
            except Exception as exc:
                logger.exception("user_bootstrap_failed", user_id=str(user_id))
                raise ApiError(ApiErrorCode.E_INTERNAL, "Internal server error") from exc

        return AuthContext(user_id=user_id)

    def _check_internal_header(self, value: str | None) -> None:
        if value is None:
            raise ForbiddenError(ApiErrorCode.E_INTERNAL_ONLY, "Internal API access required")
        if not self.internal_secret:
            logger.error("internal_secret_not_configured")
            raise ApiError(ApiErrorCode.E_INTERNAL, "Internal server error")
        if not hmac.compare_digest(value.encode(), self.internal_secret.encode()):
            raise ForbiddenError(ApiErrorCode.E_INTERNAL_ONLY, "Internal API access required")


def get_auth_context(request: Request) -> AuthContext:
    """FastAPI dependency returning the authenticated caller.

    Raises:
        ApiError(E_UNAUTHENTICATED): If no AuthContext was attached.
    """
    auth = getattr(request.state, "auth", None)
    if auth is None:
        raise _unauthenticated("Authentication required")
    return auth


def get_optional_auth_context(request: Request) -> AuthContext | None:
    return getattr(request.state, "auth", None)
