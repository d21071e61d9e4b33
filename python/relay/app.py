"""Application factory.

Starlette runs middleware in reverse order of registration, so a request
passes through:

    RequestIDMiddleware -> AuthMiddleware -> route handler

`create_app` registers auth; the launcher (apps/api/main.py) then calls
`add_request_id_middleware` so the request id wraps everything, auth
failures included. Tests build apps with `skip_auth_middleware=True` and
install their own AuthMiddleware around a test verifier.

The shared upstream httpx.Client lives on app.state for the lifetime of the
app and is closed at shutdown.
"""

from contextlib import asynccontextmanager
from uuid import UUID

import httpx
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from relay.api.routes import create_api_router
from relay.auth.middleware import AuthMiddleware
from relay.auth.verifier import JwksTokenVerifier, TokenVerifier
from relay.config import Settings, get_settings
from relay.db.session import session_scope
from relay.errors import ApiError
from relay.logging import configure_logging, get_logger
from relay.middleware.request_id import RequestIDMiddleware
from relay.responses import (
    api_error_handler,
    http_exception_handler,
    unhandled_exception_handler,
    validation_exception_handler,
)
from relay.services.bootstrap import ensure_user

logger = get_logger(__name__)

EXCEPTION_HANDLERS = (
    (ApiError, api_error_handler),
    (StarletteHTTPException, http_exception_handler),
    (RequestValidationError, validation_exception_handler),
    (Exception, unhandled_exception_handler),
)


def create_bootstrap_callback():
    """Create the auth bootstrap callback; each call opens its own session."""

    def bootstrap(user_id: UUID) -> None:
        with session_scope() as db:
            ensure_user(db, user_id)

    return bootstrap


def create_token_verifier(settings: Settings | None = None) -> JwksTokenVerifier:
    settings = settings or get_settings()
    return JwksTokenVerifier(
        jwks_url=settings.auth_jwks_url,  # type: ignore[arg-type]
        issuer=settings.normalized_issuer,  # type: ignore[arg-type]
        audiences=settings.audience_list,
    )


def create_upstream_client(settings: Settings | None = None) -> httpx.Client:
    """The client debug-mode forwarding goes through. Redirects are passed back, not followed."""
    settings = settings or get_settings()
    return httpx.Client(
        timeout=httpx.Timeout(settings.proxy_timeout_s, connect=settings.proxy_connect_timeout_s),
        limits=httpx.Limits(max_connections=100, max_keepalive_connections=20),
        follow_redirects=False,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    with create_upstream_client(settings) as client:
        app.state.upstream_client = client
        logger.info("upstream_client_opened", upstream_url=settings.normalized_upstream_url)
        yield
    logger.info("upstream_client_closed")


def create_app(
    skip_auth_middleware: bool = False,
    token_verifier: TokenVerifier | None = None,
) -> FastAPI:
    """Build the relay API.

    Args:
        skip_auth_middleware: Leave auth out; the caller installs its own.
        token_verifier: Verifier to use instead of the JWKS verifier from settings.
    """
    settings = get_settings()
    configure_logging(json_format=settings.log_json)

    app = FastAPI(
        title="Session Relay API",
        description="Relay between clients and the remote agent-session API",
        version="0.1.0",
        lifespan=lifespan,
    )
    for exc_class, handler in EXCEPTION_HANDLERS:
        app.add_exception_handler(exc_class, handler)
    app.include_router(create_api_router())

    if not skip_auth_middleware:
        app.add_middleware(
            AuthMiddleware,
            verifier=token_verifier or create_token_verifier(settings),
            requires_internal_header=settings.requires_internal_header,
            internal_secret=settings.relay_internal_secret,
            bootstrap_callback=create_bootstrap_callback(),
        )
        logger.info(
            "auth_enabled",
            env=settings.relay_env.value,
            internal_header_required=settings.requires_internal_header,
        )

    return app


def add_request_id_middleware(app: FastAPI, log_requests: bool = True) -> None:
    """Register RequestIDMiddleware. Call after every other middleware."""
    app.add_middleware(RequestIDMiddleware, log_requests=log_requests)
