"""Provider context resolution.

Decides, per authenticated user, which upstream-access mode applies and
materializes the credentials that mode needs:

- hosted: served locally, no user secrets
- byok: the user's own API key
- debug: the user's session key + organization UUID, forwarded upstream

A ProviderContext is built fresh for each request and never persisted.
Decrypted secrets live only on the context object (excluded from repr).
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Annotated
from uuid import UUID

from fastapi import Depends
from sqlalchemy.orm import Session

from relay.auth.middleware import AuthContext, get_optional_auth_context
from relay.db.models import ProviderMode, User
from relay.db.session import get_db
from relay.errors import ApiError, ApiErrorCode
from relay.logging import get_logger, set_provider_mode
from relay.services import crypto

logger = get_logger(__name__)

BYOK_KEY_MISSING = "BYOK mode requires an Anthropic API key"
BYOK_DECRYPT_FAILED = "Failed to decrypt API key"
DEBUG_SESSION_KEY_MISSING = "Debug mode requires a session key"
DEBUG_ORG_MISSING = "Debug mode requires an organization UUID"
DEBUG_DECRYPT_FAILED = "Failed to decrypt session key"


# =============================================================================
# Provider contexts (exactly one variant is active)
# =============================================================================


@dataclass(frozen=True)
class HostedContext:
    mode: ProviderMode = field(default=ProviderMode.hosted, init=False)


@dataclass(frozen=True)
class ByokContext:
    api_key: str = field(repr=False)
    mode: ProviderMode = field(default=ProviderMode.byok, init=False)


@dataclass(frozen=True)
class DebugContext:
    session_key: str = field(repr=False)
    org_uuid: str
    mode: ProviderMode = field(default=ProviderMode.debug, init=False)


ProviderContext = HostedContext | ByokContext | DebugContext


# =============================================================================
# Resolution outcomes
# =============================================================================


@dataclass(frozen=True)
class Unauthenticated:
    """No valid caller identity."""


@dataclass(frozen=True)
class Misconfigured:
    """A mode is selected but its credentials are missing or undecryptable."""

    reason: str


@dataclass(frozen=True)
class Authenticated:
    user_id: UUID
    provider: ProviderContext


ProviderContextResult = Unauthenticated | Misconfigured | Authenticated


@dataclass(frozen=True)
class StoredCredentials:
    """The user's stored provider mode and encrypted credential fields."""

    provider: str | None
    api_key_enc: str | None = None
    session_key_enc: str | None = None
    org_uuid: str | None = None

    @classmethod
    def from_user(cls, user: User) -> "StoredCredentials":
        provider = user.provider.value if user.provider is not None else None
        return cls(
            provider=provider,
            api_key_enc=user.api_key_enc,
            session_key_enc=user.session_key_enc,
            org_uuid=user.org_uuid,
        )


def resolve_provider_context(
    credentials: StoredCredentials,
    decrypt: Callable[[str], str] = crypto.decrypt,
) -> ProviderContext | Misconfigured:
    """Resolve stored credentials into a provider context.

    Pure function of stored state: never raises for missing or undecryptable
    credentials. Unknown mode values fall back to hosted.
    """
    if credentials.provider == ProviderMode.byok.value:
        if not credentials.api_key_enc:
            return Misconfigured(BYOK_KEY_MISSING)
        try:
            api_key = decrypt(credentials.api_key_enc)
        except crypto.CryptoError as e:
            logger.error("provider_context_decrypt_failed", mode="byok", error=str(e))
            return Misconfigured(BYOK_DECRYPT_FAILED)
        return ByokContext(api_key=api_key)

    if credentials.provider == ProviderMode.debug.value:
        if not credentials.session_key_enc:
            return Misconfigured(DEBUG_SESSION_KEY_MISSING)
        if not credentials.org_uuid:
            return Misconfigured(DEBUG_ORG_MISSING)
        try:
            session_key = decrypt(credentials.session_key_enc)
        except crypto.CryptoError as e:
            logger.error("provider_context_decrypt_failed", mode="debug", error=str(e))
            return Misconfigured(DEBUG_DECRYPT_FAILED)
        return DebugContext(session_key=session_key, org_uuid=credentials.org_uuid)

    return HostedContext()


def get_user_provider_context(
    db: Session,
    auth: AuthContext | None,
    decrypt: Callable[[str], str] = crypto.decrypt,
) -> ProviderContextResult:
    """Resolve the provider context for the authenticated caller."""
    if auth is None:
        return Unauthenticated()

    user = db.get(User, auth.user_id)
    if user is None:
        logger.warning("provider_context_user_missing", user_id=str(auth.user_id))
        return Unauthenticated()

    resolved = resolve_provider_context(StoredCredentials.from_user(user), decrypt=decrypt)
    if isinstance(resolved, Misconfigured):
        return resolved

    return Authenticated(user_id=auth.user_id, provider=resolved)


def require_provider_context(
    db: Annotated[Session, Depends(get_db)],
    auth: Annotated[AuthContext | None, Depends(get_optional_auth_context)],
) -> Authenticated:
    """FastAPI dependency: the caller's resolved provider context.

    Raises:
        ApiError(E_UNAUTHENTICATED): No caller or no user row.
        ApiError(E_PROVIDER_MISCONFIGURED): Credentials missing or undecryptable;
            the message is the human-readable reason.
    """
    result = get_user_provider_context(db, auth)

    if isinstance(result, Unauthenticated):
        raise ApiError(ApiErrorCode.E_UNAUTHENTICATED, "Authentication required")

    if isinstance(result, Misconfigured):
        raise ApiError(ApiErrorCode.E_PROVIDER_MISCONFIGURED, result.reason)

    set_provider_mode(result.provider.mode.value)
    return result
