"""Bearer JWT verification against the identity provider's JWKS.

`decode_claims` holds the claim rules shared by every verifier: RS256/ES256
signature, exp/iss/sub present, aud in the allowed list, 60 seconds of clock
skew, and a UUID `sub`. Test verifiers live in tests/support/test_verifier.py.
"""

import threading
from collections.abc import Sequence
from typing import Any, Protocol
from uuid import UUID

import jwt
from jwt import PyJWK, PyJWKClient
from jwt.exceptions import (
    DecodeError,
    ExpiredSignatureError,
    InvalidAudienceError,
    InvalidIssuerError,
    InvalidSignatureError,
    InvalidTokenError,
    PyJWKClientError,
)

from relay.errors import ApiError, ApiErrorCode
from relay.logging import get_logger

logger = get_logger(__name__)

CLOCK_SKEW_SECONDS = 60
ALGORITHMS = ("RS256", "ES256")

# Most specific first: InvalidTokenError is the base class of the others.
_FAILURE_MESSAGES: tuple[tuple[type[InvalidTokenError], str], ...] = (
    (ExpiredSignatureError, "Token expired"),
    (InvalidSignatureError, "Invalid token signature"),
    (InvalidIssuerError, "Invalid token issuer"),
    (InvalidAudienceError, "Invalid token audience"),
    (DecodeError, "Invalid token format"),
)


class TokenVerifier(Protocol):
    def verify(self, token: str) -> dict[str, Any]:
        """Return the token's claims.

        Raises:
            ApiError(E_UNAUTHENTICATED): Token is invalid, expired, or malformed.
            ApiError(E_AUTH_UNAVAILABLE): The key set could not be fetched.
        """
        ...


def _unauthenticated(message: str) -> ApiError:
    logger.warning("auth_failure", reason=message)
    return ApiError(ApiErrorCode.E_UNAUTHENTICATED, message)


def token_error_to_api_error(exc: InvalidTokenError) -> ApiError:
    """E_UNAUTHENTICATED with a stable message for a PyJWT failure."""
    message = next(
        (text for exc_type, text in _FAILURE_MESSAGES if isinstance(exc, exc_type)),
        "Invalid token",
    )
    return _unauthenticated(message)


def require_uuid_subject(payload: dict[str, Any]) -> dict[str, Any]:
    sub = payload.get("sub")
    if not sub:
        raise _unauthenticated("Invalid token: missing sub")
    try:
        UUID(str(sub))
    except ValueError as exc:
        raise _unauthenticated("Invalid token: sub is not a valid UUID") from exc
    return payload


def decode_claims(
    token: str,
    key: Any,
    *,
    issuer: str,
    audiences: Sequence[str],
    algorithms: Sequence[str] = ALGORITHMS,
) -> dict[str, Any]:
    """Verify `token` with `key` and return its claims."""
    try:
        payload = jwt.decode(
            token,
            key,
            algorithms=list(algorithms),
            audience=list(audiences),
            issuer=issuer,
            leeway=CLOCK_SKEW_SECONDS,
            options={"require": ["exp", "iss", "sub"], "verify_aud": True},
        )
    except InvalidTokenError as exc:
        raise token_error_to_api_error(exc) from exc
    return require_uuid_subject(payload)


def _is_kid_miss(exc: PyJWKClientError) -> bool:
    text = str(exc)
    return "Unable to find" in text or "kid" in text.lower()


class JwksTokenVerifier:
    """Verifies tokens with keys fetched from `jwks_url`.

    Keys are cached for `cache_ttl` seconds. A token signed with an unknown
    kid triggers one forced refresh of the key set before it is rejected, so
    key rotation at the provider is picked up without a restart.
    """

    def __init__(self, jwks_url: str, issuer: str, audiences: list[str], cache_ttl: int = 3600):
        self.jwks_url = jwks_url
        self.issuer = issuer.rstrip("/")
        self.audiences = audiences
        self.cache_ttl = cache_ttl
        self._client: PyJWKClient | None = None
        self._lock = threading.Lock()

    def _get_jwks_client(self, refresh: bool = False) -> PyJWKClient:
        with self._lock:
            if refresh or self._client is None:
                self._client = PyJWKClient(self.jwks_url, cache_keys=True, lifespan=self.cache_ttl)
            return self._client

    def verify(self, token: str) -> dict[str, Any]:
        try:
            signing_key = self._signing_key(token)
        except PyJWKClientError as exc:
            logger.warning("jwks_unavailable", error=str(exc))
            raise ApiError(
                ApiErrorCode.E_AUTH_UNAVAILABLE, "Authentication service unavailable"
            ) from exc
        except InvalidTokenError as exc:
            raise token_error_to_api_error(exc) from exc

        return decode_claims(token, signing_key.key, issuer=self.issuer, audiences=self.audiences)

    def _signing_key(self, token: str) -> PyJWK:
        try:
            return self._get_jwks_client().get_signing_key_from_jwt(token)
        except PyJWKClientError as exc:
            if not _is_kid_miss(exc):
                raise

        logger.info("jwks_refresh_on_kid_miss")
        try:
            return self._get_jwks_client(refresh=True).get_signing_key_from_jwt(token)
        except PyJWKClientError as exc:
            raise _unauthenticated("Invalid token: signing key not found") from exc
