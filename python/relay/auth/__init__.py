"""Authentication and provider-context resolution."""

from relay.auth.middleware import AuthContext, AuthMiddleware, get_auth_context
from relay.auth.provider_context import (
    Authenticated,
    ByokContext,
    DebugContext,
    HostedContext,
    Misconfigured,
    ProviderContext,
    Unauthenticated,
    get_user_provider_context,
    require_provider_context,
    resolve_provider_context,
)
from relay.auth.verifier import JwksTokenVerifier, TokenVerifier

__all__ = [
    "AuthContext",
    "AuthMiddleware",
    "get_auth_context",
    "TokenVerifier",
    "JwksTokenVerifier",
    "ProviderContext",
    "HostedContext",
    "ByokContext",
    "DebugContext",
    "Authenticated",
    "Misconfigured",
    "Unauthenticated",
    "resolve_provider_context",
    "get_user_provider_context",
    "require_provider_context",
]
