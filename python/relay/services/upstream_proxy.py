"""Transparent relay to the upstream session API (debug mode).

Forwards an inbound request verbatim, authenticated with the user's session
key, and hands back the upstream status, body and content type unmodified.

- One outbound call per request, no retries
- Upstream HTTP errors (any status) are relayed as-is
- Only transport failures (connect error, timeout) become
  E_UPSTREAM_UNAVAILABLE (502)
- Hard timeouts come from the shared client (PROXY_TIMEOUT_S,
  PROXY_CONNECT_TIMEOUT_S)
"""

from dataclasses import dataclass, field

import httpx
from fastapi import Request, Response

from relay.auth.provider_context import DebugContext
from relay.config import get_settings
from relay.errors import UpstreamError
from relay.logging import get_logger

logger = get_logger(__name__)

DEFAULT_CONTENT_TYPE = "application/json"

# Methods whose inbound body is never forwarded
BODYLESS_METHODS = frozenset({"GET", "HEAD"})


@dataclass(frozen=True)
class UpstreamCredentials:
    """Forwarding credentials attached as upstream-specific headers."""

    session_key: str = field(repr=False)
    org_uuid: str | None = None

    @classmethod
    def from_context(cls, context: DebugContext) -> "UpstreamCredentials":
        return cls(session_key=context.session_key, org_uuid=context.org_uuid)


@dataclass(frozen=True)
class UpstreamResponse:
    """The upstream reply, relayed without modification."""

    status_code: int
    content: bytes
    content_type: str

    def to_response(self) -> Response:
        return Response(
            content=self.content,
            status_code=self.status_code,
            media_type=self.content_type,
        )


def build_upstream_headers(
    credentials: UpstreamCredentials, inbound_content_type: str | None
) -> dict[str, str]:
    """Headers sent upstream. Inbound auth headers are never forwarded."""
    settings = get_settings()
    headers = {
        "Cookie": f"sessionKey={credentials.session_key}",
        "anthropic-version": settings.upstream_api_version,
        "anthropic-beta": settings.upstream_beta,
        "Content-Type": inbound_content_type or DEFAULT_CONTENT_TYPE,
    }
    if credentials.org_uuid:
        headers["x-organization-uuid"] = credentials.org_uuid
    return headers


def build_upstream_url(path: str, query_string: str = "") -> str:
    url = f"{get_settings().normalized_upstream_url}/{path}"
    if query_string:
        url = f"{url}?{query_string}"
    return url


def proxy_to_upstream(
    client: httpx.Client,
    request: Request,
    body: bytes,
    path: str,
    credentials: UpstreamCredentials,
) -> UpstreamResponse:
    """Forward a request to `{UPSTREAM_API_URL}/{path}`.

    Args:
        client: Shared upstream HTTP client (app.state).
        request: The inbound request (method, query string, content type).
        body: The inbound raw body.
        path: Upstream path suffix, e.g. "v1/sessions/session_.../archive".
        credentials: Session key and optional organization UUID.

    Raises:
        UpstreamError: The upstream could not be reached.
    """
    method = request.method.upper()
    url = build_upstream_url(path, request.url.query)
    headers = build_upstream_headers(credentials, request.headers.get("content-type"))
    content = None if method in BODYLESS_METHODS else body

    logger.info("upstream_proxy_request", upstream_path=path, upstream_method=method)

    try:
        upstream = client.request(method, url, headers=headers, content=content)
    except httpx.TransportError as e:
        logger.warning(
            "upstream_proxy_unavailable",
            upstream_path=path,
            upstream_method=method,
            error_type=type(e).__name__,
        )
        raise UpstreamError() from e

    logger.info(
        "upstream_proxy_response",
        upstream_path=path,
        upstream_method=method,
        status_code=upstream.status_code,
    )

    return UpstreamResponse(
        status_code=upstream.status_code,
        content=upstream.content,
        content_type=upstream.headers.get("content-type") or DEFAULT_CONTENT_TYPE,
    )
