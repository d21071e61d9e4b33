"""HTTP client for the relay API.

Thin synchronous wrapper over httpx. Every call is made exactly once; non-2xx
responses raise RelayClientError carrying the status and, when the body is a
relay error envelope, its error code.
"""

from collections.abc import Iterator
from typing import Any

import httpx

from relay.logging import get_logger

logger = get_logger(__name__)

DEFAULT_TIMEOUT_S = 30.0


class RelayClientError(Exception):
    """A relay call returned a non-2xx response.

    Attributes:
        status_code: HTTP status.
        code: Error code from the relay envelope (None for foreign bodies,
            e.g. errors relayed verbatim from upstream).
        message: Human-readable message when one was provided.
    """

    def __init__(self, status_code: int, code: str | None, message: str):
        self.status_code = status_code
        self.code = code
        self.message = message
        super().__init__(f"{status_code} {code or 'error'}: {message}")


def _raise_for_status(response: httpx.Response) -> None:
    if response.is_success:
        return

    code = None
    message = response.reason_phrase
    try:
        body = response.json()
    except ValueError:
        body = None

    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        error = body["error"]
        code = error.get("code")
        message = error.get("message") or message

    raise RelayClientError(response.status_code, code, message)


class RelayClient:
    """Client for the relay's session endpoints.

    Usage:
        with RelayClient("http://localhost:8000", token=jwt) as relay:
            for event in relay.iter_events("session_..."):
                ...
    """

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        client: httpx.Client | None = None,
        timeout: float = DEFAULT_TIMEOUT_S,
        headers: dict[str, str] | None = None,
    ):
        request_headers = dict(headers or {})
        if token:
            request_headers["Authorization"] = f"Bearer {token}"

        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=timeout)
        self._base_url = base_url.rstrip("/")
        self._headers = request_headers

    def __enter__(self) -> "RelayClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        response = self._client.request(
            method, f"{self._base_url}{path}", headers=self._headers, **kwargs
        )
        _raise_for_status(response)
        return response.json()

    # Sessions

    def list_sessions(
        self,
        limit: int | None = None,
        after_id: str | None = None,
        before_id: str | None = None,
    ) -> dict[str, Any]:
        params = _page_params(limit, after_id, before_id)
        return self._request("GET", "/sessions", params=params)

    def get_session(self, session_id: str) -> dict[str, Any]:
        return self._request("GET", f"/sessions/{session_id}")

    def archive_session(self, session_id: str) -> dict[str, Any]:
        """Archive a session. Raises RelayClientError(409) if already archived."""
        return self._request("POST", f"/sessions/{session_id}/archive")

    # Events

    def list_events(
        self,
        session_id: str,
        limit: int | None = None,
        after_id: str | None = None,
        before_id: str | None = None,
    ) -> dict[str, Any]:
        """Fetch one page of events.

        Returns:
            {"data": [...], "has_more", "first_id"?, "last_id"?}
        """
        params = _page_params(limit, after_id, before_id)
        return self._request("GET", f"/sessions/{session_id}/events", params=params)

    def iter_events(self, session_id: str, page_size: int = 50) -> Iterator[dict[str, Any]]:
        """Yield every event of a session, following last_id while has_more."""
        after_id = None
        while True:
            page = self.list_events(session_id, limit=page_size, after_id=after_id)
            yield from page["data"]
            if not page.get("has_more") or not page.get("last_id"):
                return
            after_id = page["last_id"]
            logger.debug("events_page_followed", session_id=session_id, after_id=after_id)


def _page_params(
    limit: int | None, after_id: str | None, before_id: str | None
) -> dict[str, str]:
    params: dict[str, str] = {}
    if limit is not None:
        params["limit"] = str(limit)
    if after_id:
        params["after_id"] = after_id
    if before_id:
        params["before_id"] = before_id
    return params
