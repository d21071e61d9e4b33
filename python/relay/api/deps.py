"""FastAPI dependencies for route handlers.

Common dependencies like database sessions, the shared upstream client, and
the raw request body.
"""

import httpx
from fastapi import Request

from relay.db.session import get_db

__all__ = ["get_db", "get_raw_body", "get_upstream_client"]


def get_upstream_client(request: Request) -> httpx.Client:
    """Get the shared upstream HTTP client from app state.

    The client is created in the app lifespan with the configured proxy
    timeouts and closed on shutdown.
    """
    return request.app.state.upstream_client


async def get_raw_body(request: Request) -> bytes:
    """Read the inbound body once so it can be forwarded verbatim or parsed locally."""
    return await request.body()
