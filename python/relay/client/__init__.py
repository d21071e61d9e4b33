"""Client-side helpers: relay API client and pending/live event reconciliation."""

from relay.client.api import RelayClient, RelayClientError
from relay.client.session_store import (
    NON_RENDERABLE_TYPES,
    InMemoryPendingStorage,
    JsonFilePendingStorage,
    LiveEventBuffer,
    PendingMessageQueue,
    PendingStorage,
    SessionStore,
    merge_events,
)

__all__ = [
    "RelayClient",
    "RelayClientError",
    "SessionStore",
    "LiveEventBuffer",
    "PendingMessageQueue",
    "PendingStorage",
    "InMemoryPendingStorage",
    "JsonFilePendingStorage",
    "NON_RENDERABLE_TYPES",
    "merge_events",
]
