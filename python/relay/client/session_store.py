"""Client-side reconciliation of pending messages and live events.

Two independent containers per session:

- LiveEventBuffer: events delivered out-of-band (streaming). Ephemeral,
  deduplicated by uuid, rebuilt from the authoritative event list on reconnect.
- PendingMessageQueue: messages the user submitted that the server has not
  echoed back yet. Durable through a PendingStorage so a draft survives a
  restart.

A pending message is confirmed (and dropped) when a live event with the same
uuid is observed. Every SessionStore mutation runs under one lock and swaps in
a new immutable snapshot computed from the current one; a mutation that
changes nothing keeps the existing snapshot object and skips persistence.
"""

import copy
import json
import os
import tempfile
import threading
import uuid
from collections.abc import Iterable, Mapping, Sequence
from pathlib import Path
from typing import Any, Protocol

from relay.logging import get_logger

logger = get_logger(__name__)

Event = dict[str, Any]

# Stream messages that are never rendered or buffered
NON_RENDERABLE_TYPES = frozenset(
    {
        "keep_alive",
        "env_manager_log",
        "system",
        "tool_progress",
        "control_request",
        "control_response",
    }
)

_EMPTY: tuple[Event, ...] = ()


def event_uuid(event: Mapping[str, Any]) -> str | None:
    """Return the event's uuid, or None when it carries none."""
    value = event.get("uuid")
    return value if value else None


def merge_events(
    initial: Iterable[Event],
    live: Iterable[Event],
    pending: Iterable[Event],
) -> list[Event]:
    """Merge fetched, live and pending events for display.

    Order: every initial event, then live events not already seen, then
    pending messages not already seen. Events without a uuid are always kept.
    """
    seen: set[str] = set()
    merged: list[Event] = []

    for source in (initial, live, pending):
        for event in source:
            uid = event_uuid(event)
            if uid is not None:
                if uid in seen:
                    continue
                seen.add(uid)
            merged.append(event)

    return merged


# =============================================================================
# Pending storage
# =============================================================================


class PendingStorage(Protocol):
    """Durable home of the pending-message mapping."""

    def load(self) -> dict[str, list[Event]]: ...

    def save(self, pending: Mapping[str, Sequence[Event]]) -> None: ...


class InMemoryPendingStorage:
    """Process-local storage (tests, embedding without a disk)."""

    def __init__(self, initial: Mapping[str, Sequence[Event]] | None = None):
        self._data: dict[str, list[Event]] = copy.deepcopy(
            {k: list(v) for k, v in (initial or {}).items()}
        )
        self.save_count = 0

    def load(self) -> dict[str, list[Event]]:
        return copy.deepcopy(self._data)

    def save(self, pending: Mapping[str, Sequence[Event]]) -> None:
        self._data = copy.deepcopy({k: list(v) for k, v in pending.items()})
        self.save_count += 1


class JsonFilePendingStorage:
    """Pending messages persisted as one JSON document.

    Writes go to a temporary file in the same directory and are moved into
    place with os.replace, so a crash never leaves a truncated file.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def load(self) -> dict[str, list[Event]]:
        if not self.path.exists():
            return {}
        with self.path.open("r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"Pending message file {self.path} does not hold an object")
        return {str(k): list(v) for k, v in data.items()}

    def save(self, pending: Mapping[str, Sequence[Event]]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = {k: list(v) for k, v in pending.items() if v}
        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f)
            os.replace(tmp_name, self.path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise


# =============================================================================
# Containers
# =============================================================================


class LiveEventBuffer:
    """Ephemeral per-session event buffer, at most one event per uuid."""

    def __init__(self) -> None:
        self._events: dict[str, tuple[Event, ...]] = {}

    def get(self, session_id: str) -> tuple[Event, ...]:
        return self._events.get(session_id, _EMPTY)

    def append(self, session_id: str, event: Event) -> bool:
        current = self.get(session_id)
        uid = event_uuid(event)
        if uid is not None and any(event_uuid(e) == uid for e in current):
            return False
        self._events[session_id] = current + (copy.deepcopy(event),)
        return True

    def clear(self, session_id: str) -> bool:
        if not self.get(session_id):
            return False
        self._events[session_id] = _EMPTY
        return True


class PendingMessageQueue:
    """Durable per-session queue of unconfirmed outbound messages."""

    def __init__(self, storage: PendingStorage):
        self._storage = storage
        self._messages: dict[str, tuple[Event, ...]] = {
            session_id: tuple(messages) for session_id, messages in storage.load().items()
        }

    def get(self, session_id: str) -> tuple[Event, ...]:
        return self._messages.get(session_id, _EMPTY)

    def _swap(self, session_id: str, messages: tuple[Event, ...]) -> None:
        # Memory only moves once storage holds the same mapping.
        updated = {**self._messages, session_id: messages}
        self._storage.save(updated)
        self._messages = updated

    def add(self, session_id: str, message: Event) -> bool:
        current = self.get(session_id)
        uid = event_uuid(message)
        if uid is not None and any(event_uuid(m) == uid for m in current):
            return False
        self._swap(session_id, current + (copy.deepcopy(message),))
        return True

    def remove(self, session_id: str, message_uuid: str) -> bool:
        current = self.get(session_id)
        remaining = tuple(m for m in current if event_uuid(m) != message_uuid)
        if len(remaining) == len(current):
            return False
        self._swap(session_id, remaining)
        return True

    def clear(self, session_id: str) -> bool:
        if not self.get(session_id):
            return False
        self._swap(session_id, _EMPTY)
        return True


# =============================================================================
# Store
# =============================================================================


class SessionStore:
    """Thread-safe reconciliation store shared by every event source.

    Usage:
        store = SessionStore(JsonFilePendingStorage("~/.relay/pending.json"))
        message = store.submit_message(session_id, "hello")
        ...
        store.observe_event(session_id, event_from_stream)
        events = store.merged_events(session_id, fetched_events)
    """

    def __init__(self, storage: PendingStorage | None = None):
        self._lock = threading.Lock()
        self._live = LiveEventBuffer()
        self._pending = PendingMessageQueue(storage or InMemoryPendingStorage())

    # Live events

    def add_live_event(self, session_id: str, event: Event) -> bool:
        """Buffer a live event; a uuid already buffered is a no-op."""
        with self._lock:
            return self._live.append(session_id, event)

    def clear_live_events(self, session_id: str) -> bool:
        """Drop the session's live buffer. Pending messages are untouched."""
        with self._lock:
            return self._live.clear(session_id)

    def live_events(self, session_id: str) -> tuple[Event, ...]:
        """The current live snapshot. Shared with the store: treat it as read-only."""
        with self._lock:
            return self._live.get(session_id)

    # Pending messages

    def add_pending_message(self, session_id: str, message: Event) -> bool:
        with self._lock:
            return self._pending.add(session_id, message)

    def remove_pending_message(self, session_id: str, message_uuid: str) -> bool:
        with self._lock:
            return self._pending.remove(session_id, message_uuid)

    def clear_pending_messages(self, session_id: str) -> bool:
        with self._lock:
            return self._pending.clear(session_id)

    def pending_messages(self, session_id: str) -> tuple[Event, ...]:
        """The current pending snapshot. Shared with the store: treat it as read-only."""
        with self._lock:
            return self._pending.get(session_id)

    def submit_message(self, session_id: str, content: str | list[dict[str, Any]]) -> Event:
        """Queue an outbound user message with a fresh uuid and return it.

        The caller sends the returned message; it stays pending until the
        server echoes an event with the same uuid.
        """
        message: Event = {
            "type": "user",
            "uuid": str(uuid.uuid4()),
            "session_id": session_id,
            "parent_tool_use_id": None,
            "message": {"role": "user", "content": content},
        }
        with self._lock:
            self._pending.add(session_id, message)
        return message

    # Stream ingestion

    def observe_event(self, session_id: str, event: Event) -> bool:
        """Apply one message from the live stream.

        Non-renderable types are ignored. A renderable event is buffered, then
        confirms the pending message with the same uuid. If persisting that
        confirmation fails the error propagates; the event stays buffered and
        the message stays pending, in memory and in storage alike.

        Returns:
            True if the live buffer changed.
        """
        if event.get("type") in NON_RENDERABLE_TYPES:
            return False

        uid = event_uuid(event)
        with self._lock:
            changed = self._live.append(session_id, event)
            if uid is not None and self._pending.remove(session_id, uid):
                logger.debug("pending_message_confirmed", session_id=session_id, uuid=uid)
            return changed

    def merged_events(self, session_id: str, initial: Iterable[Event]) -> list[Event]:
        """Fetched events merged with this session's live and pending state.

        Live and pending entries are copies; callers may annotate them freely.
        """
        with self._lock:
            live = copy.deepcopy(self._live.get(session_id))
            pending = copy.deepcopy(self._pending.get(session_id))
        return merge_events(initial, live, pending)
