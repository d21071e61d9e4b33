"""Event Pydantic schemas."""

from pydantic import BaseModel, ConfigDict


class EventData(BaseModel):
    """Stored event payload.

    Only the common envelope is typed; every other key is preserved as-is so
    tool calls, results and message bodies round-trip untouched.
    """

    uuid: str
    type: str
    session_id: str | None = None
    subtype: str | None = None
    parent_tool_use_id: str | None = None

    model_config = ConfigDict(extra="allow")
