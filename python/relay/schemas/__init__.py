"""Pydantic schemas for request/response models.

All schemas are re-exported here for convenient imports.
"""

from relay.schemas.events import EventData
from relay.schemas.session import SessionOut, UpdateSessionRequest
from relay.schemas.settings import SettingsOut, UpdateSettingsRequest

__all__ = [
    "EventData",
    "SessionOut",
    "UpdateSessionRequest",
    "SettingsOut",
    "UpdateSettingsRequest",
]
