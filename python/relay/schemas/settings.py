"""User provider settings schemas.

Secrets are accepted in plaintext on write, encrypted before storage, and
only ever returned masked (first 12 chars + "..." + last 4 chars).
"""

from pydantic import BaseModel

from relay.db.models import ProviderMode


class SettingsOut(BaseModel):
    """Response schema for GET/PATCH /settings."""

    provider: ProviderMode
    api_key_masked: str | None = None
    session_key_masked: str | None = None
    org_uuid: str | None = None


class UpdateSettingsRequest(BaseModel):
    """Request schema for PATCH /settings.

    Omitted fields are left unchanged; an empty string clears the field.
    """

    provider: ProviderMode | None = None
    api_key: str | None = None
    session_key: str | None = None
    org_uuid: str | None = None
