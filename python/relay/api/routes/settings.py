"""User provider settings routes.

Routes are transport-only: each calls exactly one service function.

- GET /settings: current provider mode, masked secrets, org UUID
- PATCH /settings: partial update (omitted = unchanged, "" = clear)

These routes depend on authentication only, not on a resolved provider
context, so a user whose credentials are misconfigured can still fix them.

Security invariants:
- Responses only ever contain masked secrets
- Plaintext secrets are never logged
"""

from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from relay.api.deps import get_db
from relay.auth.middleware import AuthContext, get_auth_context
from relay.schemas.settings import UpdateSettingsRequest
from relay.services import user_settings as user_settings_service

router = APIRouter()


@router.get("/settings")
def get_settings(
    auth: Annotated[AuthContext, Depends(get_auth_context)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Get the caller's provider settings.

    Returns:
        {"provider", "api_key_masked", "session_key_masked", "org_uuid"}
    """
    result = user_settings_service.get_user_settings(db, auth.user_id)
    return result.model_dump(mode="json")


@router.patch("/settings")
def update_settings(
    body: UpdateSettingsRequest,
    auth: Annotated[AuthContext, Depends(get_auth_context)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Update the caller's provider settings.

    Errors:
        E_SETTINGS_INVALID (400): A secret looks like a masked placeholder
        E_INVALID_REQUEST (400): Malformed body or unknown provider
    """
    result = user_settings_service.update_user_settings(db, auth.user_id, body)
    return result.model_dump(mode="json")
