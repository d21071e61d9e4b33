"""User provider settings service.

Handles the provider mode and upstream credentials a user selects:
- Read settings with secrets masked for display
- Update mode, API key, session key and organization UUID

Field semantics on update:
- omitted: unchanged
- empty string: cleared (NULL)
- anything else: API key and session key are encrypted via the vault;
  org_uuid is stored as-is

Security invariants:
- Plaintext secrets never persist beyond request scope
- Never log plaintext secrets or ciphertext
- Masked values echoed back by a client (containing "...") are rejected
"""

from uuid import UUID

from sqlalchemy.orm import Session

from relay.db.models import User
from relay.db.session import transaction
from relay.errors import ApiError, ApiErrorCode
from relay.logging import get_logger
from relay.schemas.settings import SettingsOut, UpdateSettingsRequest
from relay.services import crypto

logger = get_logger(__name__)

MASK_MARKER = "..."


def _load_user(db: Session, user_id: UUID) -> User:
    user = db.get(User, user_id)
    if user is None:
        raise ApiError(ApiErrorCode.E_UNAUTHENTICATED, "Authentication required")
    return user


def _masked(ciphertext: str | None, field_name: str) -> str | None:
    if not ciphertext:
        return None
    try:
        return crypto.mask_secret(crypto.decrypt(ciphertext))
    except crypto.CryptoError:
        # Shown as unset; provider context resolution reports the misconfiguration.
        logger.warning("settings_secret_undecryptable", field=field_name)
        return None


def _to_out(user: User) -> SettingsOut:
    return SettingsOut(
        provider=user.provider,
        api_key_masked=_masked(user.api_key_enc, "api_key"),
        session_key_masked=_masked(user.session_key_enc, "session_key"),
        org_uuid=user.org_uuid,
    )


def get_user_settings(db: Session, user_id: UUID) -> SettingsOut:
    """Get the caller's provider settings with secrets masked."""
    return _to_out(_load_user(db, user_id))


def _encrypt_or_clear(value: str) -> str | None:
    return crypto.encrypt(value) if value else None


def update_user_settings(db: Session, user_id: UUID, request: UpdateSettingsRequest) -> SettingsOut:
    """Apply a partial settings update.

    Raises:
        ApiError: E_SETTINGS_INVALID if a secret looks like a masked placeholder.
        ApiError: E_UNAUTHENTICATED if the user row does not exist.
    """
    if request.api_key and MASK_MARKER in request.api_key:
        raise ApiError(ApiErrorCode.E_SETTINGS_INVALID, "Invalid API key")
    if request.session_key and MASK_MARKER in request.session_key:
        raise ApiError(ApiErrorCode.E_SETTINGS_INVALID, "Invalid session key")

    user = _load_user(db, user_id)
    provided = request.model_fields_set
    changed = []

    with transaction(db):
        if "provider" in provided and request.provider is not None:
            user.provider = request.provider
            changed.append("provider")
        if "api_key" in provided and request.api_key is not None:
            user.api_key_enc = _encrypt_or_clear(request.api_key)
            changed.append("api_key")
        if "session_key" in provided and request.session_key is not None:
            user.session_key_enc = _encrypt_or_clear(request.session_key)
            changed.append("session_key")
        if "org_uuid" in provided and request.org_uuid is not None:
            user.org_uuid = request.org_uuid or None
            changed.append("org_uuid")

    logger.info(
        "user_settings_updated",
        user_id=str(user_id),
        provider=user.provider.value,
        fields=changed,
    )
    return _to_out(user)
