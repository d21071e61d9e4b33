"""User bootstrap service.

Provides race-safe user row creation on first authenticated request.
"""

from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from relay.db.models import ProviderMode, User
from relay.logging import get_logger

logger = get_logger(__name__)


def ensure_user(db: Session, user_id: UUID) -> None:
    """Ensure a users row exists for the caller.

    Idempotent and race-safe: concurrent first requests converge on a single
    row. New users start in hosted mode with no stored credentials.
    """
    if db.get(User, user_id) is not None:
        return

    db.add(User(id=user_id, provider=ProviderMode.hosted))
    try:
        db.commit()
    except IntegrityError:
        # Lost race: another request created the row
        db.rollback()
        if db.get(User, user_id) is None:
            logger.error("user_bootstrap_race_unresolved", user_id=str(user_id))
            raise
        return

    logger.info("user_created", user_id=str(user_id))
