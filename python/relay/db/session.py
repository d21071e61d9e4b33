"""Session factories and unit-of-work helpers.

- get_db: request-scoped session for route handlers
- session_scope: standalone session for callers outside a request handler
  (the auth bootstrap callback, scripts)
- transaction: commit-or-rollback block around a mutation

Sessions keep loaded attributes after commit (expire_on_commit=False), so a
service can return a projection built from rows it has just written.
"""

from collections.abc import Generator, Iterator
from contextlib import contextmanager
from functools import lru_cache

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from relay.db.engine import get_engine


def create_session_factory(engine: Engine | None = None) -> sessionmaker[Session]:
    """Build a sessionmaker bound to `engine` (the application engine by default)."""
    return sessionmaker(
        bind=engine if engine is not None else get_engine(),
        autoflush=False,
        expire_on_commit=False,
    )


@lru_cache
def get_session_factory() -> sessionmaker[Session]:
    """The application's session factory, created on first use."""
    return create_session_factory()


def _close(db: Session) -> None:
    if db.in_transaction():
        db.rollback()
    db.close()


def get_db() -> Generator[Session, None, None]:
    """FastAPI dependency yielding a session for one request.

    Work the handler did not commit is rolled back when the request ends.
    """
    db = get_session_factory()()
    try:
        yield db
    finally:
        _close(db)


@contextmanager
def session_scope(factory: sessionmaker[Session] | None = None) -> Iterator[Session]:
    """Open a session outside a request; uncommitted work is rolled back on exit."""
    db = (factory or get_session_factory())()
    try:
        yield db
    finally:
        _close(db)


@contextmanager
def transaction(db: Session) -> Iterator[None]:
    """Commit the block's work, or roll it back and re-raise.

    Usage:
        with transaction(db):
            db.execute(update(...))
    """
    try:
        yield
        db.commit()
    except Exception:
        db.rollback()
        raise
