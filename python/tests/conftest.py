"""Pytest configuration and fixtures for relay tests.

Test isolation strategy:
- Every test gets a fresh database: an in-memory SQLite engine with the ORM
  schema created from the models, or TEST_DATABASE_URL when it is set
- Request handlers and the auth bootstrap use sessions from the same engine,
  so rows committed by factories are visible to the API and vice versa
- Auth tests use authenticated_client with RS256 test tokens
- Upstream calls are intercepted with respx
"""

import base64
import os
from collections.abc import Generator
from uuid import UUID

# Required settings must exist before relay modules build Settings
os.environ.setdefault("RELAY_ENV", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("AUTH_JWKS_URL", "http://localhost:9999/.well-known/jwks.json")
os.environ.setdefault("AUTH_ISSUER", "test-issuer")
os.environ.setdefault("AUTH_AUDIENCES", "test-audience")
os.environ.setdefault("UPSTREAM_API_URL", "https://upstream.test")
os.environ.setdefault("LOG_JSON", "false")
os.environ.setdefault("RELAY_KEY_ENCRYPTION_KEY", base64.b64encode(bytes(range(32))).decode())

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from relay.app import create_app
from relay.auth.middleware import AuthMiddleware
from relay.config import clear_settings_cache
from relay.db.engine import create_db_engine
from relay.db.models import Base
from relay.db.session import create_session_factory, get_db, session_scope
from relay.services.bootstrap import ensure_user
from relay.services.crypto import clear_master_key_cache
from tests.helpers import create_test_user_id
from tests.support.test_verifier import MockJwtVerifier


def _create_test_engine() -> Engine:
    url = os.environ.get("TEST_DATABASE_URL")
    if url:
        return create_db_engine(url)
    return create_db_engine("sqlite+pysqlite:///:memory:", poolclass=StaticPool)


@pytest.fixture
def engine() -> Generator[Engine, None, None]:
    """Fresh database engine with the full schema."""
    engine = _create_test_engine()
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine: Engine) -> sessionmaker[Session]:
    return create_session_factory(engine)


@pytest.fixture
def db_session(session_factory: sessionmaker[Session]) -> Generator[Session, None, None]:
    """Session for arranging and inspecting rows.

    Call db_session.expire_all() before reading rows an API call changed.
    """
    session = session_factory()
    yield session
    session.close()


def _bind_app_to_test_db(app: FastAPI, session_factory: sessionmaker[Session]) -> None:
    def override_get_db() -> Generator[Session, None, None]:
        with session_scope(session_factory) as db:
            yield db

    app.dependency_overrides[get_db] = override_get_db


@pytest.fixture
def client() -> Generator[TestClient, None, None]:
    """FastAPI test client without authentication (public endpoints)."""
    app = create_app(skip_auth_middleware=True)
    with TestClient(app) as client:
        yield client


@pytest.fixture
def test_verifier() -> MockJwtVerifier:
    return MockJwtVerifier()


@pytest.fixture
def authenticated_app(session_factory: sessionmaker[Session]) -> FastAPI:
    """FastAPI app with auth middleware using the test verifier and test database."""

    def bootstrap_callback(user_id: UUID) -> None:
        with session_scope(session_factory) as db:
            ensure_user(db, user_id)

    app = create_app(skip_auth_middleware=True)
    app.add_middleware(
        AuthMiddleware,
        verifier=MockJwtVerifier(),
        requires_internal_header=False,
        internal_secret=None,
        bootstrap_callback=bootstrap_callback,
    )
    _bind_app_to_test_db(app, session_factory)
    return app


@pytest.fixture
def authenticated_client(authenticated_app: FastAPI) -> Generator[TestClient, None, None]:
    """Test client with auth middleware; pair with auth_headers(user_id)."""
    with TestClient(authenticated_app) as client:
        yield client


@pytest.fixture
def test_user_id() -> UUID:
    return create_test_user_id()


@pytest.fixture(autouse=True)
def reset_caches():
    """Reset cached settings and vault keys around each test."""
    clear_settings_cache()
    clear_master_key_cache()
    yield
    clear_settings_cache()
    clear_master_key_cache()
