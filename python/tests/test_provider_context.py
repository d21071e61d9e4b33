"""Tests for provider context resolution.

Covers the pure resolver (all modes and every misconfiguration reason), the
per-user lookup, and the FastAPI dependency surfaced through the session
routes.
"""

from uuid import uuid4

import pytest

from relay.auth.middleware import AuthContext
from relay.auth.provider_context import (
    BYOK_DECRYPT_FAILED,
    BYOK_KEY_MISSING,
    DEBUG_DECRYPT_FAILED,
    DEBUG_ORG_MISSING,
    DEBUG_SESSION_KEY_MISSING,
    Authenticated,
    ByokContext,
    DebugContext,
    HostedContext,
    Misconfigured,
    StoredCredentials,
    Unauthenticated,
    get_user_provider_context,
    resolve_provider_context,
)
from relay.db.models import ProviderMode, User
from relay.services import crypto
from tests.factories import create_test_user
from tests.helpers import auth_headers

ORG_UUID = "6f1c0c1e-0000-4000-8000-000000000001"


def _fake_decrypt(ciphertext: str) -> str:
    if ciphertext.startswith("bad"):
        raise crypto.CryptoError("Decryption failed")
    return f"plain:{ciphertext}"


class TestResolveProviderContext:
    def test_hosted(self):
        assert resolve_provider_context(StoredCredentials(provider="hosted")) == HostedContext()

    @pytest.mark.parametrize("provider", [None, "", "legacy", "HOSTED"])
    def test_unknown_mode_falls_back_to_hosted(self, provider):
        context = resolve_provider_context(StoredCredentials(provider=provider))
        assert isinstance(context, HostedContext)

    def test_hosted_ignores_stored_secrets(self):
        context = resolve_provider_context(
            StoredCredentials(provider="hosted", api_key_enc="bad", session_key_enc="bad"),
            decrypt=_fake_decrypt,
        )
        assert context == HostedContext()

    def test_byok(self):
        context = resolve_provider_context(
            StoredCredentials(provider="byok", api_key_enc="k1"), decrypt=_fake_decrypt
        )
        assert context == ByokContext(api_key="plain:k1")
        assert context.mode == ProviderMode.byok

    def test_byok_missing_key(self):
        context = resolve_provider_context(StoredCredentials(provider="byok"))
        assert context == Misconfigured(BYOK_KEY_MISSING)

    def test_byok_undecryptable_key(self):
        context = resolve_provider_context(
            StoredCredentials(provider="byok", api_key_enc="bad"), decrypt=_fake_decrypt
        )
        assert context == Misconfigured(BYOK_DECRYPT_FAILED)

    def test_debug(self):
        context = resolve_provider_context(
            StoredCredentials(provider="debug", session_key_enc="s1", org_uuid=ORG_UUID),
            decrypt=_fake_decrypt,
        )
        assert context == DebugContext(session_key="plain:s1", org_uuid=ORG_UUID)
        assert context.mode == ProviderMode.debug

    def test_debug_missing_session_key(self):
        context = resolve_provider_context(
            StoredCredentials(provider="debug", org_uuid=ORG_UUID), decrypt=_fake_decrypt
        )
        assert context == Misconfigured(DEBUG_SESSION_KEY_MISSING)

    def test_debug_session_key_checked_before_org(self):
        context = resolve_provider_context(StoredCredentials(provider="debug"))
        assert context == Misconfigured(DEBUG_SESSION_KEY_MISSING)

    def test_debug_missing_org(self):
        context = resolve_provider_context(
            StoredCredentials(provider="debug", session_key_enc="s1"), decrypt=_fake_decrypt
        )
        assert context == Misconfigured(DEBUG_ORG_MISSING)

    def test_debug_undecryptable_session_key(self):
        context = resolve_provider_context(
            StoredCredentials(provider="debug", session_key_enc="bad", org_uuid=ORG_UUID),
            decrypt=_fake_decrypt,
        )
        assert context == Misconfigured(DEBUG_DECRYPT_FAILED)

    def test_secrets_not_in_repr(self):
        byok = ByokContext(api_key="sk-ant-api03-secret")
        debug = DebugContext(session_key="sk-ant-sid01-secret", org_uuid=ORG_UUID)

        assert "secret" not in repr(byok)
        assert "secret" not in repr(debug)
        assert ORG_UUID in repr(debug)

    def test_real_vault_ciphertext(self):
        stored = StoredCredentials(provider="byok", api_key_enc=crypto.encrypt("sk-ant-api03-x"))
        assert resolve_provider_context(stored) == ByokContext(api_key="sk-ant-api03-x")


class TestGetUserProviderContext:
    def test_no_auth_is_unauthenticated(self, db_session):
        assert get_user_provider_context(db_session, None) == Unauthenticated()

    def test_missing_user_is_unauthenticated(self, db_session):
        auth = AuthContext(user_id=uuid4())
        assert get_user_provider_context(db_session, auth) == Unauthenticated()

    def test_new_user_is_hosted(self, db_session):
        user_id = create_test_user(db_session)

        result = get_user_provider_context(db_session, AuthContext(user_id=user_id))

        assert result == Authenticated(user_id=user_id, provider=HostedContext())

    def test_byok_user(self, db_session):
        user_id = create_test_user(
            db_session, provider=ProviderMode.byok, api_key="sk-ant-api03-abc"
        )

        result = get_user_provider_context(db_session, AuthContext(user_id=user_id))

        assert isinstance(result, Authenticated)
        assert result.provider == ByokContext(api_key="sk-ant-api03-abc")

    def test_corrupt_ciphertext_is_misconfigured(self, db_session):
        user_id = create_test_user(db_session, provider=ProviderMode.debug, org_uuid=ORG_UUID)
        user = db_session.get(User, user_id)
        user.session_key_enc = "AAAA"
        db_session.commit()

        result = get_user_provider_context(db_session, AuthContext(user_id=user_id))

        assert result == Misconfigured(DEBUG_DECRYPT_FAILED)


class TestRequireProviderContext:
    """The dependency is exercised through GET /sessions."""

    def test_unauthenticated_request_is_rejected(self, authenticated_client):
        response = authenticated_client.get("/sessions")

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "E_UNAUTHENTICATED"

    def test_misconfigured_byok_returns_reason(self, authenticated_client, db_session):
        user_id = create_test_user(db_session, provider=ProviderMode.byok)

        response = authenticated_client.get("/sessions", headers=auth_headers(user_id))

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "E_PROVIDER_MISCONFIGURED"
        assert error["message"] == BYOK_KEY_MISSING

    def test_misconfigured_debug_without_org(self, authenticated_client, db_session):
        user_id = create_test_user(
            db_session, provider=ProviderMode.debug, session_key="sk-ant-sid01-abc"
        )

        response = authenticated_client.get("/sessions", headers=auth_headers(user_id))

        assert response.status_code == 400
        assert response.json()["error"]["message"] == DEBUG_ORG_MISSING

    def test_error_never_contains_secret(self, authenticated_client, db_session):
        user_id = create_test_user(
            db_session, provider=ProviderMode.debug, session_key="sk-ant-sid01-topsecret"
        )

        response = authenticated_client.get("/sessions", headers=auth_headers(user_id))

        assert "topsecret" not in response.text

    def test_bootstrapped_user_is_hosted(self, authenticated_client, test_user_id):
        response = authenticated_client.get("/sessions", headers=auth_headers(test_user_id))

        assert response.status_code == 200
        assert response.json() == {"data": [], "has_more": False}
