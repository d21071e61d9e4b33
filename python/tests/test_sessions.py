"""Tests for session routes and the session service.

Access checks run decode (400) -> exists (404) -> owner (403) on every
session endpoint. Archive is one-way and guarded by a compare-and-set update.
"""

from uuid import uuid4

import pytest
from sqlalchemy import update

from relay.db.models import AgentSession, SessionStatus
from relay.errors import ApiErrorCode, ConflictError
from relay.services.ids import uuid_to_session_id
from relay.services.sessions import archive_session, list_sessions
from tests.factories import create_test_session, create_test_sessions, create_test_user
from tests.helpers import auth_headers


def _sid(session_uuid) -> str:
    return uuid_to_session_id(session_uuid)


class TestGetSession:
    def test_get_own_session(self, authenticated_client, db_session):
        user_id = create_test_user(db_session)
        session_uuid = create_test_session(
            db_session, user_id, title="Fix the build", session_context={"model": "m", "cwd": "/w"}
        )

        response = authenticated_client.get(
            f"/sessions/{_sid(session_uuid)}", headers=auth_headers(user_id)
        )

        assert response.status_code == 200
        body = response.json()
        assert body["id"] == _sid(session_uuid)
        assert body["title"] == "Fix the build"
        assert body["session_status"] == "idle"
        assert body["session_context"] == {"model": "m", "cwd": "/w"}
        assert body["type"] == "internal_session"
        assert "created_at" in body and "updated_at" in body

    def test_malformed_id_returns_400(self, authenticated_client, test_user_id):
        response = authenticated_client.get(
            "/sessions/not-a-session", headers=auth_headers(test_user_id)
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "E_INVALID_SESSION_ID"

    def test_unknown_id_returns_404(self, authenticated_client, test_user_id):
        response = authenticated_client.get(
            f"/sessions/{_sid(uuid4())}", headers=auth_headers(test_user_id)
        )

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "E_SESSION_NOT_FOUND"

    def test_other_users_session_returns_403(self, authenticated_client, db_session):
        owner = create_test_user(db_session)
        intruder = create_test_user(db_session)
        session_uuid = create_test_session(db_session, owner)

        response = authenticated_client.get(
            f"/sessions/{_sid(session_uuid)}", headers=auth_headers(intruder)
        )

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "E_FORBIDDEN"


class TestListSessions:
    def test_newest_first(self, authenticated_client, db_session):
        user_id = create_test_user(db_session)
        oldest, middle, newest = create_test_sessions(db_session, user_id, 3)

        response = authenticated_client.get("/sessions", headers=auth_headers(user_id))

        assert response.status_code == 200
        body = response.json()
        assert [s["id"] for s in body["data"]] == [_sid(newest), _sid(middle), _sid(oldest)]
        assert body["has_more"] is False
        assert body["first_id"] == _sid(newest)
        assert body["last_id"] == _sid(oldest)

    def test_excludes_deleted_and_foreign_sessions(self, authenticated_client, db_session):
        user_id = create_test_user(db_session)
        other = create_test_user(db_session)
        visible = create_test_session(db_session, user_id)
        create_test_session(db_session, user_id, status=SessionStatus.deleted)
        create_test_session(db_session, other)

        body = authenticated_client.get("/sessions", headers=auth_headers(user_id)).json()

        assert [s["id"] for s in body["data"]] == [_sid(visible)]

    def test_archived_sessions_are_listed(self, authenticated_client, db_session):
        user_id = create_test_user(db_session)
        archived = create_test_session(db_session, user_id, status=SessionStatus.archived)

        body = authenticated_client.get("/sessions", headers=auth_headers(user_id)).json()

        assert [s["id"] for s in body["data"]] == [_sid(archived)]
        assert body["data"][0]["session_status"] == "archived"

    def test_forward_pages(self, authenticated_client, db_session):
        user_id = create_test_user(db_session)
        oldest, middle, newest = create_test_sessions(db_session, user_id, 3)
        headers = auth_headers(user_id)

        first = authenticated_client.get("/sessions?limit=2", headers=headers).json()
        assert [s["id"] for s in first["data"]] == [_sid(newest), _sid(middle)]
        assert first["has_more"] is True

        second = authenticated_client.get(
            f"/sessions?limit=2&after_id={first['last_id']}", headers=headers
        ).json()
        assert [s["id"] for s in second["data"]] == [_sid(oldest)]
        assert second["has_more"] is False

    def test_before_id_returns_newer_sessions(self, authenticated_client, db_session):
        user_id = create_test_user(db_session)
        oldest, middle, newest = create_test_sessions(db_session, user_id, 3)

        body = authenticated_client.get(
            f"/sessions?limit=10&before_id={_sid(oldest)}", headers=auth_headers(user_id)
        ).json()

        assert [s["id"] for s in body["data"]] == [_sid(newest), _sid(middle)]
        assert body["has_more"] is False

    def test_cursor_from_another_user_yields_empty_page(self, db_session):
        user_id = create_test_user(db_session)
        other = create_test_user(db_session)
        create_test_sessions(db_session, user_id, 2)
        foreign = create_test_session(db_session, other)

        page = list_sessions(db_session, user_id, {"after_id": _sid(foreign)})

        assert page == {"data": [], "has_more": False}

    def test_malformed_cursor_returns_400(self, authenticated_client, test_user_id):
        response = authenticated_client.get(
            "/sessions?after_id=garbage", headers=auth_headers(test_user_id)
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "E_INVALID_SESSION_ID"

    def test_non_numeric_limit_returns_400(self, authenticated_client, test_user_id):
        response = authenticated_client.get(
            "/sessions?limit=many", headers=auth_headers(test_user_id)
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "E_INVALID_REQUEST"

    @pytest.mark.parametrize("limit", ["99999999999999999999999", str(2**31 - 1)])
    def test_oversized_limit_returns_400(self, authenticated_client, test_user_id, limit):
        response = authenticated_client.get(
            f"/sessions?limit={limit}", headers=auth_headers(test_user_id)
        )

        assert response.status_code == 400
        assert response.json()["error"]["message"] == "Invalid limit"


class TestUpdateSession:
    def test_rename(self, authenticated_client, db_session):
        user_id = create_test_user(db_session)
        session_uuid = create_test_session(db_session, user_id, title="old")

        response = authenticated_client.patch(
            f"/sessions/{_sid(session_uuid)}",
            json={"title": "new"},
            headers=auth_headers(user_id),
        )

        assert response.status_code == 200
        assert response.json()["title"] == "new"
        db_session.expire_all()
        assert db_session.get(AgentSession, session_uuid).title == "new"

    @pytest.mark.parametrize("payload", [b"{}", b'{"title": 5}', b"not json"])
    def test_invalid_body_returns_400(self, authenticated_client, db_session, payload):
        user_id = create_test_user(db_session)
        session_uuid = create_test_session(db_session, user_id)

        response = authenticated_client.patch(
            f"/sessions/{_sid(session_uuid)}",
            content=payload,
            headers={**auth_headers(user_id), "Content-Type": "application/json"},
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "E_INVALID_REQUEST"

    def test_rename_other_users_session_returns_403(self, authenticated_client, db_session):
        owner = create_test_user(db_session)
        intruder = create_test_user(db_session)
        session_uuid = create_test_session(db_session, owner, title="mine")

        response = authenticated_client.patch(
            f"/sessions/{_sid(session_uuid)}",
            json={"title": "yours"},
            headers=auth_headers(intruder),
        )

        assert response.status_code == 403
        db_session.expire_all()
        assert db_session.get(AgentSession, session_uuid).title == "mine"


class TestArchiveSession:
    def test_archive(self, authenticated_client, db_session):
        user_id = create_test_user(db_session)
        session_uuid = create_test_session(db_session, user_id)

        response = authenticated_client.post(
            f"/sessions/{_sid(session_uuid)}/archive", headers=auth_headers(user_id)
        )

        assert response.status_code == 200
        body = response.json()
        assert body["id"] == _sid(session_uuid)
        assert body["session_status"] == "archived"
        db_session.expire_all()
        assert db_session.get(AgentSession, session_uuid).status == SessionStatus.archived

    def test_archive_twice_returns_409(self, authenticated_client, db_session):
        user_id = create_test_user(db_session)
        session_uuid = create_test_session(db_session, user_id)
        path = f"/sessions/{_sid(session_uuid)}/archive"

        assert authenticated_client.post(path, headers=auth_headers(user_id)).status_code == 200
        db_session.expire_all()
        archived_at = db_session.get(AgentSession, session_uuid).updated_at

        response = authenticated_client.post(path, headers=auth_headers(user_id))

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "E_SESSION_ALREADY_ARCHIVED"
        db_session.expire_all()
        session = db_session.get(AgentSession, session_uuid)
        assert session.status == SessionStatus.archived
        assert session.updated_at == archived_at

    def test_archive_other_users_session_returns_403(self, authenticated_client, db_session):
        owner = create_test_user(db_session)
        intruder = create_test_user(db_session)
        session_uuid = create_test_session(db_session, owner)

        response = authenticated_client.post(
            f"/sessions/{_sid(session_uuid)}/archive", headers=auth_headers(intruder)
        )

        assert response.status_code == 403
        db_session.expire_all()
        assert db_session.get(AgentSession, session_uuid).status == SessionStatus.idle

    def test_archive_unknown_session_returns_404(self, authenticated_client, test_user_id):
        response = authenticated_client.post(
            f"/sessions/{_sid(uuid4())}/archive", headers=auth_headers(test_user_id)
        )

        assert response.status_code == 404

    def test_archive_malformed_id_returns_400(self, authenticated_client, test_user_id):
        response = authenticated_client.post(
            "/sessions/session_!!/archive", headers=auth_headers(test_user_id)
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "E_INVALID_SESSION_ID"

    def test_lost_race_returns_conflict(self, db_session):
        """A concurrent archive between the read and the update yields 409."""
        user_id = create_test_user(db_session)
        session_uuid = create_test_session(db_session, user_id)

        # The identity map still holds the idle row; archive it behind its back.
        db_session.execute(
            update(AgentSession)
            .where(AgentSession.id == session_uuid)
            .values(status=SessionStatus.archived)
            .execution_options(synchronize_session=False)
        )
        db_session.commit()

        with pytest.raises(ConflictError) as exc_info:
            archive_session(db_session, user_id, _sid(session_uuid))

        assert exc_info.value.code == ApiErrorCode.E_SESSION_ALREADY_ARCHIVED
