"""
tests/test_authenticator.py -- Unit tests for auth/authenticator.py.

Uses starlette Response objects and a minimal request stand-in with a
.cookies mapping, so no app or TestClient is involved.

Covers:
  - create_session writes a decodable admin-session cookie
  - get_session_data: absent, tampered, expired cookies -> None
  - resolve(): live user record, deleted account -> anonymous
  - change_password: weak password writes nothing; success clears the
    must-change flag in the store AND in the re-issued session
  - store failures surface as PersistenceError
"""

from __future__ import annotations

from http.cookies import SimpleCookie
from types import SimpleNamespace

import pytest
from sqlalchemy import text
from starlette.responses import Response

from auth import session as session_codec
from auth.authenticator import Authenticator
from auth.credentials import verify_password
from auth.errors import PersistenceError, UserNotFound, WeakPassword
from core.config import get_settings

PASSWORD = "Passwort123"


def _request(token: str | None = None):
    cookies = {session_codec.SESSION_COOKIE_NAME: token} if token is not None else {}
    return SimpleNamespace(cookies=cookies)


def _cookie_from(response: Response) -> str:
    jar = SimpleCookie()
    jar.load(response.headers["set-cookie"])
    return jar[session_codec.SESSION_COOKIE_NAME].value


@pytest.fixture()
def authenticator(user_store):
    return Authenticator(user_store)


class TestSessionLifecycle:
    def test_create_session_sets_cookie(self, authenticator, user_store, make_user):
        user = make_user(user_store, "anna", "editor", verein_id="tsv")
        resp = Response()
        data = authenticator.create_session(resp, user)
        decoded = session_codec.decode(_cookie_from(resp))
        assert decoded == data
        assert decoded.user_id == user.id
        assert decoded.role_name == "editor"
        assert decoded.verein_id == "tsv"
        assert decoded.must_change_password is False

    def test_no_cookie(self, authenticator):
        assert authenticator.get_session_data(_request()) is None
        assert not authenticator.is_authenticated(_request())

    def test_garbage_cookie(self, authenticator):
        assert authenticator.get_session_data(_request("not-a-token")) is None

    def test_expired_cookie(self, authenticator, user_store, make_user, session_cookie):
        user = make_user(user_store, "anna")
        max_age_ms = get_settings().session_max_age_seconds * 1000
        old = session_cookie(user, timestamp=session_codec.now_ms() - max_age_ms - 1000)
        assert authenticator.get_session_data(_request(old)) is None
        assert authenticator.get_current_admin_user(_request(old)) is None

    def test_valid_cookie_resolves_live_user(self, authenticator, user_store, make_user, session_cookie):
        user = make_user(user_store, "anna", "editor")
        token = session_cookie(user)
        # Role change after login applies on the next request.
        admin = user_store.get_role_by_name("admin")
        user_store.update_role_and_permissions(user.id, admin.id)
        context = authenticator.resolve(_request(token))
        assert context.is_authenticated
        assert context.session.role_name == "editor"
        assert context.user.role_name == "admin"

    def test_deleted_user_resolves_anonymous(self, authenticator, user_store, make_user, session_cookie):
        user = make_user(user_store, "anna")
        token = session_cookie(user)
        with user_store.engine.connect() as conn:
            conn.execute(text("DELETE FROM admin_users WHERE id = :id"), {"id": user.id})
            conn.commit()
        context = authenticator.resolve(_request(token))
        assert not context.is_authenticated
        assert context.user is None

    def test_clear_session(self, authenticator):
        resp = Response()
        authenticator.clear_session(resp)
        assert "max-age=0" in resp.headers["set-cookie"].lower()


class TestVerifyCredentials:
    def test_delegates(self, authenticator, user_store, make_user):
        make_user(user_store, "anna", password=PASSWORD)
        assert authenticator.verify_credentials("anna", PASSWORD).username == "anna"
        assert authenticator.verify_credentials("anna", "nope") is None

    def test_store_failure_is_persistence_error(self, authenticator, user_store):
        with user_store.engine.connect() as conn:
            conn.execute(text("DROP TABLE admin_users"))
            conn.commit()
        with pytest.raises(PersistenceError):
            authenticator.verify_credentials("anna", PASSWORD)


class TestChangePassword:
    def test_weak_password_writes_nothing(self, authenticator, user_store, make_user):
        user = make_user(user_store, "anna", password=PASSWORD, must_change_password=True)
        resp = Response()
        with pytest.raises(WeakPassword) as exc_info:
            authenticator.change_password(resp, user.id, "123")
        assert exc_info.value.status_code == 400
        after = user_store.find_user_by_id(user.id)
        assert after.password_hash == user.password_hash
        assert after.must_change_password is True
        assert "set-cookie" not in resp.headers

    def test_success_clears_flag_and_reissues(self, authenticator, user_store, make_user):
        user = make_user(user_store, "anna", "editor", password=PASSWORD, must_change_password=True)
        resp = Response()
        data = authenticator.change_password(resp, user.id, "NeuesPasswort9")

        after = user_store.find_user_by_id(user.id)
        assert after.must_change_password is False
        assert verify_password("NeuesPasswort9", after.password_hash)
        assert not verify_password(PASSWORD, after.password_hash)

        assert data.must_change_password is False
        decoded = session_codec.decode(_cookie_from(resp))
        assert decoded == data
        assert decoded.user_id == user.id

    def test_unknown_user(self, authenticator):
        with pytest.raises(UserNotFound):
            authenticator.change_password(Response(), 4242, "NeuesPasswort9")
