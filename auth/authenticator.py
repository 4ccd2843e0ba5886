"""
auth/authenticator.py -- The single owner of "who is the current caller".

Authenticator ties the credential store, the password functions, and the
session codec together:

  verify_credentials()      username/password -> User | None
  create_session()          User -> signed admin-session cookie on a response
  clear_session()           remove the cookie
  get_session_data()        cookie -> SessionData | None (absent/bad/expired -> None)
  get_current_admin_user()  cookie -> live User re-fetched from the store
  resolve()                 cookie -> RequestContext, once per request
  change_password()         validate, hash, persist, and re-issue the session

Sessions live only in the client cookie. There is no server-side session
table, so a session ends by cookie deletion or expiry. Permission and role
changes still apply on the next request because get_current_admin_user()
always reads the live record.

"request" and "response" are anything with a .cookies mapping and a
.set_cookie()/.delete_cookie() pair respectively (Starlette objects in
practice). Nothing here imports FastAPI.

Layer rule: no imports from api/ or audit/.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy.exc import SQLAlchemyError

from auth import session as session_codec
from auth.credentials import hash_password, validate_password_strength, verify_credentials
from auth.errors import PersistenceError, UserNotFound, WeakPassword
from auth.models import SessionData, User
from auth.permissions import RequestContext

if TYPE_CHECKING:
    from auth.store import UserStore

logger = logging.getLogger("wendessen.auth")


class Authenticator:
    """Session-based authentication over a UserStore."""

    def __init__(self, store: UserStore) -> None:
        self.store = store

    # ------------------------------------------------------------------
    # Credentials
    # ------------------------------------------------------------------

    def verify_credentials(self, username: str, password: str) -> User | None:
        """Return the User for a correct username/password pair, None otherwise.

        Does not reveal whether the username exists (see auth.credentials).
        """
        try:
            return verify_credentials(self.store, username, password)
        except SQLAlchemyError as exc:
            logger.exception("Credential lookup failed")
            raise PersistenceError() from exc

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    def build_session(self, user: User) -> SessionData:
        """Snapshot the user's current role and must-change state into a new session."""
        return SessionData(
            user_id=user.id,
            username=user.username,
            must_change_password=user.must_change_password,
            timestamp=session_codec.now_ms(),
            role_id=user.role_id,
            role_name=user.role_name,
            verein_id=user.verein_id,
        )

    def create_session(self, response, user: User) -> SessionData:
        """Issue a session for user and write it to the response cookie. Replaces any prior session."""
        data = self.build_session(user)
        session_codec.set_session_cookie(response, session_codec.encode(data))
        return data

    def clear_session(self, response) -> None:
        session_codec.clear_session_cookie(response)

    def get_session_data(self, request) -> SessionData | None:
        """Decode and validate the request's session cookie.

        Absent, malformed, tampered, and expired cookies all return None.
        """
        token = request.cookies.get(session_codec.SESSION_COOKIE_NAME)
        data = session_codec.decode(token)
        if data is None or session_codec.is_expired(data):
            return None
        return data

    def is_authenticated(self, request) -> bool:
        return self.get_session_data(request) is not None

    def get_current_admin_user(self, request) -> User | None:
        """Return the live user record for the request's session, or None."""
        return self.resolve(request).user

    def resolve(self, request) -> RequestContext:
        """Build the RequestContext for one request.

        A session whose user no longer exists resolves to an anonymous context.
        """
        data = self.get_session_data(request)
        if data is None:
            return RequestContext()
        try:
            user = self.store.find_user_by_id(data.user_id)
        except SQLAlchemyError as exc:
            logger.exception("User lookup failed for session user_id=%s", data.user_id)
            raise PersistenceError() from exc
        if user is None:
            return RequestContext()
        return RequestContext(session=data, user=user)

    # ------------------------------------------------------------------
    # Password change
    # ------------------------------------------------------------------

    def change_password(self, response, user_id: int, new_password: str) -> SessionData:
        """Set a new password for user_id and re-issue their session in one step.

        The strength check runs before any write. On success the stored
        must-change flag is cleared and a fresh session (without the flag)
        replaces the caller's cookie.

        Raises:
            WeakPassword: the password failed the policy; nothing was written.
            UserNotFound: user_id does not exist.
            PersistenceError: the store failed the write.
        """
        check = validate_password_strength(new_password)
        if not check.valid:
            raise WeakPassword(check.message)

        password_hash = hash_password(new_password)
        try:
            updated = self.store.update_password_hash(user_id, password_hash, must_change_password=False)
            user = self.store.find_user_by_id(user_id) if updated else None
        except SQLAlchemyError as exc:
            logger.exception("Password update failed for user_id=%s", user_id)
            raise PersistenceError() from exc
        if user is None:
            raise UserNotFound()

        logger.info("Password changed for user_id=%s", user_id)
        return self.create_session(response, user)
