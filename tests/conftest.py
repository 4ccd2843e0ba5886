"""
tests/conftest.py -- Shared test fixtures for the Wendessen admin tests.

This module provides:
  - user_store / audit_log: plain in-memory stores for unit tests
  - make_user(): insert a user with a role and a known password
  - session_cookie(): a signed admin-session value for a stored user
  - app_env: TestClient over the real app with seeded accounts

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
for the TestClient fixture because route handlers run in a thread pool.
Plain :memory: DBs are per-connection and would present a blank schema to
each worker thread. The named URI format
(file:name?mode=memory&cache=shared&uri=true) shares one in-memory instance
across all connections in the same process.

Environment must be set before any auth/core import:
  DEBUG=true             -- get_settings() auto-generates SECRET_KEY
  BCRYPT_ROUNDS=4        -- keeps hashing fast
  LOGIN_RATE_LIMIT       -- high enough that the suite never trips it
  ALLOWED_HOSTS          -- TestClient sends Host: testserver
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

# CRITICAL: Set env before any auth/core import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")
os.environ.setdefault("ALLOWED_HOSTS", '["testserver", "localhost"]')

import pytest
from fastapi.testclient import TestClient

from api.main import app
from audit.store import AuditLog
from auth import session as session_codec
from auth.authenticator import Authenticator
from auth.credentials import hash_password
from auth.models import SessionData, User
from auth.store import UserStore

DEFAULT_PASSWORD = "Passwort123"

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_user(
    store: UserStore,
    username: str,
    role_name: str | None = None,
    custom_permissions: list[str] | None = None,
    password: str = DEFAULT_PASSWORD,
    must_change_password: bool = False,
    verein_id: str | None = None,
) -> User:
    """Create a user with the named role and return the stored record."""
    role = store.get_role_by_name(role_name) if role_name else None
    uid = store.create_user(
        User(
            username=username,
            password_hash=hash_password(password),
            role_id=role.id if role else None,
            custom_permissions=custom_permissions or [],
            verein_id=verein_id,
            must_change_password=must_change_password,
        )
    )
    return store.find_user_by_id(uid)


def _session_cookie(user: User, timestamp: int | None = None) -> str:
    """Return a signed admin-session value for user, as login would issue it."""
    data = SessionData(
        user_id=user.id,
        username=user.username,
        must_change_password=user.must_change_password,
        timestamp=timestamp if timestamp is not None else session_codec.now_ms(),
        role_id=user.role_id,
        role_name=user.role_name,
        verein_id=user.verein_id,
    )
    return session_codec.encode(data)


# ---------------------------------------------------------------------------
# Unit-test stores
# ---------------------------------------------------------------------------


@pytest.fixture()
def user_store() -> Generator[UserStore, None, None]:
    store = UserStore(db_url="sqlite:///:memory:")
    yield store
    store.close()


@pytest.fixture()
def audit_log() -> Generator[AuditLog, None, None]:
    log = AuditLog(db_url="sqlite:///:memory:")
    yield log
    log.close()


@pytest.fixture()
def make_user():
    """Factory fixture: make_user(store, username, role_name=None, custom_permissions=None, ...)."""
    return _make_user


@pytest.fixture()
def session_cookie():
    """Factory fixture: session_cookie(user, timestamp=None) -> signed cookie value."""
    return _session_cookie


# ---------------------------------------------------------------------------
# Integration fixture
# ---------------------------------------------------------------------------


@dataclass
class AppEnv:
    """A running TestClient plus the stores and seeded users behind it."""

    client: TestClient
    user_store: UserStore
    audit: AuditLog
    users: dict[str, User] = field(default_factory=dict)

    def login_as(self, username: str, password: str = DEFAULT_PASSWORD) -> None:
        """Log in through POST /api/admin/login so the client's cookie jar holds the session."""
        self.client.cookies.clear()
        resp = self.client.post("/api/admin/login", json={"username": username, "password": password})
        assert resp.status_code == 200, resp.text

    def logout(self) -> None:
        self.client.cookies.clear()


def _patch_lifespan(user_store: UserStore, audit: AuditLog):
    """Return an async context manager that replaces the real lifespan.

    Wires pre-created test stores into app.state so TestClient routes see
    isolated test DBs rather than the configured database, and skips the
    default-admin bootstrap.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = user_store
        app.state.audit = audit
        app.state.authenticator = Authenticator(user_store)
        yield

    return test_lifespan


@pytest.fixture()
def app_env() -> Generator[AppEnv, None, None]:
    """Yield an AppEnv with one account per interesting permission shape.

    Seeded users (all with password DEFAULT_PASSWORD):
      root        super_admin, custom ["*"]
      chief       admin role, no overrides
      editor      editor role, no overrides
      verein      vereinsverwalter, verein_id "sv-wendessen"
      nobody      no_permissions role
      newbie      admin role, must_change_password=True

    follow_redirects=False so the 303 password-change deflection is visible.
    """
    suffix = uuid.uuid4().hex[:12]
    user_store = UserStore(db_url=f"sqlite:///file:test_auth_{suffix}?mode=memory&cache=shared&uri=true")
    audit = AuditLog(db_url=f"sqlite:///file:test_audit_{suffix}?mode=memory&cache=shared&uri=true")

    users = {
        "root": _make_user(user_store, "root", "super_admin", ["*"]),
        "chief": _make_user(user_store, "chief", "admin"),
        "editor": _make_user(user_store, "editor", "editor"),
        "verein": _make_user(user_store, "verein", "vereinsverwalter", verein_id="sv-wendessen"),
        "nobody": _make_user(user_store, "nobody", "no_permissions"),
        "newbie": _make_user(user_store, "newbie", "admin", must_change_password=True),
    }

    app.router.lifespan_context = _patch_lifespan(user_store, audit)

    with TestClient(app, follow_redirects=False, raise_server_exceptions=True) as client:
        yield AppEnv(client=client, user_store=user_store, audit=audit, users=users)

    user_store.close()
    audit.close()
