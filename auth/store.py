"""
auth/store.py -- SQLAlchemy Core persistence layer for admin users and roles.

Pattern: Repository + Data Mapper. UserStore is the repository; _row_to_user
is the mapper. Route, dependency, and authenticator code never touches SQL
directly.

Security:
  All queries use bound parameters. No f-strings in SQL.
  Password hashes leave this module only inside User.password_hash; they are
  never logged.

Schema notes:
  roles is seed data. ensure_roles() inserts any role from auth.catalog.ROLES
  that is missing, keyed by name, so it is idempotent on every startup. The
  default permission sets are NOT stored; they are always read from the
  catalog.

  custom_permissions is a JSON array in a TEXT column. normalize_permissions()
  runs before every write.

Layer rule: no imports from api/ or audit/.
"""

from __future__ import annotations

import json
import logging
import secrets
from collections.abc import Iterable
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    event,
    func,
    select,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from auth.catalog import ROLES, WILDCARD, get_role_default_permissions
from auth.errors import PersistenceError
from auth.models import Role, User
from core.config import get_settings

logger = logging.getLogger("wendessen.auth")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_roles = Table(
    "roles",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(100), nullable=False, unique=True),
    Column("display_name", String(255), nullable=False),
    Column("description", Text),
)

_users = Table(
    "admin_users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", String(255), nullable=False, unique=True),
    Column("password_hash", Text, nullable=False),
    Column("must_change_password", Boolean, nullable=False, server_default="0"),
    Column("role_id", Integer, ForeignKey("roles.id")),
    Column("custom_permissions", Text, nullable=False, server_default="[]"),  # JSON array
    Column("verein_id", String(100)),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    Column("last_login", String(32)),
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers are not blocked by writes.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def normalize_permissions(permissions: Iterable[str] | None) -> list[str]:
    """Trim, drop blanks, dedupe (order preserved), and collapse to ["*"] if the wildcard is present."""
    seen: list[str] = []
    for perm in permissions or []:
        if not isinstance(perm, str):
            continue
        cleaned = perm.strip()
        if cleaned and cleaned not in seen:
            seen.append(cleaned)
    if WILDCARD in seen:
        return [WILDCARD]
    return seen


def generate_initial_password() -> str:
    """Return a random 6-digit one-time password for provisioning and resets.

    The account is always flagged must_change_password, so this only has to
    survive until the first login.
    """
    return str(100000 + secrets.randbelow(900000))


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for admin users and the seeded roles table.

    Usage:
        store = UserStore()
        uid = store.create_user(User(username="admin", password_hash=hash_password("secret")))
        user = store.find_user_by_username("admin")
        store.close()
    """

    def __init__(self, db_url: str | None = None) -> None:
        db_url = db_url or get_settings().database_url
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)
        self.ensure_roles()

    def ensure_roles(self) -> int:
        """Insert catalog roles that are missing from the roles table. Returns the number inserted."""
        inserted = 0
        with self.engine.connect() as conn:
            existing = {row.name for row in conn.execute(select(_roles.c.name))}
            for role in ROLES:
                if role.name in existing:
                    continue
                conn.execute(
                    _roles.insert().values(
                        name=role.name,
                        display_name=role.display_name,
                        description=role.description,
                    )
                )
                inserted += 1
            conn.commit()
        if inserted:
            logger.info("Seeded %d role(s)", inserted)
        return inserted

    # ------------------------------------------------------------------
    # Role queries
    # ------------------------------------------------------------------

    def list_roles(self) -> list[Role]:
        """Return all roles ordered by name, with catalog default permissions attached."""
        with self.engine.connect() as conn:
            rows = conn.execute(_roles.select().order_by(_roles.c.name)).fetchall()
        return [_row_to_role(r) for r in rows]

    def get_role_by_id(self, role_id: int) -> Role | None:
        with self.engine.connect() as conn:
            row = conn.execute(_roles.select().where(_roles.c.id == role_id)).fetchone()
        return _row_to_role(row) if row is not None else None

    def get_role_by_name(self, name: str) -> Role | None:
        with self.engine.connect() as conn:
            row = conn.execute(_roles.select().where(_roles.c.name == name)).fetchone()
        return _row_to_role(row) if row is not None else None

    # ------------------------------------------------------------------
    # User queries
    # ------------------------------------------------------------------

    def _user_select(self):
        return select(
            _users,
            _roles.c.name.label("role_name"),
            _roles.c.display_name.label("role_display_name"),
        ).select_from(_users.outerjoin(_roles, _users.c.role_id == _roles.c.id))

    def has_users(self) -> bool:
        """Return True if at least one admin user exists. Used by first-run bootstrap."""
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(_users)).scalar()
        return (result or 0) > 0

    def find_user_by_username(self, username: str) -> User | None:
        """Look up a user by exact username (case-sensitive). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(self._user_select().where(_users.c.username == username)).fetchone()
        return _row_to_user(row) if row is not None else None

    def find_user_by_id(self, user_id: int) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(self._user_select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def list_users(self) -> list[User]:
        """Return all users, newest first."""
        with self.engine.connect() as conn:
            rows = conn.execute(self._user_select().order_by(_users.c.created_at.desc(), _users.c.id.desc())).fetchall()
        return [_row_to_user(r) for r in rows]

    def create_user(self, user: User) -> int:
        """Insert a new user and return its assigned database ID.

        Raises sqlalchemy.exc.IntegrityError if the username already exists.
        Callers that pre-check for duplicates should still catch it: two
        concurrent requests can both pass the pre-check.
        """
        now = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.insert().values(
                    username=user.username,
                    password_hash=user.password_hash,
                    must_change_password=user.must_change_password,
                    role_id=user.role_id,
                    custom_permissions=json.dumps(normalize_permissions(user.custom_permissions)),
                    verein_id=user.verein_id,
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def update_password_hash(self, user_id: int, password_hash: str, must_change_password: bool = False) -> bool:
        """Store a new password hash and set the must-change flag.

        A user changing their own password passes must_change_password=False;
        an admin reset passes True so the holder of the one-time password is
        forced through the change flow.

        Returns True if a row was updated, False if user_id was not found.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.update()
                .where(_users.c.id == user_id)
                .values(
                    password_hash=password_hash,
                    must_change_password=must_change_password,
                    updated_at=_now_iso(),
                )
            )
            conn.commit()
        return result.rowcount > 0

    def update_role_and_permissions(
        self,
        user_id: int,
        role_id: int | None,
        permissions: Iterable[str] | None = None,
        verein_id: str | None = None,
        *,
        update_verein: bool = False,
    ) -> User | None:
        """Replace a user's role and, when given, their custom permissions.

        permissions=None leaves the stored overrides untouched. verein_id is
        only written when update_verein=True, so None can mean "clear it".

        Returns the refreshed User, or None if user_id was not found.
        """
        values: dict = {"role_id": role_id, "updated_at": _now_iso()}
        if permissions is not None:
            values["custom_permissions"] = json.dumps(normalize_permissions(permissions))
        if update_verein:
            values["verein_id"] = verein_id
        with self.engine.connect() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id).values(**values))
            conn.commit()
        if result.rowcount == 0:
            return None
        return self.find_user_by_id(user_id)

    def update_last_login(self, user_id: int) -> None:
        """Stamp the current UTC timestamp as last_login after a successful login."""
        with self.engine.connect() as conn:
            conn.execute(_users.update().where(_users.c.id == user_id).values(last_login=_now_iso()))
            conn.commit()

    # ------------------------------------------------------------------
    # Bootstrap
    # ------------------------------------------------------------------

    def ensure_admin(self, hash_password) -> str | None:
        """Create the first admin account when the users table is empty.

        The account is "admin" with the super_admin role, custom permissions
        ["*"], and must_change_password set. Returns the generated plaintext
        password (shown once by the caller), or None if users already exist.

        hash_password is injected so this module stays free of bcrypt.
        """
        if self.has_users():
            return None
        password = secrets.token_urlsafe(12)
        role = self.get_role_by_name("super_admin")
        try:
            self.create_user(
                User(
                    username="admin",
                    password_hash=hash_password(password),
                    role_id=role.id if role else None,
                    custom_permissions=[WILDCARD],
                    must_change_password=True,
                )
            )
        except SQLAlchemyError as exc:
            raise PersistenceError("Could not create the initial admin account.") from exc
        logger.warning("Default admin account created (username=admin); password change required on first login")
        return password

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _load_permissions(raw) -> list[str]:
    if not raw:
        return []
    try:
        value = json.loads(raw)
    except (TypeError, ValueError):
        logger.warning("Ignoring unreadable custom_permissions value")
        return []
    if not isinstance(value, list):
        return []
    return normalize_permissions(value)


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        username=row.username,
        password_hash=row.password_hash,
        role_id=row.role_id,
        role_name=row.role_name,
        role_display_name=row.role_display_name,
        custom_permissions=_load_permissions(row.custom_permissions),
        verein_id=row.verein_id,
        must_change_password=bool(row.must_change_password),
        created_at=row.created_at,
        updated_at=row.updated_at,
        last_login=row.last_login,
    )


def _row_to_role(row) -> Role:
    return Role(
        id=row.id,
        name=row.name,
        display_name=row.display_name,
        description=row.description or "",
        default_permissions=get_role_default_permissions(row.name),
    )
