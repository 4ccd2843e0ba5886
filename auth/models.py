"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Dataclasses own domain
shape; stores, the authenticator, and routes do the work.

Layer rule: no imports from api/ or audit/.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class User:
    """An administrative account, as read from the credential store.

    role_name / role_display_name are denormalized from the roles table at
    read time (LEFT JOIN); they are None for users without a role.

    custom_permissions holds per-user grants layered on top of the role
    defaults. It may contain the "*" wildcard or category wildcards such as
    "gallery.*".

    verein_id scopes a user to a single local club (Verein). None means the
    user is not bound to one.
    """

    username: str
    id: int | None = None
    password_hash: str | None = None
    role_id: int | None = None
    role_name: str | None = None
    role_display_name: str | None = None
    custom_permissions: list[str] = field(default_factory=list)
    verein_id: str | None = None
    must_change_password: bool = False
    created_at: str | None = None
    updated_at: str | None = None
    last_login: str | None = None


@dataclass(frozen=True)
class SessionData:
    """The claims carried by the admin-session cookie.

    timestamp is the issue time in epoch milliseconds. must_change_password
    is a snapshot taken at issue time; it only clears when a new session is
    issued.
    """

    user_id: int
    username: str
    must_change_password: bool
    timestamp: int
    role_id: int | None = None
    role_name: str | None = None
    verein_id: str | None = None


@dataclass(frozen=True)
class Permission:
    """A named capability key from the static catalog (e.g. "news.edit")."""

    name: str
    category: str
    display_name: str
    description: str = ""


@dataclass(frozen=True)
class Role:
    """A named bundle of default permission keys. Seed data."""

    name: str
    display_name: str
    description: str = ""
    default_permissions: frozenset[str] = frozenset()
    id: int | None = None


@dataclass(frozen=True)
class PasswordCheck:
    """Result of a password strength check. message is empty when valid."""

    valid: bool
    message: str = ""
