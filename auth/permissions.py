"""
auth/permissions.py -- Authorization decisions.

A user's effective permissions are the union of their role's default set
(auth.catalog) and their custom overrides (User.custom_permissions).
has_permission() answers a single (user, key) question; require_permission()
is the gate every privileged operation calls before it reads or writes
anything.

The gate reads the caller from an explicit RequestContext, built once per
request by auth.dependencies. It never inspects cookies itself.

require_permission() raises typed failures (auth.errors). with_permission()
is the non-raising variant: it returns an AuthErrorResult instead, for call
sites that want a value rather than an exception.

Layer rule: no imports from api/ or audit/.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import TypeVar

from auth.catalog import PERMISSION_KEYS, WILDCARD, get_role_default_permissions, validate_permission_key
from auth.errors import AuthError, Forbidden, PasswordChangeRequired, Unauthorized
from auth.models import SessionData, User
from core.config import get_settings

logger = logging.getLogger("wendessen.auth")

T = TypeVar("T")


@dataclass(frozen=True)
class RequestContext:
    """The resolved caller for one request.

    session is the decoded, unexpired cookie (or None). user is the live
    record re-fetched from the store (or None if the session is invalid or
    the account no longer exists). Both are None for anonymous requests.
    """

    session: SessionData | None = None
    user: User | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.session is not None and self.user is not None

    @property
    def must_change_password(self) -> bool:
        return self.session is not None and self.session.must_change_password


@dataclass(frozen=True)
class AuthErrorResult:
    """Structured denial returned by with_permission() instead of raising."""

    status_code: int
    code: str
    message: str

    @classmethod
    def from_error(cls, exc: AuthError) -> "AuthErrorResult":
        return cls(status_code=exc.status_code, code=exc.code, message=exc.message)


# ---------------------------------------------------------------------------
# Pure checks
# ---------------------------------------------------------------------------


def _grant_matches(grant: str, key: str) -> bool:
    if grant == WILDCARD or grant == key:
        return True
    return grant.endswith(".*") and key.startswith(grant[:-1])


def _grants_key(grants: Iterable[str], key: str) -> bool:
    return any(_grant_matches(g, key) for g in grants)


def has_permission(user: User | None, key: str) -> bool:
    """Decide whether user holds key.

    Order: no user -> deny; "*" in custom -> allow; key (or a covering
    "resource.*") in custom -> allow; key (or a covering "resource.*") in the
    role defaults -> allow; otherwise deny.
    """
    if user is None:
        return False
    custom = user.custom_permissions or []
    if WILDCARD in custom:
        return True
    if _grants_key(custom, key):
        return True
    return _grants_key(get_role_default_permissions(user.role_name), key)


def has_any_permission(user: User | None, keys: Iterable[str]) -> bool:
    return any(has_permission(user, k) for k in keys)


def has_all_permissions(user: User | None, keys: Iterable[str]) -> bool:
    return all(has_permission(user, k) for k in keys)


def get_effective_permissions(user: User | None) -> list[str]:
    """Role defaults merged with custom overrides, sorted, deduplicated."""
    if user is None:
        return []
    merged = set(get_role_default_permissions(user.role_name)) | set(user.custom_permissions or [])
    if WILDCARD in merged:
        return [WILDCARD]
    return sorted(merged)


def get_extra_permissions(user: User | None) -> list[str]:
    """Custom overrides that the role does not already grant. ["*"] if the wildcard is held."""
    if user is None:
        return []
    custom = user.custom_permissions or []
    if WILDCARD in custom:
        return [WILDCARD]
    defaults = get_role_default_permissions(user.role_name)
    return [p for p in custom if p not in defaults]


def can_grant(granter: User | None, grant: str) -> bool:
    """Return True if granter may hand grant to another account.

    Nobody can give away more than they hold: "*" needs "*", a prefix
    wildcard needs every catalog key under it, and a single key needs that
    key.
    """
    if granter is None:
        return False
    if grant == WILDCARD:
        return WILDCARD in (granter.custom_permissions or []) or WILDCARD in get_role_default_permissions(
            granter.role_name
        )
    if grant.endswith(".*"):
        covered = [k for k in PERMISSION_KEYS if k.startswith(grant[:-1])]
        return bool(covered) and has_all_permissions(granter, covered)
    return has_permission(granter, grant)


# ---------------------------------------------------------------------------
# Gates
# ---------------------------------------------------------------------------


def _resolve_caller(context: RequestContext) -> User:
    if not context.is_authenticated:
        raise Unauthorized()
    if context.must_change_password:
        raise PasswordChangeRequired()
    return context.user


def require_permission(context: RequestContext, key: str) -> User:
    """Return the caller if they hold key, else raise.

    Raises:
        UnknownPermission: key is not in the catalog (a programming error).
        Unauthorized: no valid session, or the account no longer exists.
        PasswordChangeRequired: the session still carries the must-change flag.
        Forbidden: authenticated, but key is not granted.
    """
    validate_permission_key(key)
    user = _resolve_caller(context)
    if not has_permission(user, key):
        logger.warning("Permission denied: user=%s (id=%s) missing '%s'", user.username, user.id, key)
        raise Forbidden(key)
    return user


def require_any_permission(context: RequestContext, keys: Iterable[str]) -> User:
    keys = [validate_permission_key(k) for k in keys]
    user = _resolve_caller(context)
    if not has_any_permission(user, keys):
        logger.warning("Permission denied: user=%s (id=%s) missing any of %s", user.username, user.id, keys)
        raise Forbidden(" | ".join(keys))
    return user


def with_permission(context: RequestContext, key: str, action: Callable[[User], T]) -> T | AuthErrorResult:
    """Run action(user) only if the gate passes.

    Denials come back as an AuthErrorResult rather than an exception.
    Exceptions raised by action itself propagate unchanged.
    """
    try:
        user = require_permission(context, key)
    except (Unauthorized, PasswordChangeRequired, Forbidden) as exc:
        return AuthErrorResult.from_error(exc)
    return action(user)


def can_perform_action(context: RequestContext, key: str) -> bool:
    """Soft check for UI decisions (show/hide a button). Never raises for a denial.

    Honours ENABLE_PERMISSION_CHECKING=false. The hard gates above do not.
    """
    if not get_settings().enable_permission_checking:
        return True
    if context.must_change_password:
        return False
    return has_permission(context.user, key)
