"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

get_request_context() resolves the admin-session cookie into a
RequestContext exactly once per request and caches it on request.state.
Every other dependency builds on that value instead of re-reading cookies.

get_current_user() requires a session (any state, including must-change).
require_permission(key) returns a dependency that runs the full gate.

These helpers raise auth.errors types, not HTTPException. api/main.py maps
them to responses, so the core stays transport-agnostic.

Layer rule: no imports from api/ or audit/.
  auth/dependencies.py may import from fastapi (for Depends/Request)
  because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from collections.abc import Callable

from fastapi import Depends, Request

from auth import permissions as authz
from auth.authenticator import Authenticator
from auth.catalog import validate_permission_key
from auth.errors import Unauthorized
from auth.models import User
from auth.permissions import RequestContext


def get_authenticator(request: Request) -> Authenticator:
    return request.app.state.authenticator


def get_request_context(request: Request) -> RequestContext:
    """Resolve the caller for this request. Never raises for a bad or missing cookie."""
    cached = getattr(request.state, "auth_context", None)
    if cached is not None:
        return cached
    context = get_authenticator(request).resolve(request)
    request.state.auth_context = context
    return context


def get_current_user(context: RequestContext = Depends(get_request_context)) -> User:
    """Require a valid session. Raises Unauthorized otherwise.

    Sessions flagged must-change-password pass this check: /me and
    /change-password have to work before the password is changed.
    """
    if not context.is_authenticated:
        raise Unauthorized()
    return context.user


def require_permission(key: str) -> Callable[..., User]:
    """Build a dependency that gates a route on one permission key.

    The key is checked against the catalog here, at route definition time,
    so a typo fails on import rather than denying every request.

        @router.get("/users")
        async def route(user: User = Depends(require_permission("users.view"))): ...
    """
    validate_permission_key(key)

    def dependency(context: RequestContext = Depends(get_request_context)) -> User:
        return authz.require_permission(context, key)

    dependency.__name__ = f"require_{key.replace('.', '_')}"
    return dependency
