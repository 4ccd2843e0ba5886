"""
auth/errors.py -- Typed failures raised by the authentication core.

The core never builds transport responses. It raises one of these and the
route boundary (api/main.py exception handlers) maps it to an HTTP response.
status_code is carried on the class so the mapping stays a table lookup.

Malformed and expired sessions are NOT errors. They resolve to "no session"
and only surface as Unauthorized when a gate requires a caller.

Layer rule: no imports from api/ or audit/.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for every failure the auth core reports to its caller."""

    status_code: int = 400
    default_code: str = "auth_error"

    def __init__(self, message: str, code: str | None = None) -> None:
        self.message = message
        self.code = code or self.default_code
        super().__init__(message)

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"


class Unauthorized(AuthError):
    """No valid session. The UI routes this to the login prompt."""

    status_code = 401
    default_code = "unauthorized"

    def __init__(self, message: str = "Authentication required.") -> None:
        super().__init__(message)


class Forbidden(AuthError):
    """Valid session, but the caller lacks the required permission."""

    status_code = 403
    default_code = "forbidden"

    def __init__(self, permission: str) -> None:
        self.permission = permission
        super().__init__(f"Missing permission '{permission}'.")


class PasswordChangeRequired(AuthError):
    """The session still carries the must-change-password flag.

    Deflected to the change-password flow rather than denied.
    """

    status_code = 303
    default_code = "password_change_required"
    redirect_to = "/admin/change-password"

    def __init__(self) -> None:
        super().__init__("Password change required before continuing.")


class WeakPassword(AuthError):
    """The new password failed the strength policy. Raised before any write."""

    status_code = 400
    default_code = "weak_password"


class UserNotFound(AuthError):
    status_code = 404
    default_code = "not_found"

    def __init__(self, message: str = "User not found.") -> None:
        super().__init__(message)


class PersistenceError(AuthError):
    """The credential store rejected or failed a write.

    The message is deliberately generic; the underlying cause is chained
    (raise ... from exc) and logged, never returned to the client.
    """

    status_code = 500
    default_code = "internal_error"

    def __init__(self, message: str = "The operation could not be completed.") -> None:
        super().__init__(message)


class UnknownPermission(AuthError):
    """A permission key that is not in the static catalog.

    Raised when a gate is built, so typos fail at import/boot time instead of
    silently denying every request.
    """

    status_code = 500
    default_code = "unknown_permission"

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f"Unknown permission key '{key}'.")
