"""
auth/session.py -- Session codec and admin-session cookie helpers.

Security design decisions:
  Codec: python-jose with HS256. The session claims are serialized as a JSON
       object, base64url encoded, and signed with SECRET_KEY (compact JWS).
       A client can read its own claims but cannot change them: any edit
       breaks the signature and decode() returns None.

  No "exp" claim: expiry is a property of the issued-at timestamp and the
       configured max age, checked by is_expired(). Keeping it out of the
       token means decode(encode(s)) == s for every session, old or new.

  decode() never raises. Malformed, truncated, unsigned, wrongly signed, or
       structurally invalid tokens all come back as None, which the
       authenticator treats exactly like a missing cookie.

Claim names match the cookie format of the existing deployment:
  {userId, username, mustChangePassword, roleId?, roleName?, vereinId?, timestamp}

Layer rule: no imports from api/ or audit/. Import from core/ is allowed.
"""

from __future__ import annotations

import time
from typing import Any

from jose import JWTError, jwt

from auth.models import SessionData
from core.config import get_settings

SESSION_COOKIE_NAME = "admin-session"

_ALGORITHM = "HS256"


def now_ms() -> int:
    return int(time.time() * 1000)


# ---------------------------------------------------------------------------
# Encode / decode
# ---------------------------------------------------------------------------


def encode(session: SessionData) -> str:
    """Serialize and sign a session. Optional fields are omitted when None."""
    claims: dict[str, Any] = {
        "userId": session.user_id,
        "username": session.username,
        "mustChangePassword": session.must_change_password,
        "timestamp": session.timestamp,
    }
    if session.role_id is not None:
        claims["roleId"] = session.role_id
    if session.role_name is not None:
        claims["roleName"] = session.role_name
    if session.verein_id is not None:
        claims["vereinId"] = session.verein_id
    return jwt.encode(claims, get_settings().secret_key, algorithm=_ALGORITHM)


def decode(token: str | bytes | None) -> SessionData | None:
    """Verify and deserialize a session token. Returns None on any failure."""
    if not token:
        return None
    if isinstance(token, bytes):
        try:
            token = token.decode("ascii")
        except UnicodeDecodeError:
            return None
    if not isinstance(token, str):
        return None
    try:
        claims = jwt.decode(token, get_settings().secret_key, algorithms=[_ALGORITHM])
    except (JWTError, ValueError, TypeError):
        return None
    return _claims_to_session(claims)


def _is_int(value: Any) -> bool:
    # bool is a subclass of int; a JSON true must not pass as a user id.
    return isinstance(value, int) and not isinstance(value, bool)


def _claims_to_session(claims: Any) -> SessionData | None:
    if not isinstance(claims, dict):
        return None
    user_id = claims.get("userId")
    username = claims.get("username")
    must_change = claims.get("mustChangePassword")
    timestamp = claims.get("timestamp")
    role_id = claims.get("roleId")
    role_name = claims.get("roleName")
    verein_id = claims.get("vereinId")

    if not _is_int(user_id) or not _is_int(timestamp):
        return None
    if not isinstance(username, str) or not username:
        return None
    if not isinstance(must_change, bool):
        return None
    if role_id is not None and not _is_int(role_id):
        return None
    if role_name is not None and not isinstance(role_name, str):
        return None
    if verein_id is not None and not isinstance(verein_id, str):
        return None

    return SessionData(
        user_id=user_id,
        username=username,
        must_change_password=must_change,
        timestamp=timestamp,
        role_id=role_id,
        role_name=role_name,
        verein_id=verein_id,
    )


def is_expired(session: SessionData, now: int | None = None) -> bool:
    """Return True once the session is at least SESSION_MAX_AGE_SECONDS old.

    A timestamp in the future is treated as expired too; it can only come
    from a clock problem on the issuing side.
    """
    current = now if now is not None else now_ms()
    age_ms = current - session.timestamp
    return age_ms < 0 or age_ms >= get_settings().session_max_age_seconds * 1000


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_session_cookie(response, token: str) -> None:
    """Write the session token as the admin-session cookie.

    httponly=True: JS cannot read the cookie (XSS mitigation).
    samesite="lax": not sent on cross-site POST (CSRF mitigation).
    secure: only sent over HTTPS when SECURE_COOKIES=true (set in production).
    max_age: matches the session validity window so both expire together.
    """
    settings = get_settings()
    response.set_cookie(
        SESSION_COOKIE_NAME,
        value=token,
        httponly=True,
        samesite="lax",
        secure=settings.secure_cookies,
        max_age=settings.session_max_age_seconds,
        path="/",
    )


def clear_session_cookie(response) -> None:
    response.delete_cookie(SESSION_COOKIE_NAME, path="/")
