"""
auth/credentials.py -- Password hashing, verification, and strength policy.

Security design decisions:
  Passwords: bcrypt used directly (no passlib wrapper). The cost factor comes
       from Settings.bcrypt_rounds (default 10) so login latency stays
       predictable. The login endpoint is unauthenticated, which makes this
       the one attacker-triggerable CPU cost in the subsystem; api/ puts a
       slowapi rate limit in front of it.

  Timing equalization: _DUMMY_HASH is computed once at module load.
       verify_credentials() always runs bcrypt, against the dummy hash when
       the username does not exist, so response time does not reveal which
       usernames are valid.

  Strength policy: validate_password_strength() is pure. It reads the policy
       from Settings and returns a PasswordCheck; it never raises and never
       touches the store.

Layer rule: no imports from api/ or audit/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

import bcrypt

from auth.models import PasswordCheck
from core.config import get_settings

if TYPE_CHECKING:
    from auth.models import User
    from auth.store import UserStore

logger = logging.getLogger("wendessen.auth")

# bcrypt only looks at the first 72 bytes; longer inputs are rejected by the
# strength check rather than silently truncated.
_MAX_PASSWORD_BYTES = 72

_LETTER_RE = re.compile(r"[^\W\d_]")
_DIGIT_RE = re.compile(r"\d")


# ---------------------------------------------------------------------------
# Hashing
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password."""
    rounds = get_settings().bcrypt_rounds
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    A malformed stored hash or an over-long input (bcrypt 4.x raises on
    >72 bytes) is a non-match, not an error.
    """
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


_DUMMY_HASH: str = hash_password("wendessen_timing_dummy")


def verify_credentials(store: UserStore, username: str, password: str) -> User | None:
    """Check a username/password pair with timing equalization.

    Username lookup is exact and case-sensitive. Returns the User on success
    and None on any failure, without saying which part was wrong.
    """
    user = store.find_user_by_username(username)
    if user is None or not user.password_hash:
        # Equalize timing -- do NOT return early before running bcrypt.
        verify_password(password, _DUMMY_HASH)
        return None
    if not verify_password(password, user.password_hash):
        return None
    return user


# ---------------------------------------------------------------------------
# Strength policy
# ---------------------------------------------------------------------------


def validate_password_strength(password: str) -> PasswordCheck:
    """Apply the configured password policy.

    Rules, checked in order (first failure wins):
      1. at least PASSWORD_MIN_LENGTH characters
      2. at most 72 bytes UTF-8 (bcrypt limit)
      3. if PASSWORD_REQUIRE_MIXED: at least one letter and one digit
    """
    settings = get_settings()
    if not isinstance(password, str) or len(password) < settings.password_min_length:
        return PasswordCheck(
            valid=False,
            message=f"Password must be at least {settings.password_min_length} characters long.",
        )
    if len(password.encode("utf-8")) > _MAX_PASSWORD_BYTES:
        return PasswordCheck(valid=False, message=f"Password must be at most {_MAX_PASSWORD_BYTES} bytes long.")
    if settings.password_require_mixed:
        if not _LETTER_RE.search(password):
            return PasswordCheck(valid=False, message="Password must contain at least one letter.")
        if not _DIGIT_RE.search(password):
            return PasswordCheck(valid=False, message="Password must contain at least one digit.")
    return PasswordCheck(valid=True)
