"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for the admin back-office happen here. No
module should call os.getenv() or os.environ.get() directly -- import
get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. secret_key -> SECRET_KEY).

  @model_validator(mode="after"): Cross-field validation after all fields are
      resolved. Dev mode generates a SECRET_KEY with a warning, production
      mode refuses to start without one.

Security notes:
  SECRET_KEY signs the admin-session cookie. Shorter than 32 chars is
  rejected outright; a guessable key makes every session forgeable.

  BCRYPT_ROUNDS bounds the CPU cost of every login attempt. The login route
  is reachable without authentication, so this cost is attacker-triggerable.

Layer rule: core/ is the kernel. This module may not import from api/,
auth/, or audit/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("wendessen.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'wendessen_admin.db'}"


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file. The model_validator enforces
    production-safety rules at startup.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    # Empty string is the sentinel for "not configured". The model_validator
    # below either generates a dev key or raises, so callers never see "".
    secret_key: str = ""
    database_url: str = _DEFAULT_DB_URL

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    secure_cookies: bool = False
    session_max_age_seconds: int = Field(default=7 * 24 * 60 * 60, gt=0)

    # ------------------------------------------------------------------
    # Passwords
    # ------------------------------------------------------------------

    bcrypt_rounds: int = Field(default=10, ge=4, le=31)
    password_min_length: int = Field(default=8, ge=1)
    password_require_mixed: bool = True

    # ------------------------------------------------------------------
    # Authorization
    # ------------------------------------------------------------------

    # Only the soft can_perform_action() check honours this switch.
    # require_permission() always enforces.
    enable_permission_checking: bool = True

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    # JSON lists in the environment, e.g. ALLOWED_HOSTS='["admin.example.org"]'
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost"]
    cors_origins: list[str] = ["http://localhost", "http://localhost:3000", "http://127.0.0.1"]

    # ------------------------------------------------------------------
    # Rate limiting
    # ------------------------------------------------------------------

    login_rate_limit: str = "10/minute"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce the SECRET_KEY policy.

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
            Sessions will not survive restart -- acceptable for local dev.

        Production mode (DEBUG=false or not set): refuse to start if
            SECRET_KEY is missing.

        Both modes: reject keys shorter than 32 characters.
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning(
                    "WARNING: Using auto-generated SECRET_KEY. " "Sessions will not persist across restarts."
                )
            else:
                raise ValueError(
                    "SECRET_KEY is required in production mode. "
                    "Set SECRET_KEY in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
