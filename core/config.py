"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for MemberDesk happen here. No module should
call os.getenv() or os.environ.get() directly. The FastAPI lifespan calls
get_settings() once and hands the resulting Settings (or the individual
values) to each service constructor -- services never reach for config
themselves.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. secret_key -> SECRET_KEY). Type coercion and validation are built in.

  @model_validator(mode="after"): dev mode generates a SECRET_KEY with a
      warning, production mode refuses to start without one.

Security notes:
  SECRET_KEY signs password-reset grants. Keys shorter than 32 chars are
  rejected outright.

Layer rule: core/ is the kernel. This module may not import from api/,
auth/, or media/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("memberdesk.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'memberdesk.db'}"


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file.
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
    cors_origins: list[str] = ["http://localhost:3000"]
    allowed_hosts: list[str] = ["*"]

    # ------------------------------------------------------------------
    # OTP / password reset
    # ------------------------------------------------------------------

    otp_ttl_seconds: int = 600
    reset_grant_ttl_seconds: int = 600
    otp_sweep_interval_seconds: int = 300

    # Wall-clock budget per request; overruns are logged by the API middleware.
    request_time_budget_seconds: float = 60.0

    # ------------------------------------------------------------------
    # Email (empty smtp_host means delivery is not configured)
    # ------------------------------------------------------------------

    smtp_host: str = ""
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    email_from: str = ""
    contact_admin_email: str = ""

    # ------------------------------------------------------------------
    # Image hosting
    # ------------------------------------------------------------------

    imgbb_api_key: str = ""

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce the SECRET_KEY policy.

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
            Outstanding reset grants will not survive a restart.

        Production mode: refuse to start if SECRET_KEY is missing.

        Both modes: reject keys shorter than 32 characters.
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning("Using auto-generated SECRET_KEY. Reset grants will not persist across restarts.")
            else:
                raise ValueError(
                    "SECRET_KEY is required in production mode. "
                    "Set SECRET_KEY in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        return self

    @property
    def smtp_configured(self) -> bool:
        return bool(self.smtp_host)


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    Only the application assembly (api/main.py) should call this. In tests,
    call get_settings.cache_clear() between cases that inject different
    environment variables, or construct Settings(...) directly.
    """
    return Settings()
