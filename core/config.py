"""
core/config.py -- Centralized configuration via pydantic-settings.

All environment variable reads for nimble-tokens happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. session_validity_days -> SESSION_VALIDITY_DAYS).

  @model_validator(mode="after"): Cross-field validation after all fields are
      resolved. Every validity window must be a positive number of days, so a
      misconfigured deployment fails at startup rather than issuing tokens that
      are expired on arrival.

Layer rule: core/ is the kernel. This module may not import from auth/.
"""

import logging
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("nimble.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).parent.parent / 'nimble_tokens.db'}"


class Settings(BaseSettings):
    """Settings loaded from environment variables and .env file.

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
    database_url: str = _DEFAULT_DB_URL

    # ------------------------------------------------------------------
    # Validity windows (days) per token context
    # ------------------------------------------------------------------

    session_validity_days: int = 60
    confirm_validity_days: int = 7
    reset_password_validity_days: int = 1
    change_email_validity_days: int = 7

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_windows(self) -> "Settings":
        """Reject zero or negative validity windows."""
        for name in (
            "session_validity_days",
            "confirm_validity_days",
            "reset_password_validity_days",
            "change_email_validity_days",
        ):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name.upper()} must be a positive number of days.")
        if self.reset_password_validity_days > self.session_validity_days:
            logger.warning("RESET_PASSWORD_VALIDITY_DAYS exceeds SESSION_VALIDITY_DAYS.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
