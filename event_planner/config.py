"""
Application Configuration.

Pydantic Settings model for the AI Event Planner client core.
All configuration is loaded from environment variables and ``.env`` files.
Inject an ``AppConfig`` instance wherever settings are needed.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Optional

from pydantic import SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings


class AppConfig(BaseSettings):
    """Central configuration loaded from environment variables and defaults."""

    # --- Supabase ---
    SUPABASE_URL: str = ""
    SUPABASE_ANON_KEY: SecretStr = SecretStr("")
    SUPABASE_SERVICE_ROLE_KEY: SecretStr = SecretStr("")  # seed_admin.py only

    # --- Redirect targets embedded in auth emails ---
    SITE_URL: str = "http://localhost:5173"

    # --- Durable local cache ---
    LOCAL_CACHE_PATH: str = "event_planner_local.db"

    # --- Role resolution ---
    # Empty disables the designated-administrator override.
    DESIGNATED_ADMIN_EMAIL: str = ""
    ROLE_RESOLUTION_TIMEOUT_S: float = 5.0

    # --- Registration ---
    SIGNUP_MIN_INTERVAL_S: float = 1.5
    PASSWORD_MIN_LENGTH: int = 6

    # --- Logging ---
    LOG_FILE: str = "event_planner.log"
    LOG_MAX_BYTES: int = 5_242_880  # 5 MB
    LOG_BACKUP_COUNT: int = 3

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    @field_validator("DESIGNATED_ADMIN_EMAIL")
    @classmethod
    def _normalize_admin_email(cls, value: str) -> str:
        return value.strip().lower()

    @model_validator(mode="after")
    def _warn_missing_env(self) -> "AppConfig":
        """Emit startup warnings when critical configuration is empty.

        Pydantic silently falls back to defaults when ``.env`` is missing,
        so operators would otherwise not notice a half-configured client.
        """
        _log = logging.getLogger("event_planner.config")

        if not Path(".env").exists():
            _log.warning(
                "No .env file found; configuration loaded from "
                "environment variables or defaults."
            )

        if not self.SUPABASE_URL:
            _log.warning(
                "SUPABASE_URL is empty; the backend is unreachable and "
                "every session will resolve as signed out."
            )

        if self.DESIGNATED_ADMIN_EMAIL:
            _log.warning(
                "DESIGNATED_ADMIN_EMAIL is set; %s always resolves to admin. "
                "Prefer scripts/seed_admin.py for bootstrapping.",
                self.DESIGNATED_ADMIN_EMAIL,
            )

        return self

    @property
    def login_redirect_url(self) -> str:
        """Where the sign-up confirmation email sends the user."""
        return f"{self.SITE_URL.rstrip('/')}/login"

    @property
    def reset_password_redirect_url(self) -> str:
        """Where the password-reset email sends the user."""
        return f"{self.SITE_URL.rstrip('/')}/reset-password"


# ---------------------------------------------------------------------------
# Module-level singleton factory
# ---------------------------------------------------------------------------

_config_instance: Optional[AppConfig] = None
_config_lock: threading.Lock = threading.Lock()


def get_config() -> AppConfig:
    """Return a cached ``AppConfig`` singleton.

    Uses a check-lock-check pattern so the fast path never touches the
    lock.  Prefer constructor injection of ``AppConfig`` in new code;
    this factory backs the logger, which is created before wiring.
    """
    global _config_instance
    if _config_instance is None:
        with _config_lock:
            if _config_instance is None:
                _config_instance = AppConfig()
    return _config_instance
