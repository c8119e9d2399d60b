"""
core/config.py -- Skillink settings, read once from the environment and .env.

Every environment variable the app understands is a field on Settings; the
rest of the code asks get_settings() rather than reading os.environ. Field
names map to upper-case variables (supabase_url -> SUPABASE_URL).

get_settings() is cached, so the first call fixes the configuration for the
process. Tests that change variables call get_settings.cache_clear().

Cross-field rules (model validators):
  SECRET_KEY     required unless DEBUG=true (then generated per process);
                 at least 32 characters. It signs local session tokens and
                 the toast session cookie.
  BACKEND        "supabase" needs SUPABASE_URL and SUPABASE_ANON_KEY.

Layer rule: core/ imports nothing from api/, web/, auth/, backend/ or
marketplace/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("skillink.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'skillink.db'}"


class Settings(BaseSettings):
    """Environment-backed settings. Every field has a default except where a validator says otherwise."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    # "" means unset; validate_secret_key fills or rejects it.
    secret_key: str = ""
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost"]
    cors_origins: list[str] = ["http://localhost", "http://localhost:3000", "http://127.0.0.1"]

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    secure_cookies: bool = False
    token_expire_seconds: int = 3600

    # ------------------------------------------------------------------
    # Backend collaborator
    # ------------------------------------------------------------------

    backend: Literal["local", "supabase"] = "local"
    database_url: str = _DEFAULT_DB_URL
    # Schema changes are applied by `python main.py migrate`. Setting this
    # lets the app apply pending migrations itself at startup (local dev).
    auto_migrate: bool = False

    supabase_url: str = ""
    supabase_anon_key: str = ""
    backend_timeout_seconds: float = 10.0

    # ------------------------------------------------------------------
    # Rate limiting / registration
    # ------------------------------------------------------------------

    login_rate_limit: str = "10/minute"
    self_registration_enabled: bool = True

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Generate a throwaway key in debug, otherwise insist on a real one."""
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning("Using auto-generated SECRET_KEY. Sessions will not persist across restarts.")
            else:
                raise ValueError(
                    "SECRET_KEY is not set. Put it in the environment or .env, "
                    "or set DEBUG=true for a throwaway development key."
                )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        return self

    @model_validator(mode="after")
    def validate_backend(self) -> "Settings":
        """A hosted backend needs both its project URL and its anon key."""
        if self.backend == "supabase" and not (self.supabase_url and self.supabase_anon_key):
            raise ValueError("BACKEND=supabase requires SUPABASE_URL and SUPABASE_ANON_KEY.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide Settings."""
    return Settings()
