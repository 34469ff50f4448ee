"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for authrelay happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. This is
      the official FastAPI dependency injection pattern for config.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. supabase_url -> SUPABASE_URL). Type coercion and validation are
      built in.

Backend credentials are optional at the Settings level so the app can be
built in tests with an injected backend. require_backend_credentials() is
called by the lifespan only when the real Supabase client is constructed.

Layer rule: core/ is the kernel. This module may not import from api/,
auth/, identity/, or profiles/.
"""

import logging
from functools import lru_cache
from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("authrelay.config")

VERSION = "1.0.0"


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
    # Server
    # ------------------------------------------------------------------

    host: str = "0.0.0.0"  # nosec B104 -- container default, override with HOST
    port: int = 3000
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    cors_origins: list[str] = ["*"]

    # ------------------------------------------------------------------
    # Identity backend (Supabase)
    # ------------------------------------------------------------------

    supabase_url: str = ""
    # Service-role key: token-scoped updates go through the admin API on the
    # identity the Auth Gate resolved.
    supabase_key: str = ""
    backend_timeout_seconds: float = 10.0
    sign_out_scope: Literal["global", "local", "others"] = "global"

    # ------------------------------------------------------------------
    # Profile mirror
    # ------------------------------------------------------------------

    profiles_table: str = "profiles"
    # Empty means the mirror lives in the Supabase table above. Any other
    # value is a SQLAlchemy URL, e.g. postgresql://... or sqlite:///profiles.db
    profile_store_url: str = ""

    # ------------------------------------------------------------------
    # Auth Gate
    # ------------------------------------------------------------------

    # 0 disables the cache; every protected request asks the backend.
    token_cache_ttl_seconds: int = 0

    # ------------------------------------------------------------------
    # Rate limiting
    # ------------------------------------------------------------------

    rate_limit_enabled: bool = True
    login_rate_limit: str = "10/minute"
    register_rate_limit: str = "5/minute"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @field_validator("supabase_url")
    @classmethod
    def strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @field_validator("backend_timeout_seconds")
    @classmethod
    def positive_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("BACKEND_TIMEOUT_SECONDS must be greater than zero.")
        return value

    @field_validator("token_cache_ttl_seconds")
    @classmethod
    def non_negative_ttl(cls, value: int) -> int:
        if value < 0:
            raise ValueError("TOKEN_CACHE_TTL_SECONDS must not be negative.")
        return value

    def require_backend_credentials(self) -> None:
        """Fail fast when the Supabase backend is about to be built without credentials.

        Raises:
            ValueError: If SUPABASE_URL or SUPABASE_KEY is not configured.
        """
        missing = [name for name, value in (("SUPABASE_URL", self.supabase_url), ("SUPABASE_KEY", self.supabase_key)) if not value]
        if missing:
            logger.error("Identity backend not configured: %s missing", ", ".join(missing))
            raise ValueError(
                f"{' and '.join(missing)} must be set. " "Set them in your environment or .env file."
            )


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
