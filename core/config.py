"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for phonegate happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. This is
      the official FastAPI dependency injection pattern for config.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. session_ttl_days -> SESSION_TTL_DAYS). Type coercion and
      validation are built in.

The auth core consumes these values; it never reads the environment itself.
Components are built from a Settings instance so tests can pass their own.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
from functools import lru_cache
from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("phonegate.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'phonegate_auth.db'}"


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
    log_level: str = "INFO"
    database_url: str = _DEFAULT_DB_URL

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    session_ttl_days: int = Field(default=14, ge=1)
    session_cookie_name: str = "sid"
    secure_cookies: bool = False

    # ------------------------------------------------------------------
    # Password hashing (argon2id)
    # ------------------------------------------------------------------

    argon2_memory_mb: int = Field(default=64, ge=1)
    argon2_iterations: int = Field(default=2, ge=1)
    argon2_parallelism: int = Field(default=1, ge=1)

    # ------------------------------------------------------------------
    # Abuse control
    # ------------------------------------------------------------------

    login_per_ip_per_minute: int = Field(default=10, ge=1)
    login_per_phone_per_minute: int = Field(default=5, ge=1)
    signup_per_ip_per_minute: int = Field(default=3, ge=1)
    rate_limit_window_seconds: int = Field(default=60, ge=1)

    lockout_threshold: int = Field(default=6, ge=1)
    # Accepted for deployment-config compatibility; failures are not aged out.
    lockout_window_minutes: int = Field(default=10, ge=1)
    lockout_duration_minutes: int = Field(default=15, ge=1)

    # Peers allowed to set X-Forwarded-For. Empty means the header is ignored.
    trusted_proxy_ips: list[str] = Field(default_factory=list)

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    cors_origins: list[str] = Field(default_factory=lambda: ["http://localhost:3000"])

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------

    @property
    def session_ttl_seconds(self) -> int:
        return self.session_ttl_days * 24 * 60 * 60

    @property
    def argon2_memory_kib(self) -> int:
        return self.argon2_memory_mb * 1024

    @property
    def lockout_duration_seconds(self) -> int:
        return self.lockout_duration_minutes * 60

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def warn_insecure_cookies(self) -> "Settings":
        """Warn when session cookies would travel over plain HTTP in production.

        Not a hard failure: deployments behind a TLS-terminating proxy on
        localhost legitimately run without the Secure flag.
        """
        if not self.debug and not self.secure_cookies:
            logger.warning("SECURE_COOKIES is off outside DEBUG mode. Session cookies will be sent over HTTP.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
