"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for the broker happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. bcrypt_rounds -> BCRYPT_ROUNDS). List fields are read as JSON
      (ALLOWED_HOSTS='["broker.example.com"]').

  @model_validator(mode="after"): Runs cross-field validation after all fields
      are resolved from environment, so a bad deployment fails at startup
      rather than on the first login.

Layer rule: core/ is the kernel. This module may not import from api/, web/,
or auth/.
"""

import logging
from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("broker.config")

# bcrypt.gensalt() accepts 4..31; anything outside raises deep inside a request.
_MIN_BCRYPT_ROUNDS = 4
_MAX_BCRYPT_ROUNDS = 31

# Names logging.basicConfig(level=...) accepts.
_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG", "NOTSET"}


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file. Tests pass overrides as keyword
    arguments (Settings(bcrypt_rounds=4)) to keep hashing cheap.
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

    # ------------------------------------------------------------------
    # Sessions and credentials
    # ------------------------------------------------------------------

    # App context recorded on sessions when the login/register query has no ?app=
    default_app: str = "broker"
    session_ttl_days: int = 7
    bcrypt_rounds: int = 10
    secure_cookies: bool = False

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost"]
    cors_origins: list[str] = ["http://localhost", "http://127.0.0.1"]

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_ranges(self) -> "Settings":
        """Reject values that would only fail later, inside a request.

        bcrypt_rounds outside 4..31 makes bcrypt.gensalt() raise on the first
        registration. A non-positive TTL would issue sessions that are already
        expired, so every validation call would answer 401. An unknown
        LOG_LEVEL makes logging.basicConfig() raise while api.main imports.
        """
        self.log_level = self.log_level.strip().upper()
        if self.log_level not in _LOG_LEVELS:
            raise ValueError(
                f"LOG_LEVEL must be one of {', '.join(sorted(_LOG_LEVELS))}, got {self.log_level!r}."
            )
        if not _MIN_BCRYPT_ROUNDS <= self.bcrypt_rounds <= _MAX_BCRYPT_ROUNDS:
            raise ValueError(
                f"BCRYPT_ROUNDS must be between {_MIN_BCRYPT_ROUNDS} and {_MAX_BCRYPT_ROUNDS}, "
                f"got {self.bcrypt_rounds}."
            )
        if self.session_ttl_days < 1:
            raise ValueError("SESSION_TTL_DAYS must be at least 1.")
        if not self.default_app.strip():
            raise ValueError("DEFAULT_APP must not be empty.")
        if self.debug and self.bcrypt_rounds < 10:
            logger.warning("Using a low bcrypt cost factor (%d). Do not run this in production.", self.bcrypt_rounds)
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    Uses lru_cache so Settings() is instantiated exactly once -- at first call.
    All modules should call get_settings() rather than constructing Settings() directly.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
