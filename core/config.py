"""
core/config.py -- Jesusgram settings, read from the environment and .env.

Every environment lookup goes through get_settings(); other modules never
touch os.environ.

Settings is a pydantic-settings BaseSettings, so DATABASE_URL fills
database_url, POST_MAX_LENGTH fills post_max_length, and so on, with type
coercion on the way in. get_settings() builds it once and caches it with
lru_cache.

validate_guest() runs after every field is resolved. The GUEST_* trio is
all-or-nothing, and the guest password has to pass the same rule
registration applies.

Layer rule: core/ is the kernel. This module may not import from api/, auth/,
or social/.
"""

import logging
import re
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("jesusgram.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'jesusgram.db'}"

# Kept in sync with social/services.py. Duplicated rather than imported to
# honour the core/ layer rule.
_GUEST_PASSWORD_RE = re.compile(r"^(?=.*\d)(?=.*[a-z])(?=.*[A-Z]).{8,30}$")


class Settings(BaseSettings):
    """Jesusgram runtime settings. Every field has a default, so Settings()
    works with no .env present."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    # SQLAlchemy URL. SQLite by default; any SQLAlchemy dialect with JSON
    # support works (PostgreSQL, MySQL).
    database_url: str = _DEFAULT_DB_URL

    # ------------------------------------------------------------------
    # Posts
    # ------------------------------------------------------------------

    post_max_length: int = 280

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    secure_cookies: bool = False
    cookie_max_age: int = 7 * 24 * 3600
    login_rate_limit: str = "10/minute"

    # ------------------------------------------------------------------
    # Guest account (optional -- empty strings mean no guest is seeded)
    # ------------------------------------------------------------------

    guest_user_id: str = ""
    guest_user_name: str = ""
    guest_password: str = ""

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost", "testserver"]
    cors_origins: list[str] = ["http://localhost", "http://localhost:8888", "http://127.0.0.1"]

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_guest(self) -> "Settings":
        """Refuse a half-configured or weak guest account at startup.

        Either none or all of GUEST_USER_ID, GUEST_USER_NAME, GUEST_PASSWORD
        are set. A guest password that registration would reject is a
        configuration error, not something to discover on first login.
        """
        values = (self.guest_user_id, self.guest_user_name, self.guest_password)
        if any(values) and not all(values):
            raise ValueError("GUEST_USER_ID, GUEST_USER_NAME and GUEST_PASSWORD must be set together.")
        if self.guest_password and not _GUEST_PASSWORD_RE.match(self.guest_password):
            raise ValueError(
                "GUEST_PASSWORD must be 8-30 characters with at least one digit, "
                "one lowercase and one uppercase letter."
            )
        if self.post_max_length < 1:
            raise ValueError("POST_MAX_LENGTH must be a positive integer.")
        if self.debug:
            logger.warning("DEBUG is enabled. Do not run this configuration in production.")
        return self

    @property
    def guest_enabled(self) -> bool:
        return bool(self.guest_user_id)


@lru_cache
def get_settings() -> Settings:
    """Return the cached Settings instance.

    Tests that change environment variables call get_settings.cache_clear().
    """
    return Settings()
