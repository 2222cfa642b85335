"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for SupaGate happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  Explicit hand-off: the lifespan stores the Settings instance on
      app.state.settings and request code reads it from there. The role
      resolver receives the fail-safe email as an argument and never reads
      configuration on its own.

  @model_validator(mode="after"): cross-field validation once all fields are
      resolved. Dev mode (DEBUG=true) tolerates missing secrets; production
      mode refuses to start without them.

Layer rule: core/ is the kernel. This module may not import from api/,
auth/, or uploads/.
"""

import logging
import secrets
from functools import lru_cache
from typing import Annotated, Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

logger = logging.getLogger("supagate.config")

# Comma-separated env values ("github,google") are split by the validators
# below. NoDecode stops pydantic-settings from trying to parse them as JSON.
_CommaList = Annotated[list[str], NoDecode]


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
    environment: str = "development"
    port: int = 3000
    # Signs the session cookie that carries the OAuth PKCE verifier.
    secret_key: str = ""

    # ------------------------------------------------------------------
    # Hosted platform
    # ------------------------------------------------------------------

    supabase_url: str = ""
    supabase_anon_key: str = ""
    supabase_service_role_key: str = ""

    # ------------------------------------------------------------------
    # Roles
    # ------------------------------------------------------------------

    # Empty string means "no fail-safe admin".
    super_admin_email: str = ""

    # ------------------------------------------------------------------
    # Profiles
    # ------------------------------------------------------------------

    profile_backend: Literal["supabase", "sql"] = "supabase"
    database_url: str = ""

    # ------------------------------------------------------------------
    # OAuth
    # ------------------------------------------------------------------

    default_redirect_url: str = "http://localhost:3000/"
    oauth_providers: _CommaList = ["google", "github"]

    # ------------------------------------------------------------------
    # Uploads
    # ------------------------------------------------------------------

    upload_buckets: _CommaList = ["documents"]

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    register_rate_limit: str = "5/minute"
    cors_origins: _CommaList = ["http://localhost:3000"]
    allowed_hosts: _CommaList = ["localhost", "127.0.0.1", "*.localhost"]
    secure_cookies: bool = False

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @field_validator("oauth_providers", "upload_buckets", "cors_origins", "allowed_hosts", mode="before")
    @classmethod
    def split_comma_list(cls, value):
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value

    @field_validator("super_admin_email", mode="after")
    @classmethod
    def strip_admin_email(cls, value: str) -> str:
        # Whitespace only; the comparison itself stays case-sensitive.
        return value.strip()

    @model_validator(mode="after")
    def validate_secrets(self) -> "Settings":
        """Enforce the startup policy for secrets.

        Dev mode (DEBUG=true): auto-generate SECRET_KEY with a warning and
            allow the platform credentials to be empty (tests never touch
            the real platform).

        Production mode: SECRET_KEY and all three platform values are
            required. SECRET_KEY shorter than 32 characters is always rejected.
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning("Using auto-generated SECRET_KEY. OAuth sessions will not survive a restart.")
            else:
                raise ValueError(
                    "SECRET_KEY is required in production mode. "
                    "Set SECRET_KEY in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")

        if not self.debug:
            missing = [
                name
                for name in ("supabase_url", "supabase_anon_key", "supabase_service_role_key")
                if not getattr(self, name)
            ]
            if missing:
                raise ValueError(f"Missing required platform settings: {', '.join(n.upper() for n in missing)}")

        if self.profile_backend == "sql" and not self.database_url:
            raise ValueError("DATABASE_URL is required when PROFILE_BACKEND=sql.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
