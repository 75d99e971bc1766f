"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for the auth provider happen here. No module
should call os.getenv() or os.environ.get() directly -- import get_settings()
instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): field names map to env var names
      (e.g. access_jwt_key -> ACCESS_JWT_KEY). Type coercion is built in.

  @model_validator(mode="after"): cross-field validation of every token
      family. Dev mode generates missing signing keys with a warning,
      production mode refuses to start without them.

Token families:
  Each family has its own key/issuer/audience so a leaked verification key
  cannot mint access tokens and vice versa.
    access        -> access tokens (cookie "AccessToken")
    verification  -> email-verification and account-verification tokens
    reset         -> reset-password tokens
    session       -> login-session tokens

Security notes:
  [M6] Signing keys shorter than 32 chars are rejected outright.
  [M7] Outside DEBUG, a missing signing key or provider endpoint is a hard
       startup failure.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
import secrets
from functools import lru_cache
from typing import Annotated

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

logger = logging.getLogger("authprovider.config")

TOKEN_FAMILIES = ("access", "verification", "reset", "session")

_MIN_KEY_LENGTH = 32


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
    environment: str = "production"
    database_url: str = "sqlite:///authprovider.db"

    # ------------------------------------------------------------------
    # Token families (empty key = "not configured", see validator)
    # ------------------------------------------------------------------

    access_jwt_key: str = ""
    access_jwt_issuer: str = "authprovider"
    access_jwt_audience: str = "authprovider-clients"

    verification_jwt_key: str = ""
    verification_jwt_issuer: str = "authprovider"
    verification_jwt_audience: str = "authprovider-verification"

    reset_jwt_key: str = ""
    reset_jwt_issuer: str = "authprovider"
    reset_jwt_audience: str = "authprovider-reset"

    session_jwt_key: str = ""
    session_jwt_issuer: str = "authprovider"
    session_jwt_audience: str = "authprovider-session"

    # ------------------------------------------------------------------
    # Lifetimes (minutes)
    # ------------------------------------------------------------------

    access_token_minutes: int = 60
    email_verification_minutes: int = 30
    account_verification_minutes: int = 60
    reset_password_minutes: int = 30
    login_session_minutes: int = 480
    blacklist_grace_minutes: int = 30
    blacklist_purge_interval_seconds: int = 3600

    # Expiry timestamps shown to end users are rendered in this zone.
    # Validation always compares in UTC.
    business_timezone: str = "Europe/Stockholm"

    # ------------------------------------------------------------------
    # Passwords
    # ------------------------------------------------------------------

    bcrypt_rounds: int = 12

    # ------------------------------------------------------------------
    # Email dispatch (external provider endpoints)
    # ------------------------------------------------------------------

    email_verification_endpoint: str = ""
    account_verification_endpoint: str = ""
    reset_password_endpoint: str = ""
    dispatch_timeout_seconds: float = 10.0

    # Comma-separated in the environment: RESTRICTED_EMAILS=a@x.se,b@y.se
    restricted_emails: Annotated[list[str], NoDecode] = []

    # ------------------------------------------------------------------
    # HTTP surface
    # ------------------------------------------------------------------

    frontend_base_url: str = "http://localhost:3000"
    access_cookie_name: str = "AccessToken"
    secure_cookies: bool = False
    default_locale: str = "sv"
    login_rate_limit: str = "10/minute"
    email_rate_limit: str = "5/minute"
    allowed_hosts: Annotated[list[str], NoDecode] = ["localhost", "127.0.0.1", "testserver"]
    cors_origins: Annotated[list[str], NoDecode] = ["http://localhost:3000"]

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @field_validator("restricted_emails", "allowed_hosts", "cors_origins", mode="before")
    @classmethod
    def split_csv(cls, value):
        """Accept a comma-separated string as well as a real list."""
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value

    @field_validator("restricted_emails")
    @classmethod
    def normalize_restricted(cls, value: list[str]) -> list[str]:
        return [item.lower() for item in value]

    @model_validator(mode="after")
    def validate_token_families(self) -> "Settings":
        """Enforce signing key policy for every token family [M6][M7].

        Dev mode (DEBUG=true): auto-generate missing keys with a warning.
            Issued tokens will not survive restart -- acceptable for local dev.

        Production mode: refuse to start if any key is missing.

        Both modes: reject short keys and empty issuer/audience values.
        """
        for family in TOKEN_FAMILIES:
            key_field = f"{family}_jwt_key"
            key = getattr(self, key_field)
            if not key:
                if self.debug:
                    setattr(self, key_field, secrets.token_hex(32))
                    logger.warning(
                        "Using auto-generated %s. Tokens will not validate across restarts.",
                        key_field.upper(),
                    )
                else:
                    raise ValueError(
                        f"{key_field.upper()} is required in production mode. "
                        "Set it in your environment or .env file. "
                        "To run in development mode, set DEBUG=true."
                    )
            if len(getattr(self, key_field)) < _MIN_KEY_LENGTH:
                raise ValueError(f"{key_field.upper()} must be at least {_MIN_KEY_LENGTH} characters.")
            for part in ("issuer", "audience"):
                if not getattr(self, f"{family}_jwt_{part}"):
                    raise ValueError(f"{family.upper()}_JWT_{part.upper()} must not be empty.")
        return self

    @model_validator(mode="after")
    def validate_endpoints(self) -> "Settings":
        """Provider endpoints are optional in DEBUG (dispatch then reports failure)."""
        missing = [
            name
            for name in ("email_verification_endpoint", "account_verification_endpoint", "reset_password_endpoint")
            if not getattr(self, name)
        ]
        if missing and not self.debug:
            raise ValueError(f"Missing email provider endpoints: {', '.join(n.upper() for n in missing)}")
        if missing:
            logger.warning("Email provider endpoints not configured: %s", ", ".join(missing))
        return self

    def is_restricted_email(self, email: str) -> bool:
        """Case-insensitive membership test against RESTRICTED_EMAILS."""
        return email.strip().lower() in self.restricted_emails


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
