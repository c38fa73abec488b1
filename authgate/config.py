"""
Configuration module for the OAuth gate.

This module uses Pydantic Settings to load and validate environment variables
for the OAuth client, the session cookie, the domain restriction and the
provider endpoints.

Environment variables are loaded from .env file or system environment.
Settings are read once at startup; a missing or malformed session key is a
startup error, never a per-request one.
"""

import hashlib
import re
from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# Default provider: Google
GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_PROFILE_URL = "https://www.googleapis.com/oauth2/v1/userinfo"

DEFAULT_SCOPES = [
    "https://www.googleapis.com/auth/userinfo.email",
    "https://www.googleapis.com/auth/userinfo.profile",
]

_HEX_KEY = re.compile(r"^[0-9a-fA-F]{64}$")


def parse_key(value: str) -> bytes:
    """
    Decode a 64-character hex string into a 32-byte key.

    Raises:
        ValueError: If the value is not valid hex or not 32 bytes long
    """
    value = (value or "").strip()
    if not _HEX_KEY.match(value):
        raise ValueError(
            f"Invalid key: wanted 64 hex characters (32 bytes), got {len(value)} characters"
        )
    return bytes.fromhex(value)


def key_id(key: bytes) -> str:
    """Short identifier written into the cookie header to select a key."""
    return hashlib.sha256(key).hexdigest()[:16]


class Settings(BaseSettings):
    """
    Gate settings loaded from environment variables.

    The instance is frozen: it is built once at startup and shared read-only
    by every request.
    """

    # =========================================================================
    # Domain-based Access Control
    # =========================================================================

    REQUIRE_DOMAIN: str = Field(
        default="",
        description="Email domain users must belong to (e.g., 'example.com'). Empty allows any user.",
    )

    # =========================================================================
    # Session Cookie Configuration
    # =========================================================================

    SESSION_COOKIE_NAME: str = Field(
        default="googlegoauth",
        description="Name of the session cookie",
        min_length=1,
    )

    SESSION_COOKIE_PATH: str = Field(
        default="/",
        description="Path attribute of the session cookie",
    )

    SESSION_COOKIE_DOMAIN: Optional[str] = Field(
        None,
        description="Domain attribute of the session cookie (host-only if unset)",
    )

    SESSION_MAX_AGE_SECONDS: int = Field(
        default=30 * 24 * 60 * 60,
        description="Session cookie lifetime in seconds",
        ge=60,
    )

    SESSION_KEY: str = Field(
        ...,
        description="64-character hex string (32 bytes) used to encrypt session cookies",
    )

    SESSION_RETIRED_KEYS: str = Field(
        default="",
        description="Comma-separated retired keys still accepted for decoding",
    )

    # =========================================================================
    # OAuth Client Configuration
    # =========================================================================

    OAUTH_CLIENT_ID: str = Field(
        ...,
        description="OAuth client ID registered with the identity provider",
        min_length=1,
    )

    OAUTH_CLIENT_SECRET: str = Field(
        ...,
        description="OAuth client secret",
        min_length=1,
    )

    OAUTH_SCOPES: str = Field(
        default="",
        description="Comma or space separated scopes (defaults to userinfo email and profile)",
    )

    OAUTH_AUTH_URL: str = Field(default=GOOGLE_AUTH_URL)
    OAUTH_TOKEN_URL: str = Field(default=GOOGLE_TOKEN_URL)
    OAUTH_PROFILE_URL: str = Field(default=GOOGLE_PROFILE_URL)

    PROVIDER_TIMEOUT_SECONDS: float = Field(
        default=10.0,
        description="Timeout for token exchange and profile requests",
        gt=0,
    )

    # =========================================================================
    # Server Configuration
    # =========================================================================

    GATE_HOST: str = Field(default="0.0.0.0")
    GATE_PORT: int = Field(default=8080, ge=1, le=65535)
    LOG_LEVEL: str = Field(default="INFO")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
        frozen=True,
    )

    # =========================================================================
    # Computed Properties
    # =========================================================================

    @property
    def scopes_list(self) -> List[str]:
        """
        Parse OAUTH_SCOPES into a list, falling back to the default scopes.
        """
        scopes = [s for s in re.split(r"[,\s]+", self.OAUTH_SCOPES) if s]
        return scopes or list(DEFAULT_SCOPES)

    @property
    def session_key(self) -> bytes:
        """Active key used for encoding and decoding."""
        return parse_key(self.SESSION_KEY)

    @property
    def session_keys(self) -> List[bytes]:
        """
        Active key first, then retired keys accepted for decoding only.
        """
        keys = [self.session_key]
        for value in self.SESSION_RETIRED_KEYS.split(","):
            if value.strip():
                keys.append(parse_key(value))
        return keys

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("SESSION_KEY")
    @classmethod
    def validate_session_key(cls, v: str) -> str:
        """
        Validate that SESSION_KEY is exactly 32 bytes of hex.

        Raises:
            ValueError: If the key is not valid hex or has the wrong length
        """
        parse_key(v)
        return v.strip().lower()

    @field_validator("SESSION_RETIRED_KEYS")
    @classmethod
    def validate_retired_keys(cls, v: str) -> str:
        for value in v.split(","):
            if value.strip():
                parse_key(value)
        return v

    @field_validator("REQUIRE_DOMAIN")
    @classmethod
    def validate_require_domain(cls, v: str) -> str:
        v = v.strip()
        if " " in v or "@" in v:
            raise ValueError(
                f"Invalid domain format: '{v}'. "
                "Domain should not contain spaces or @ symbols"
            )
        return v

    @field_validator("SESSION_COOKIE_DOMAIN")
    @classmethod
    def validate_cookie_domain(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            return None
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in allowed:
            raise ValueError(f"LOG_LEVEL must be one of {allowed}, got: {v}")
        return v.upper()


# =============================================================================
# Settings Singleton
# =============================================================================

@lru_cache()
def get_settings() -> Settings:
    """
    Get or create a singleton Settings instance.

    Returns:
        Settings instance with all configuration loaded and validated.

    Raises:
        ValidationError: If required environment variables are missing
                        or invalid.
    """
    return Settings()
