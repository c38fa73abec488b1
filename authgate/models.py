"""
Data Models Module

Pydantic models shared by the gate:
- OAuth token as returned by the provider's token endpoint
- Session record carried inside the encrypted cookie
- Provider profile consumed by the domain check
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


# ============================================================================
# OAuth Models
# ============================================================================

class OAuthToken(BaseModel):
    """Delegated access credential issued by the identity provider."""

    model_config = ConfigDict(frozen=True)

    access_token: str = Field(..., min_length=1, description="Bearer access token")
    token_type: str = Field(default="Bearer", description="Token type")
    refresh_token: Optional[str] = Field(None, description="Refresh token if issued")
    expiry: Optional[datetime] = Field(None, description="Absolute expiry (UTC)")

    @classmethod
    def from_token_response(cls, data: Dict[str, Any]) -> "OAuthToken":
        """
        Build a token from a token endpoint JSON payload.

        Raises:
            ValueError: If the payload has no access_token
        """
        if not data.get("access_token"):
            raise ValueError("server response missing access_token")

        expiry = None
        expires_in = data.get("expires_in")
        if expires_in:
            expiry = datetime.now(timezone.utc) + timedelta(seconds=int(expires_in))

        return cls(
            access_token=data["access_token"],
            token_type=data.get("token_type") or "Bearer",
            refresh_token=data.get("refresh_token"),
            expiry=expiry,
        )

    @property
    def authorization_header(self) -> str:
        # Providers answer "bearer" in lower case; the header scheme is canonical.
        token_type = self.token_type
        if token_type.lower() == "bearer":
            token_type = "Bearer"
        return f"{token_type} {self.access_token}"


# ============================================================================
# Session Models
# ============================================================================

class SessionRecord(BaseModel):
    """
    Authentication state carried in the session cookie.

    A record with a token is an active session and its other fields are
    ignored. Otherwise next_url and state describe an outstanding login
    redirect. Records are never updated in place.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    token: Optional[OAuthToken] = None
    next_url: Optional[str] = None
    state: Optional[str] = None

    @property
    def authenticated(self) -> bool:
        return self.token is not None and bool(self.token.access_token)


# ============================================================================
# Profile Models
# ============================================================================

class GoogleProfile(BaseModel):
    """Subset of the provider's userinfo profile."""

    id: Optional[str] = None
    name: Optional[str] = None
    family_name: Optional[str] = None
    given_name: Optional[str] = None
    email: str = ""
