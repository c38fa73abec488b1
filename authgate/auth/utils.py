"""
Authentication utilities.

This module handles:
- CSRF state generation and comparison
- Building absolute HTTPS URLs for the current request
- Verifying the logged-in user's email domain against the provider profile
"""

import hmac
import logging
import secrets
from typing import Optional

import httpx
from pydantic import ValidationError
from starlette.requests import Request

from ..config import GOOGLE_PROFILE_URL
from ..models import GoogleProfile
from .oauth import AuthenticatedClient

logger = logging.getLogger(__name__)

CALLBACK_PATH = "/oauth2callback"

STATE_BYTES = 10


# =============================================================================
# CSRF State
# =============================================================================

def new_state() -> str:
    """
    Generate an unguessable per-flow nonce.

    Returns:
        Lowercase hex string of STATE_BYTES random bytes
    """
    return secrets.token_hex(STATE_BYTES)


def validate_state(received_state: Optional[str], expected_state: Optional[str]) -> bool:
    """
    Validate OAuth state parameter.

    A missing expected state never matches, so a callback without a
    pending login flow is rejected.
    """
    if not expected_state or received_state is None:
        return False
    return hmac.compare_digest(received_state.encode("utf-8"), expected_state.encode("utf-8"))


def single_query_param(request: Request, name: str) -> Optional[str]:
    """Return a query parameter that appears exactly once, else None."""
    values = request.query_params.getlist(name)
    if len(values) != 1:
        return None
    return values[0]


# =============================================================================
# URL Helpers
# =============================================================================

def request_host(request: Request) -> str:
    return request.headers.get("host") or request.url.netloc


def external_url(request: Request) -> str:
    """Canonical HTTPS URL of the requested resource, query included."""
    return str(request.url.replace(scheme="https", netloc=request_host(request)))


def callback_url(request: Request) -> str:
    """Redirect URL registered with the provider for this host."""
    return f"https://{request_host(request)}{CALLBACK_PATH}"


# =============================================================================
# Domain Verification
# =============================================================================

def email_in_domain(email: Optional[str], domain: str) -> bool:
    """
    Check that an email has exactly one "@" and the part after it equals domain.
    """
    if not email or email.count("@") != 1:
        return False
    return email.split("@", 1)[1] == domain


async def domain_allowed(
    client: AuthenticatedClient,
    domain: str,
    *,
    profile_url: str = GOOGLE_PROFILE_URL,
) -> bool:
    """
    Check the logged-in user's profile email against the required domain.

    Any failure (network error, non-success status, malformed profile or a
    different domain) denies access. There are no retries.

    Args:
        client: Client authenticated with the user's token
        domain: Required email domain
        profile_url: Provider profile endpoint

    Returns:
        True if the profile email belongs to domain
    """
    try:
        response = await client.get(profile_url)
    except httpx.HTTPError as e:
        logger.error(f"Couldn't reach identity provider: {e}")
        return False

    if not response.is_success:
        logger.error(
            "Couldn't reach identity provider",
            extra={"status_code": response.status_code},
        )
        return False

    try:
        profile = GoogleProfile.model_validate(response.json())
    except (ValueError, ValidationError) as e:
        logger.error(f"Failed to decode profile json: {e}")
        return False

    if not email_in_domain(profile.email, domain):
        logger.error("Invalid email", extra={"email": profile.email, "required_domain": domain})
        return False

    return True
