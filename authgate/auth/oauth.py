"""
OAuth2 authorization-code client.

Builds the provider authorization URL, exchanges authorization codes for
tokens and hands out bearer-authenticated HTTP clients. All outbound calls
are single attempts with the configured timeout.
"""

import logging
from typing import Any, List, Optional
from urllib.parse import urlencode

import httpx

from ..config import Settings
from ..models import OAuthToken
from .errors import TokenExchangeError

logger = logging.getLogger(__name__)


# =============================================================================
# Bearer-authenticated Client
# =============================================================================

class BearerAuth(httpx.Auth):
    """Attach an OAuth token to every outgoing request."""

    def __init__(self, token: OAuthToken):
        self.token = token

    def auth_flow(self, request: httpx.Request):
        request.headers["Authorization"] = self.token.authorization_header
        yield request


class AuthenticatedClient:
    """
    HTTP client capability acting on behalf of the logged-in user.

    Every call opens a short-lived httpx.AsyncClient carrying the user's
    token, so the capability can be passed around freely without owning a
    connection pool.

    Usage in a session handler:
        async def handle_authenticated(self, request, client):
            response = await client.get("https://www.googleapis.com/oauth2/v1/userinfo")
    """

    def __init__(
        self,
        token: OAuthToken,
        *,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.token = token
        self.timeout = timeout
        self._transport = transport

    async def request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        async with httpx.AsyncClient(
            auth=BearerAuth(self.token),
            timeout=self.timeout,
            transport=self._transport,
        ) as client:
            return await client.request(method, url, **kwargs)

    async def get(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("GET", url, **kwargs)

    async def post(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("POST", url, **kwargs)


# =============================================================================
# Provider
# =============================================================================

class OAuth2Provider:
    """
    Authorization-code flow against one provider for one redirect URL.

    Args:
        settings: Gate settings (client credentials, scopes, endpoints)
        redirect_url: Absolute callback URL registered with the provider
        transport: Optional httpx transport (tests inject a MockTransport)
    """

    def __init__(
        self,
        settings: Settings,
        redirect_url: str,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.client_id = settings.OAUTH_CLIENT_ID
        self.client_secret = settings.OAUTH_CLIENT_SECRET
        self.scopes: List[str] = settings.scopes_list
        self.auth_url = settings.OAUTH_AUTH_URL
        self.token_url = settings.OAUTH_TOKEN_URL
        self.timeout = settings.PROVIDER_TIMEOUT_SECONDS
        self.redirect_url = redirect_url
        self._transport = transport

    def authorization_url(self, state: str) -> str:
        """
        Build the URL the browser is sent to for login.

        Args:
            state: CSRF nonce echoed back on the callback
        """
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_url,
            "response_type": "code",
            "scope": " ".join(self.scopes),
            "state": state,
        }
        separator = "&" if "?" in self.auth_url else "?"
        return f"{self.auth_url}{separator}{urlencode(params)}"

    async def exchange(self, code: Optional[str]) -> OAuthToken:
        """
        Exchange an authorization code for a token.

        Raises:
            TokenExchangeError: On transport errors, non-success status,
                                or a response without access_token
        """
        if not code:
            raise TokenExchangeError("Missing authorization code")

        payload = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self.redirect_url,
            "client_id": self.client_id,
            "client_secret": self.client_secret,
        }

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout,
                transport=self._transport,
            ) as client:
                response = await client.post(
                    self.token_url,
                    data=payload,
                    headers={
                        "Content-Type": "application/x-www-form-urlencoded",
                        "Accept": "application/json",
                    },
                )
        except httpx.HTTPError as e:
            raise TokenExchangeError(f"Token endpoint unreachable: {e}") from e

        if not response.is_success:
            error_msg = "Token exchange failed"
            if response.headers.get("content-type", "").startswith("application/json"):
                try:
                    error_data = response.json()
                    error_msg = error_data.get("error_description") or error_data.get("error") or error_msg
                except ValueError:
                    pass
            raise TokenExchangeError(f"{error_msg} (status={response.status_code})")

        try:
            data = response.json()
        except ValueError as e:
            raise TokenExchangeError("Token response is not JSON") from e
        if not isinstance(data, dict):
            raise TokenExchangeError("Invalid token response")

        try:
            return OAuthToken.from_token_response(data)
        except ValueError as e:
            raise TokenExchangeError(str(e)) from e

    def client(self, token: OAuthToken) -> AuthenticatedClient:
        """Return a client that sends requests with the given token."""
        return AuthenticatedClient(token, timeout=self.timeout, transport=self._transport)
