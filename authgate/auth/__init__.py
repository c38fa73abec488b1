"""
Authentication Package

This package gates HTTP requests behind an OAuth2 authorization-code login.

Key responsibilities:
- Login redirect and callback handling (gate)
- Encrypted session cookies (session)
- Token exchange and bearer-authenticated clients (oauth)
- CSRF state and domain-based access control (utils)
- HTTP Basic and pass-through authenticators (basic)

The authentication flow:
1. An anonymous request is redirected to the identity provider
2. The provider redirects back to /oauth2callback with a code and state
3. The gate checks the state, exchanges the code and checks the domain
4. The browser is sent back to the original URL with a session cookie
5. Subsequent requests with the cookie reach the protected handler
"""

from .basic import AnyOrNoAuth, Authenticator, BasicAuth, WrapAuth
from .errors import AuthGateError, SessionCodecError, TokenExchangeError
from .gate import Admitted, OAuthGate, SessionHandler
from .oauth import AuthenticatedClient, BearerAuth, OAuth2Provider
from .session import SessionCodec
from .utils import CALLBACK_PATH, domain_allowed, new_state

__all__ = [
    "OAuthGate",
    "SessionHandler",
    "Admitted",
    "SessionCodec",
    "OAuth2Provider",
    "AuthenticatedClient",
    "BearerAuth",
    "CALLBACK_PATH",
    "domain_allowed",
    "new_state",
    "AnyOrNoAuth",
    "Authenticator",
    "BasicAuth",
    "WrapAuth",
    "AuthGateError",
    "SessionCodecError",
    "TokenExchangeError",
]
