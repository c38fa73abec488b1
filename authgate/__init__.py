"""
OAuth request gate.

Requires users to log in with an OAuth2 identity provider (Google by
default) before requests reach the protected application, optionally
restricting access to one email domain.
"""

from .auth import OAuthGate, SessionHandler
from .config import Settings, get_settings

__version__ = "1.0.0"

__all__ = [
    "OAuthGate",
    "SessionHandler",
    "Settings",
    "get_settings",
]
