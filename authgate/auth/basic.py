"""
Simple request authenticators.

Lightweight alternatives to the OAuth gate for internal endpoints:
- AnyOrNoAuth accepts every request
- BasicAuth checks HTTP Basic credentials against in-memory principals
- WrapAuth protects an ASGI application with any Authenticator
"""

import base64
import binascii
import hmac
import logging
from typing import Dict, Optional, Protocol, Tuple, runtime_checkable

from fastapi.security.utils import get_authorization_scheme_param
from starlette.requests import Request
from starlette.responses import PlainTextResponse
from starlette.types import ASGIApp, Receive, Scope, Send

logger = logging.getLogger(__name__)


@runtime_checkable
class Authenticator(Protocol):
    def authenticate(self, request: Request) -> bool:
        ...


class AnyOrNoAuth:
    """Authenticator that accepts any request, with or without credentials."""

    def authenticate(self, request: Request) -> bool:
        return True


def parse_basic_credentials(authorization: Optional[str]) -> Optional[Tuple[str, str]]:
    """
    Extract (username, password) from a Basic Authorization header.

    Returns:
        Credentials tuple, or None if the header is missing or malformed
    """
    scheme, param = get_authorization_scheme_param(authorization)
    if not authorization or scheme.lower() != "basic":
        return None
    try:
        decoded = base64.b64decode(param, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return None
    username, separator, password = decoded.partition(":")
    if not separator:
        return None
    return username, password


class BasicAuth:
    """HTTP Basic authenticator backed by an in-memory principal table."""

    def __init__(self):
        self._principals: Dict[str, str] = {}

    def add_principal(self, username: str, password: str) -> None:
        self._principals[username] = password

    def authenticate(self, request: Request) -> bool:
        credentials = parse_basic_credentials(request.headers.get("authorization"))
        if credentials is None:
            return False
        username, password = credentials
        expected = self._principals.get(username)
        matched = hmac.compare_digest(password.encode("utf-8"), (expected or "").encode("utf-8"))
        return expected is not None and matched


class WrapAuth:
    """
    ASGI wrapper that only lets authenticated HTTP requests through.

    Args:
        app: Protected ASGI application
        authenticator: Decides whether a request may proceed
        realm: Realm advertised in the WWW-Authenticate challenge
    """

    def __init__(self, app: ASGIApp, authenticator: Authenticator, realm: str = "Restricted"):
        self.app = app
        self.authenticator = authenticator
        self.realm = realm

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "lifespan":
            await self.app(scope, receive, send)
            return

        if scope["type"] == "websocket":
            await send({"type": "websocket.close", "code": 1008})
            return

        request = Request(scope, receive)
        if not self.authenticator.authenticate(request):
            logger.warning("Rejected unauthenticated request", extra={"path": request.url.path})
            response = PlainTextResponse(
                "Unauthorized",
                status_code=401,
                headers={"WWW-Authenticate": f'Basic realm="{self.realm}"'},
            )
            await response(scope, receive, send)
            return

        await self.app(scope, receive, send)
