"""
OAuth Gate
==========

ASGI application that requires users to log in with OAuth before a request
reaches the protected handler, optionally restricting access to one email
domain.

For every HTTP request the gate reads the session cookie and performs one
step of the authorization-code flow:

    Authenticated     -> refresh cookie, forward to the handler
    Callback arrived  -> check state, exchange code, check domain,
                         store token, 307 back to the original URL
    Anything else     -> store {next_url, state}, 307 to the provider

Protocol failures answer 401 and clear the cookie; unexpected failures
answer 500 and clear the cookie. Nothing is retried.

Usage:
    app = FastAPI()
    app.add_middleware(OAuthGate, settings=get_settings())
"""

import logging
from dataclasses import dataclass
from typing import Optional, Protocol, Union, runtime_checkable

import httpx
from starlette.datastructures import MutableHeaders
from starlette.requests import Request
from starlette.responses import PlainTextResponse, RedirectResponse, Response
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from ..config import Settings
from ..models import SessionRecord
from .errors import SessionCodecError, TokenExchangeError
from .oauth import AuthenticatedClient, OAuth2Provider
from .session import SessionCodec
from .utils import (
    CALLBACK_PATH,
    callback_url,
    domain_allowed,
    external_url,
    new_state,
    single_query_param,
    validate_state,
)

logger = logging.getLogger(__name__)

FORBIDDEN_BODY = "access forbidden"
INTERNAL_ERROR_BODY = "internal error"


# =============================================================================
# Downstream Handlers
# =============================================================================

@runtime_checkable
class SessionHandler(Protocol):
    """
    Downstream handler that receives the authenticated client explicitly.

    Handlers that are plain ASGI applications are called unchanged and do
    not receive the client.
    """

    async def handle_authenticated(
        self, request: Request, client: AuthenticatedClient
    ) -> Response:
        ...


@dataclass(frozen=True)
class Admitted:
    """Outcome of authorize() for a request that may reach the handler."""

    session: SessionRecord
    client: AuthenticatedClient


# =============================================================================
# Gate
# =============================================================================

class OAuthGate:
    """
    Gate a downstream handler behind an OAuth login.

    Args:
        app: Protected handler, an ASGI application or a SessionHandler
        settings: Frozen gate settings, built once at startup
        transport: Optional httpx transport for provider calls
    """

    def __init__(
        self,
        app: Union[ASGIApp, SessionHandler],
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.app = app
        self.settings = settings
        self.codec = SessionCodec(settings)
        self._transport = transport

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "lifespan":
            if isinstance(self.app, SessionHandler):
                return
            await self.app(scope, receive, send)
            return

        if scope["type"] == "websocket":
            await send({"type": "websocket.close", "code": 1008})
            return

        request = Request(scope, receive)
        outcome = await self.authorize(request)

        if isinstance(outcome, Response):
            await outcome(scope, receive, send)
            return

        await self.forward(outcome, request, scope, receive, send)

    # =========================================================================
    # Forwarding
    # =========================================================================

    async def forward(
        self,
        admitted: Admitted,
        request: Request,
        scope: Scope,
        receive: Receive,
        send: Send,
    ) -> None:
        """Invoke the protected handler once, with a refreshed cookie."""
        if isinstance(self.app, SessionHandler):
            response = await self.app.handle_authenticated(request, admitted.client)
            self.codec.encode(admitted.session, response)
            await response(scope, receive, send)
            return

        cookies = self.codec.cookie_headers(admitted.session)

        async def send_with_cookie(message: Message) -> None:
            if message["type"] == "http.response.start":
                headers = MutableHeaders(scope=message)
                for value in cookies:
                    headers.append("Set-Cookie", value)
            await send(message)

        await self.app(scope, receive, send_with_cookie)

    # =========================================================================
    # State Machine
    # =========================================================================

    def provider(self, request: Request) -> OAuth2Provider:
        return OAuth2Provider(self.settings, callback_url(request), transport=self._transport)

    async def authorize(self, request: Request) -> Union[Admitted, Response]:
        """
        Check that the user is logged in and authorized.

        If not, perform one step of the OAuth flow and return the response
        that ends this request.
        """
        try:
            return await self._login_ok(request)
        except SessionCodecError:
            return self._internal_error()
        except Exception as e:
            logger.error(
                f"Unhandled exception in gate: {e}",
                extra={"path": request.url.path, "method": request.method},
                exc_info=True,
            )
            return self._internal_error()

    async def _login_ok(self, request: Request) -> Union[Admitted, Response]:
        session = self.codec.decode(request)
        if session is None:
            # Tampered or expired cookies restart the login flow
            session = SessionRecord()

        provider = self.provider(request)

        if session.authenticated:
            return Admitted(session=session, client=provider.client(session.token))

        if request.url.path == CALLBACK_PATH:
            return await self._complete_login(request, session, provider)

        return self._start_login(request, provider)

    async def _complete_login(
        self,
        request: Request,
        session: SessionRecord,
        provider: OAuth2Provider,
    ) -> Response:
        if not validate_state(single_query_param(request, "state"), session.state):
            logger.error("Mismatched state", extra={"path": request.url.path})
            return self._forbidden()

        try:
            token = await provider.exchange(single_query_param(request, "code"))
        except TokenExchangeError as e:
            logger.error(f"Invalid credentials: {e}", extra={"path": request.url.path})
            return self._forbidden()

        client = provider.client(token)
        required_domain = self.settings.REQUIRE_DOMAIN
        if required_domain and not await domain_allowed(
            client, required_domain, profile_url=self.settings.OAUTH_PROFILE_URL
        ):
            return self._forbidden()

        next_url = session.next_url or "/"
        response = RedirectResponse(url=next_url, status_code=307)
        self.codec.encode(SessionRecord(token=token), response)
        logger.info("Login completed", extra={"next_url": next_url})
        return response

    def _start_login(self, request: Request, provider: OAuth2Provider) -> Response:
        state = new_state()
        record = SessionRecord(next_url=external_url(request), state=state)
        response = RedirectResponse(url=provider.authorization_url(state), status_code=307)
        self.codec.encode(record, response)
        logger.debug("Redirecting to identity provider", extra={"next_url": record.next_url})
        return response

    # =========================================================================
    # Error Responses
    # =========================================================================

    def _forbidden(self) -> Response:
        response = PlainTextResponse(FORBIDDEN_BODY, status_code=401)
        self.codec.delete(response)
        return response

    def _internal_error(self) -> Response:
        response = PlainTextResponse(INTERNAL_ERROR_BODY, status_code=500)
        self.codec.delete(response)
        return response
