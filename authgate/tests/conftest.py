"""
Shared fixtures for the gate tests.

The identity provider is simulated with an httpx.MockTransport so the real
httpx request path (auth flow, timeouts, error mapping) is exercised.
"""

import base64
import json
from http.cookies import SimpleCookie
from typing import Any, Dict, List, Optional
from urllib.parse import parse_qs, urlsplit

import httpx
import pytest

from authgate.auth.session import SessionCodec
from authgate.config import Settings


TEST_KEY = "faba0c08be7474a785b272c4f4154c998c0943b51e662637be11b1a0ecda43b3"
RETIRED_KEY = "0f1e2d3c4b5a69788796a5b4c3d2e1f000112233445566778899aabbccddeeff"

TOKEN_URL = "https://oauth2.example.test/token"
PROFILE_URL = "https://oauth2.example.test/userinfo"
AUTH_URL = "https://accounts.example.test/o/oauth2/auth"


def make_settings(**overrides: Any) -> Settings:
    values: Dict[str, Any] = {
        "SESSION_KEY": TEST_KEY,
        "OAUTH_CLIENT_ID": "test-client-id",
        "OAUTH_CLIENT_SECRET": "test-client-secret",
        "OAUTH_AUTH_URL": AUTH_URL,
        "OAUTH_TOKEN_URL": TOKEN_URL,
        "OAUTH_PROFILE_URL": PROFILE_URL,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


class FakeProvider:
    """
    In-process identity provider answering token and profile requests.

    Attributes:
        requests: Every request received, in order
    """

    def __init__(
        self,
        token_status: int = 200,
        token_json: Optional[Dict[str, Any]] = None,
        profile_status: int = 200,
        profile_json: Optional[Dict[str, Any]] = None,
        profile_body: Optional[bytes] = None,
        fail_with: Optional[Exception] = None,
    ):
        self.token_status = token_status
        self.token_json = token_json if token_json is not None else {
            "access_token": "ya29.test-access-token",
            "token_type": "Bearer",
            "refresh_token": "1//test-refresh-token",
            "expires_in": 3599,
        }
        self.profile_status = profile_status
        self.profile_json = profile_json if profile_json is not None else {
            "id": "1234567890",
            "email": "alice@example.com",
            "name": "Alice Example",
        }
        self.profile_body = profile_body
        self.fail_with = fail_with
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_with is not None:
            raise self.fail_with
        if str(request.url) == TOKEN_URL:
            return httpx.Response(self.token_status, json=self.token_json)
        if str(request.url) == PROFILE_URL:
            if self.profile_body is not None:
                return httpx.Response(self.profile_status, content=self.profile_body)
            return httpx.Response(self.profile_status, json=self.profile_json)
        return httpx.Response(404)

    def token_requests(self) -> List[httpx.Request]:
        return [r for r in self.requests if str(r.url) == TOKEN_URL]

    def profile_requests(self) -> List[httpx.Request]:
        return [r for r in self.requests if str(r.url) == PROFILE_URL]

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


# ============================================================================
# Helpers
# ============================================================================

def session_cookie(response: httpx.Response, name: str = "googlegoauth"):
    """Return the Morsel of the session cookie set by a response."""
    for header in response.headers.get_list("set-cookie"):
        cookie = SimpleCookie()
        cookie.load(header)
        if name in cookie:
            return cookie[name]
    return None


def query_params(url: str) -> Dict[str, str]:
    return {k: v[0] for k, v in parse_qs(urlsplit(url).query).items()}


def form_params(request: httpx.Request) -> Dict[str, str]:
    return {k: v[0] for k, v in parse_qs(request.content.decode()).items()}


def b64url_decode(segment: str) -> bytes:
    return base64.urlsafe_b64decode(segment + "=" * (-len(segment) % 4))


def b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def flip_bit(value: str, segment: int, bit: int = 0) -> str:
    """Flip one bit in the given segment of a compact JWE string."""
    parts = value.split(".")
    raw = bytearray(b64url_decode(parts[segment]))
    raw[0] ^= 1 << bit
    parts[segment] = b64url_encode(bytes(raw))
    return ".".join(parts)


def decode_header(value: str) -> Dict[str, Any]:
    return json.loads(b64url_decode(value.split(".")[0]))


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def codec(settings) -> SessionCodec:
    return SessionCodec(settings)


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()
