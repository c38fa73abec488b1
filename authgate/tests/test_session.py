"""
Session Cookie Codec Tests

Tests encryption round trips, tamper and expiry rejection, key rotation,
and the cookie attributes written on responses.
"""

import time
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest
from starlette.requests import Request
from starlette.responses import Response

from authgate.auth.errors import SessionCodecError
from authgate.auth.session import SessionCodec
from authgate.models import OAuthToken, SessionRecord

from conftest import RETIRED_KEY, TEST_KEY, decode_header, flip_bit, make_settings


def make_request(cookie_header: str = None) -> Request:
    headers = []
    if cookie_header is not None:
        headers.append((b"cookie", cookie_header.encode("latin-1")))
    return Request({
        "type": "http",
        "method": "GET",
        "path": "/",
        "query_string": b"",
        "headers": headers,
    })


@pytest.fixture
def token_record() -> SessionRecord:
    return SessionRecord(token=OAuthToken(
        access_token="ya29.access",
        token_type="Bearer",
        refresh_token="1//refresh",
        expiry=datetime.now(timezone.utc) + timedelta(hours=1),
    ))


class TestRoundTrip:

    def test_token_record_round_trip(self, codec, token_record):
        assert codec.loads(codec.dumps(token_record)) == token_record

    def test_flow_record_round_trip(self, codec):
        record = SessionRecord(next_url="https://app.example.com/dashboard?tab=1", state="ab" * 10)
        assert codec.loads(codec.dumps(record)) == record

    def test_empty_record_round_trip(self, codec):
        assert codec.loads(codec.dumps(SessionRecord())) == SessionRecord()

    def test_each_encoding_is_fresh(self, codec, token_record):
        # New IV per encoding, same content
        first = codec.dumps(token_record)
        second = codec.dumps(token_record)
        assert first != second
        assert codec.loads(first) == codec.loads(second)

    def test_header_carries_key_id(self, codec, token_record):
        header = decode_header(codec.dumps(token_record))
        assert header["alg"] == "dir"
        assert header["enc"] == "A256GCM"
        assert header["kid"]

    def test_token_not_visible_in_cookie(self, codec, token_record):
        assert "ya29.access" not in codec.dumps(token_record)


class TestTampering:

    @pytest.mark.parametrize("segment", [0, 2, 3, 4])
    @pytest.mark.parametrize("bit", [0, 3, 7])
    def test_single_bit_flip_is_rejected(self, codec, token_record, segment, bit):
        value = flip_bit(codec.dumps(token_record), segment, bit)
        assert codec.loads(value) is None

    @pytest.mark.parametrize("value", [
        "",
        "garbage",
        "a.b.c.d.e",
        "eyJhbGciOiJkaXIifQ....",
    ])
    def test_malformed_values_are_rejected(self, codec, value):
        assert codec.loads(value) is None

    def test_other_key_is_rejected(self, token_record):
        other = SessionCodec(make_settings(SESSION_KEY=RETIRED_KEY))
        codec = SessionCodec(make_settings())
        assert codec.loads(other.dumps(token_record)) is None

    def test_unexpected_failure_raises_codec_error(self, codec, token_record):
        value = codec.dumps(token_record)
        with patch("authgate.auth.session.jwe.decrypt", side_effect=RuntimeError("backend failure")):
            with pytest.raises(SessionCodecError):
                codec.loads(value)


class TestExpiry:

    def test_expired_cookie_is_rejected(self, codec, token_record):
        issued_at = time.time() - codec.max_age - 5
        assert codec.loads(codec.dumps(token_record, issued_at=issued_at)) is None

    def test_cookie_within_max_age_is_accepted(self, codec, token_record):
        issued_at = time.time() - codec.max_age + 60
        assert codec.loads(codec.dumps(token_record, issued_at=issued_at)) == token_record


class TestKeyRotation:

    def test_retired_key_still_decodes(self, token_record):
        old = SessionCodec(make_settings(SESSION_KEY=RETIRED_KEY))
        rotated = SessionCodec(make_settings(SESSION_KEY=TEST_KEY, SESSION_RETIRED_KEYS=RETIRED_KEY))
        assert rotated.loads(old.dumps(token_record)) == token_record

    def test_new_cookies_use_active_key(self, token_record):
        rotated = SessionCodec(make_settings(SESSION_KEY=TEST_KEY, SESSION_RETIRED_KEYS=RETIRED_KEY))
        current = SessionCodec(make_settings(SESSION_KEY=TEST_KEY))
        assert current.loads(rotated.dumps(token_record)) == token_record


class TestRequestResponse:

    def test_missing_cookie_is_empty_session(self, codec):
        assert codec.decode(make_request()) == SessionRecord()

    def test_other_cookies_are_ignored(self, codec):
        assert codec.decode(make_request("theme=dark")) == SessionRecord()

    def test_invalid_cookie_is_absent(self, codec):
        assert codec.decode(make_request("googlegoauth=not-a-session")) is None

    def test_decode_reads_named_cookie(self, codec, token_record):
        request = make_request(f"theme=dark; googlegoauth={codec.dumps(token_record)}")
        assert codec.decode(request) == token_record

    def test_encode_sets_cookie_attributes(self, token_record):
        codec = SessionCodec(make_settings(
            SESSION_COOKIE_NAME="gate",
            SESSION_COOKIE_PATH="/app",
            SESSION_COOKIE_DOMAIN="example.com",
            SESSION_MAX_AGE_SECONDS=3600,
        ))
        response = Response()
        codec.encode(token_record, response)

        header = response.headers["set-cookie"]
        assert header.startswith("gate=")
        assert "Max-Age=3600" in header
        assert "Path=/app" in header
        assert "Domain=example.com" in header
        assert "HttpOnly" in header
        assert "Secure" in header
        assert "SameSite=lax" in header

    def test_delete_writes_negative_max_age(self, codec):
        response = Response()
        codec.delete(response)

        header = response.headers["set-cookie"]
        assert "Max-Age=-1" in header
        value = header.split(";", 1)[0].split("=", 1)[1]
        assert codec.loads(value) == SessionRecord()

    def test_cookie_headers_match_encode(self, codec, token_record):
        headers = codec.cookie_headers(token_record)
        assert len(headers) == 1
        assert headers[0].startswith("googlegoauth=")
        assert f"Max-Age={codec.max_age}" in headers[0]
