"""
Session Cookie Codec
====================

Serializes the authentication state (SessionRecord) into an encrypted,
integrity-protected cookie value and back.

Cookie format:
- Compact JWE, "dir" key management with A256GCM content encryption
- Protected header carries a "kid" naming the key that encrypted it, so
  retired keys keep decoding while the active key encrypts
- Plaintext is a JSON envelope: {"iat": <unix seconds>, "session": {...}}

Decoding never trusts the cookie: a tampered, malformed, expired or
unknown-key value decodes to None. Only unexpected failures raise
SessionCodecError.
"""

import json
import logging
import time
from typing import Dict, List, Optional

from cryptography.exceptions import InvalidTag
from jose import jwe
from jose.constants import ALGORITHMS
from jose.exceptions import JOSEError
from starlette.requests import Request
from starlette.responses import Response

from ..config import Settings, key_id
from ..models import SessionRecord
from .errors import SessionCodecError

logger = logging.getLogger(__name__)

# Lifetime written on deletion; browsers drop cookies with non-positive Max-Age.
DELETE_MAX_AGE = -1


class SessionCodec:
    """
    Encodes and decodes session cookies for one gate configuration.

    The codec holds no per-request state and is shared by all requests.
    """

    def __init__(self, settings: Settings):
        self.name = settings.SESSION_COOKIE_NAME
        self.path = settings.SESSION_COOKIE_PATH
        self.domain = settings.SESSION_COOKIE_DOMAIN
        self.max_age = settings.SESSION_MAX_AGE_SECONDS

        keys = settings.session_keys
        self._active_key = keys[0]
        self._active_kid = key_id(keys[0])
        self._keys: Dict[str, bytes] = {}
        for key in keys:
            self._keys.setdefault(key_id(key), key)

    # =========================================================================
    # Value Encoding
    # =========================================================================

    def dumps(self, record: SessionRecord, issued_at: Optional[float] = None) -> str:
        """
        Encrypt a session record into a cookie value.

        Args:
            record: Session record to store
            issued_at: Issue time in unix seconds (defaults to now)

        Returns:
            Compact JWE string safe to use as a cookie value
        """
        envelope = {
            "iat": int(issued_at if issued_at is not None else time.time()),
            "session": record.model_dump(mode="json", exclude_none=True),
        }
        plaintext = json.dumps(envelope, separators=(",", ":"), sort_keys=True)
        token = jwe.encrypt(
            plaintext,
            self._active_key,
            algorithm=ALGORITHMS.DIR,
            encryption=ALGORITHMS.A256GCM,
            kid=self._active_kid,
        )
        return token.decode("ascii") if isinstance(token, bytes) else token

    def loads(self, value: str, now: Optional[float] = None) -> Optional[SessionRecord]:
        """
        Authenticate, decrypt and validate a cookie value.

        Returns:
            The session record, or None if the value is tampered, malformed,
            expired or encrypted with an unknown key.

        Raises:
            SessionCodecError: On any other decoding failure
        """
        try:
            header = jwe.get_unverified_header(value)
            if not isinstance(header, dict):
                return None
            if header.get("alg") != ALGORITHMS.DIR or header.get("enc") != ALGORITHMS.A256GCM:
                logger.warning("Session cookie uses unexpected algorithms")
                return None

            key = self._keys.get(str(header.get("kid") or ""))
            if key is None:
                logger.warning("Session cookie encrypted with unknown key")
                return None

            plaintext = jwe.decrypt(value, key)
            envelope = json.loads(plaintext)
            if not isinstance(envelope, dict):
                return None

            issued_at = int(envelope["iat"])
            current = now if now is not None else time.time()
            if current - issued_at > self.max_age:
                logger.debug("Session cookie expired", extra={"issued_at": issued_at})
                return None

            return SessionRecord.model_validate(envelope["session"])

        except (JOSEError, InvalidTag, ValueError, KeyError, TypeError) as e:
            # ValueError covers JSON and pydantic validation errors
            logger.warning(f"Invalid session cookie: {type(e).__name__}")
            return None
        except Exception as e:
            logger.error(f"Failed to decode session cookie: {e}", exc_info=True)
            raise SessionCodecError("Failed to decode session cookie") from e

    # =========================================================================
    # Request / Response Helpers
    # =========================================================================

    def decode(self, request: Request) -> Optional[SessionRecord]:
        """
        Read the session from a request.

        A request without the cookie yields an empty record; an invalid
        cookie yields None.
        """
        value = request.cookies.get(self.name)
        if value is None:
            return SessionRecord()
        return self.loads(value)

    def encode(self, record: SessionRecord, response: Response) -> None:
        """Write a new session cookie valid for the configured max-age."""
        response.set_cookie(**self._cookie_kwargs(self.dumps(record), self.max_age))

    def delete(self, response: Response) -> None:
        """Overwrite the session cookie with an empty, already expired record."""
        response.set_cookie(**self._cookie_kwargs(self.dumps(SessionRecord()), DELETE_MAX_AGE))

    def cookie_headers(self, record: SessionRecord) -> List[str]:
        """
        Render the Set-Cookie header values for a record.

        Used when the response is produced by a downstream ASGI application
        and the cookie must be added to its headers.
        """
        carrier = Response()
        self.encode(record, carrier)
        return [
            value.decode("latin-1")
            for name, value in carrier.raw_headers
            if name == b"set-cookie"
        ]

    def _cookie_kwargs(self, value: str, max_age: int) -> dict:
        return {
            "key": self.name,
            "value": value,
            "max_age": max_age,
            "path": self.path,
            "domain": self.domain,
            "secure": True,
            "httponly": True,
            "samesite": "lax",
        }
