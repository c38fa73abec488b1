"""
OAuth Gate Application Factory
==============================

Entry point serving a protected FastAPI application behind the OAuth gate.

Architecture:
    Browser → OAuthGate (login, callback, session cookie) → protected app

Environment Variables Required:
    - SESSION_KEY: 64-character hex string used to encrypt session cookies
    - OAUTH_CLIENT_ID: OAuth client ID
    - OAUTH_CLIENT_SECRET: OAuth client secret
    - REQUIRE_DOMAIN: Optional email domain users must belong to
    - LOG_LEVEL: Logging level (default: INFO)

Running the Service:
    Development:
        uvicorn authgate.main:create_app --factory --reload --port 8080

    Direct:
        python -m authgate.main
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Optional

import httpx
import uvicorn
from fastapi import FastAPI
from fastapi.responses import PlainTextResponse

from authgate.auth.gate import OAuthGate
from authgate.config import Settings, get_settings


def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure structured logging for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format='{"timestamp": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", "message": "%(message)s", "module": "%(module)s", "function": "%(funcName)s"}',
        handlers=[logging.StreamHandler(sys.stdout)]
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger = logging.getLogger("authgate.main")
    logger.info("Starting gated service")
    yield
    logger.info("Gated service shutdown complete")


def create_protected_app() -> FastAPI:
    """Application served once the user is logged in."""
    app = FastAPI(
        title="Gated Service",
        version="1.0.0",
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
    )

    @app.get("/", response_class=PlainTextResponse)
    async def index() -> str:
        return "Hello"

    return app


def create_app(
    settings: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> OAuthGate:
    """
    Application factory function.

    Settings are loaded and validated here, so a missing or malformed
    SESSION_KEY stops the process before it serves any request.

    Returns:
        OAuthGate wrapping the protected application
    """
    settings = settings or get_settings()

    logging.getLogger("authgate.main").info(
        "Configured OAuth gate",
        extra={
            "require_domain": settings.REQUIRE_DOMAIN or None,
            "cookie_name": settings.SESSION_COOKIE_NAME,
            "scopes": settings.scopes_list,
        },
    )

    return OAuthGate(create_protected_app(), settings=settings, transport=transport)


if __name__ == "__main__":
    settings = get_settings()
    setup_logging(settings.LOG_LEVEL)

    uvicorn.run(
        create_app(settings),
        host=settings.GATE_HOST,
        port=settings.GATE_PORT,
        log_level=settings.LOG_LEVEL.lower(),
    )
