"""
FastAPI Relay Application Factory
=================================

This is the main entry point for the relay service that sits between an
internal backend and a third-party API.

Architecture:
    Backend A → Relay (this service) → Third-party API C

Routes:
    - /health       : Liveness check, never relayed
    - /proxy        : Backward-compatible relay entry point
    - /*            : Catch-all relay, any method

Environment Variables:
    - TARGET_URL: Third-party API base URL (required for relaying)
    - PORT: Listening port (default: 3000)
    - HOST: Bind address (default: 0.0.0.0)
    - HEADER_MODE: synthetic | transparent (default: synthetic)
    - API_KEY_HEADER: Credential header passed through (default: X-MBX-APIKEY)
    - UPSTREAM_TIMEOUT_SECONDS: Upstream call timeout (default: 30)
    - MAX_REDIRECTS: Redirect hops followed (default: 5)
    - LOG_LEVEL: Logging level (default: INFO)

Running the Service:
    Development:
        uvicorn relay_server.app.main:app --reload --host 0.0.0.0 --port 3000

    Production:
        uvicorn relay_server.app.main:app --host 0.0.0.0 --port 3000 --workers 4

    Direct:
        python -m relay_server.app.main
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Optional

import httpx
import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from relay_server.app.config import Settings, get_settings, validate_configuration
from relay_server.app.models import HealthResponse
from relay_server.app.proxy import proxy_router
from relay_server.app.proxy.error_map import internal_error
from relay_server.app.proxy.routes import CORS_HEADERS, AnyMethodEndpoint


HEALTH_METHODS = ["GET", "HEAD"]


# Configure structured JSON logging
def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure structured logging for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        format='{"timestamp": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", "message": "%(message)s", "module": "%(module)s", "function": "%(funcName)s"}',
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )


def create_upstream_client(
    settings: Settings,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    """
    Build the shared upstream client.

    Status codes are never raised as errors; the classifier sees them all.
    The per-phase timeout is backed by an overall deadline in send_upstream.

    Args:
        settings: Application settings (timeout, redirect limit, User-Agent)
        transport: Optional transport override (e.g. httpx.MockTransport)
    """
    return httpx.AsyncClient(
        follow_redirects=True,
        max_redirects=settings.MAX_REDIRECTS,
        timeout=httpx.Timeout(settings.UPSTREAM_TIMEOUT_SECONDS),
        headers={"User-Agent": settings.USER_AGENT},
        transport=transport,
    )


# Lifespan context manager for startup/shutdown
@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Startup tasks:
        - Configure logging
        - Report configuration problems (missing TARGET_URL)
        - Create the upstream HTTP client unless one was injected

    Shutdown tasks:
        - Close the upstream HTTP client it created
    """
    settings: Settings = app.state.settings

    setup_logging(settings.LOG_LEVEL)
    logger = logging.getLogger("relay_server.main")

    status = validate_configuration(settings)
    for error in status["errors"]:
        logger.error(error)
    for warning in status["warnings"]:
        logger.warning(warning)

    owns_client = getattr(app.state, "upstream_client", None) is None
    if owns_client:
        app.state.upstream_client = create_upstream_client(settings)

    logger.info(
        f"Relay server running on port {settings.PORT}",
        extra={
            "target_url": settings.TARGET_URL or "NOT SET - Please set TARGET_URL in .env",
            "header_mode": settings.HEADER_MODE.value,
        }
    )

    yield

    logger.info("Shutting down relay server")

    if owns_client:
        await app.state.upstream_client.aclose()
        app.state.upstream_client = None
        logger.info("Closed upstream client")


# Create FastAPI application
def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Application factory function.

    Args:
        settings: Settings to use; loaded from the environment when omitted

    Returns:
        FastAPI: Configured application instance
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="Relay Server",
        description="Identity-rewriting relay with upstream error normalization",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.upstream_client = None

    # Wildcard origin only, so the middleware never replaces the relay's
    # Access-Control-Allow-Origin: * with the caller's Origin.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Health check endpoint, registered ahead of the catch-all relay.
    # Wrapped so every method matches here and none falls through to the relay.
    async def health_check(request: Request) -> JSONResponse:
        """
        Health check endpoint.

        Answers retrieval-only requests; other methods get 405 and are never
        relayed upstream.
        """
        if request.method not in HEALTH_METHODS:
            return JSONResponse(
                status_code=405,
                content={"status": "ERROR", "message": "Method not allowed on /health"},
                headers={"Allow": ", ".join(HEALTH_METHODS), **CORS_HEADERS},
            )
        health = HealthResponse(status="OK", message="Proxy server is running")
        return JSONResponse(content=health.model_dump(), headers=CORS_HEADERS)

    app.add_route("/health", AnyMethodEndpoint(health_check), include_in_schema=False)

    # Relay router: /proxy and the catch-all
    app.include_router(proxy_router)

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """
        Turn any failure that escaped the relay into an INTERNAL_ERROR body.
        """
        logger = logging.getLogger("relay_server.main")
        logger.error(
            f"Unhandled exception: {str(exc)}",
            extra={
                "path": request.url.path,
                "method": request.method,
                "exception_type": type(exc).__name__
            },
            exc_info=True
        )

        return JSONResponse(
            status_code=500,
            content=internal_error(str(exc)).to_payload(),
            headers=CORS_HEADERS,
        )

    return app


# Create app instance for uvicorn
app = create_app()


if __name__ == "__main__":
    settings = get_settings()

    uvicorn.run(
        "relay_server.app.main:app",
        host=settings.HOST,
        port=settings.PORT,
        log_level=settings.LOG_LEVEL.lower()
    )
