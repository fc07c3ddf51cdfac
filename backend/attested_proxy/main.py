"""
Attested Proxy Application Entry Point

FastAPI application main entry: verifies the secure session before serving, wires
the proxy service, and registers the catch-all proxy route.
"""

import logging
import traceback
from contextlib import asynccontextmanager
from functools import partial

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from attested_proxy.api import proxy_router
from attested_proxy.common.errors import AppError, error_body
from attested_proxy.config import get_settings
from attested_proxy.logging_config import setup_logging
from attested_proxy.scheduler import shutdown_scheduler, start_scheduler
from attested_proxy.services import ProxyService, SecureSession
from attested_proxy.transport import create_transport

logger = logging.getLogger(__name__)

# Initialize logging configuration
setup_logging()


# Application Lifecycle Management
@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application Lifecycle Management

    Verify the secure session on startup; a verification failure aborts startup so
    no connection is ever accepted. Release transports on shutdown.
    """
    # Startup
    settings = get_settings()
    session = SecureSession(partial(create_transport, settings))
    await session.initialize()

    app.state.secure_session = session
    app.state.proxy_service = ProxyService(
        session,
        api_key=settings.UPSTREAM_API_KEY,
        reset_interval_ms=settings.reset_interval_ms,
        reset_on_request=settings.RESET_MODE == "request",
    )
    if settings.UPSTREAM_API_KEY is None:
        logger.warning("UPSTREAM_API_KEY not set, requests without Authorization are forwarded as-is")

    if settings.RESET_MODE == "background":
        start_scheduler(session, settings.RESET_INTERVAL_SECONDS)
    logger.info(f"Attested proxy ready, forwarding to {session.get_base_url()}")

    yield

    # Shutdown
    shutdown_scheduler()
    app.state.proxy_service = None
    await session.aclose()
    logger.info("Attested proxy shutdown complete")


# Create FastAPI application
settings = get_settings()

app = FastAPI(
    title=settings.APP_NAME,
    description="Reverse proxy to an attestation-verified inference API",
    version="0.1.0",
    lifespan=lifespan,
    # Every path belongs to the upstream
    docs_url=None,
    redoc_url=None,
    openapi_url=None,
)


# Global Exception Handler
@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    """
    Handle application custom exceptions
    """
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(),
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """
    Handle uncaught exceptions
    """
    logger.error(
        "Uncaught exception: %s\nPath: %s\nTraceback:\n%s",
        str(exc),
        request.url.path,
        traceback.format_exc(),
    )
    return JSONResponse(
        status_code=500,
        content=error_body(str(exc)),
    )


# Register Proxy Router
app.include_router(proxy_router)


def run():
    """
    Console entry point.

    uvicorn exits with a non-zero status when the lifespan startup fails.
    """
    import uvicorn

    uvicorn.run(
        "attested_proxy.main:app",
        host=settings.HOST,
        port=settings.PORT,
        log_config=None,
    )


if __name__ == "__main__":
    run()
