"""FastAPI application entry point.

This module creates and configures the FastAPI application, including:
- Lifespan: expired link sweeper, draining of in-flight email sends
- Exception handlers for API errors
- API v1 router mounting
- Health check endpoint
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from templink.api.v1.router import router as v1_router
from templink.core.config import settings
from templink.core.database import async_session_factory
from templink.core.errors import APIError
from templink.core.rate_limiting import limiter, rate_limit_exceeded_handler
from templink.core.responses import ErrorDetail, ErrorResponse
from templink.services.expired_link_sweeper import ExpiredLinkSweeper
from templink.services.temporary_link_issuer import get_link_issuer

logger = structlog.get_logger()


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Middleware to add security headers to all responses.

    Headers added:
    - X-Frame-Options: Prevents clickjacking attacks
    - X-Content-Type-Options: Prevents MIME sniffing
    - Referrer-Policy: Link tokens travel in the path, never leak them
    - Cache-Control: Prevents caching of API responses
    - Strict-Transport-Security: Forces HTTPS (production only)
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        """Add security headers to response."""
        response = await call_next(request)

        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "no-referrer"

        if request.url.path.startswith("/api/"):
            response.headers["Cache-Control"] = "no-store, max-age=0"

        # HSTS only in production (assumes HTTPS via reverse proxy)
        if settings.environment == "production":
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains"
            )

        return response


def api_error_handler(_request: Request, exc: APIError) -> JSONResponse:
    """Handle custom API errors.

    Args:
        request: The incoming request.
        exc: The APIError that was raised.

    Returns:
        JSONResponse with error envelope and appropriate status code.
    """
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=ErrorDetail(
                code=exc.code,
                message=exc.message,
                details=exc.details,
            )
        ).model_dump(),
    )


def validation_error_handler(
    _request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Handle Pydantic validation errors from FastAPI.

    Args:
        request: The incoming request.
        exc: The RequestValidationError from Pydantic.

    Returns:
        JSONResponse with VALIDATION_ERROR code and field-level details.
    """
    return JSONResponse(
        status_code=400,
        content=ErrorResponse(
            error=ErrorDetail(
                code="VALIDATION_ERROR",
                message="Request validation failed",
                details=[
                    {"loc": list(e["loc"]), "msg": e["msg"], "type": e["type"]}
                    for e in exc.errors()
                ],
            )
        ).model_dump(),
    )


def internal_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unhandled exceptions.

    Returns 500 INTERNAL_ERROR without exposing stack traces.

    Args:
        request: The incoming request.
        exc: The unhandled exception.

    Returns:
        JSONResponse with generic error message (500).
    """
    logger.exception("Unhandled exception", exc_info=exc, path=str(request.url.path))

    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error=ErrorDetail(
                code="INTERNAL_ERROR",
                message="An unexpected error occurred",
            )
        ).model_dump(),
    )


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    """Start the expired link sweeper; drain pending sends on shutdown."""
    sweeper: ExpiredLinkSweeper | None = None
    if settings.expired_link_sweep_enabled:
        sweeper = ExpiredLinkSweeper(
            async_session_factory,
            interval_seconds=settings.expired_link_sweep_interval_seconds,
        )
        sweeper.start()

    yield

    if sweeper is not None:
        await sweeper.stop()
    issuer = await get_link_issuer()
    if issuer.pending_dispatches:
        logger.info("Waiting for email sends", pending=issuer.pending_dispatches)
    await issuer.wait_for_dispatches()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance.
    """
    app = FastAPI(
        title="Templink API",
        version="1.0.0",
        description="Account activation and password reset links",
        lifespan=lifespan,
    )

    logging.getLogger("templink").setLevel(settings.log_level.upper())

    app.add_middleware(SecurityHeadersMiddleware)

    # Register exception handlers
    # Order matters: specific handlers first, then catch-all
    app.add_exception_handler(APIError, api_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    app.add_exception_handler(Exception, internal_error_handler)

    app.state.limiter = limiter

    # Include v1 router at /api/v1
    app.include_router(v1_router, prefix="/api/v1")

    # Health check endpoint (outside versioned API)
    @app.get("/health")
    def health_check() -> dict:
        """Health check endpoint for monitoring.

        Returns:
            {"status": "healthy"} if service is running.
        """
        return {"status": "healthy"}

    return app


# Create the application instance
# Used by uvicorn: uvicorn templink.main:app
app = create_app()
