"""FastAPI application entry point.

This module creates and configures the FastAPI application, including:
- Exception handlers for API errors
- API v1 router mounting
- Health check endpoint
"""

import logging

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from socialstream.api.v1.router import router as v1_router
from socialstream.core.config import settings
from socialstream.core.errors import APIError, InternalError
from socialstream.core.rate_limiting import limiter, rate_limit_exceeded_handler
from socialstream.core.responses import ErrorDetail, ErrorResponse

logger = structlog.get_logger()


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Middleware to add security headers to all responses.

    Headers added:
    - X-Frame-Options / frame-ancestors: Prevents clickjacking
    - X-Content-Type-Options: Prevents MIME sniffing
    - Referrer-Policy: Keeps full callback URLs (with codes) out of referrers
    - Cache-Control: Callback redirects and session responses are never cached
    - Content-Security-Policy: API returns no HTML
    - Strict-Transport-Security: Forces HTTPS (production only)
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        """Add security headers to response."""
        response = await call_next(request)

        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"

        if request.url.path.startswith("/api/"):
            response.headers["Cache-Control"] = "no-store, max-age=0"

        response.headers["Content-Security-Policy"] = (
            "default-src 'none'; frame-ancestors 'none'"
        )

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

    Converts FastAPI's validation errors to the standard error envelope.

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

    return api_error_handler(request, InternalError())


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance.
    """
    logging.basicConfig(level=settings.log_level.upper())

    app = FastAPI(
        title="Socialstream API",
        version="1.0.0",
        description="Social login and connected accounts",
    )

    # Middleware order: Starlette uses LIFO, so the LAST added runs FIRST.
    # CORS must run first to handle preflight requests, so add it last.
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Accept", "Authorization", "X-Request-ID"],
    )

    # Order matters: specific handlers first, then catch-all
    app.add_exception_handler(APIError, api_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    app.add_exception_handler(Exception, internal_error_handler)

    app.state.limiter = limiter

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


# Used by uvicorn: uvicorn socialstream.main:app
app = create_app()
