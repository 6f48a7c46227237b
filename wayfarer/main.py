"""Wayfarer FastAPI Application.

Main entry point for the backend API server::

    uvicorn wayfarer.main:app
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import asdict
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from wayfarer import __version__
from wayfarer.api import ApiError, router
from wayfarer.config import Settings
from wayfarer.models import AppError, ErrorCode
from wayfarer.services.container import ServiceContainer, build_services

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    datefmt="%H:%M:%S",
)

logger = logging.getLogger(__name__)


def error_response(
    request: Request,
    status_code: int,
    code: ErrorCode,
    message: str,
    user_message: str,
    headers: Optional[dict[str, str]] = None,
) -> JSONResponse:
    """Build the error envelope, carrying any rate-limit headers for this request."""
    merged = {**getattr(request.state, "rate_limit_headers", {}), **(headers or {})}
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "error": AppError(code=code, message=message, user_message=user_message).model_dump(mode="json"),
        },
        headers=merged,
    )


async def run_housekeeping(services: ServiceContainer, interval: float) -> None:
    """Periodically drop expired cache entries and idle rate-limit windows."""
    while True:
        await asyncio.sleep(interval)
        services.housekeeping()


def create_app(
    settings: Optional[Settings] = None,
    services: Optional[ServiceContainer] = None,
) -> FastAPI:
    """Build the application.

    Args:
        settings: Configuration; read from the environment when omitted.
        services: Pre-built service container (tests inject fakes here).
    """
    if services is None:
        settings = settings or Settings.from_env()
        services = build_services(settings)
    settings = services.settings

    logging.getLogger("wayfarer").setLevel(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan handler."""
        # Startup
        housekeeping = asyncio.create_task(
            run_housekeeping(services, settings.housekeeping_interval_seconds)
        )
        logger.info("[STARTUP] Wayfarer API ready")
        yield
        # Shutdown
        housekeeping.cancel()
        try:
            await housekeeping
        except asyncio.CancelledError:
            pass
        await services.close()

    app = FastAPI(
        title="Wayfarer API",
        description="Travel itinerary planning backend",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.services = services

    # CORS configuration
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-RateLimit-Limit", "X-RateLimit-Remaining", "X-RateLimit-Reset", "Retry-After"],
    )

    @app.middleware("http")
    async def attach_rate_limit_headers(request: Request, call_next):
        response = await call_next(request)
        for name, value in getattr(request.state, "rate_limit_headers", {}).items():
            response.headers.setdefault(name, value)
        return response

    # Global exception handlers
    @app.exception_handler(ApiError)
    async def api_error_handler(request: Request, exc: ApiError):
        return error_response(
            request, exc.status_code, exc.code, exc.message, exc.user_message, exc.headers
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Handle request validation errors."""
        return error_response(
            request,
            400,
            ErrorCode.VALIDATION_ERROR,
            str(exc),
            "Invalid request format. Please check your input.",
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Handle unexpected errors."""
        logger.exception(f"[API] Unhandled error on {request.url.path}")
        return error_response(
            request,
            500,
            ErrorCode.API_ERROR,
            "Internal server error",
            "Something went wrong. Please try again.",
        )

    # Include API routes
    app.include_router(router, prefix="/api")

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "version": __version__,
            "cache": asdict(services.cache.stats()),
        }

    return app


app = create_app()
