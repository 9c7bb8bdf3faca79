"""
FastAPI Application Factory

Creates and configures the API application: middleware, routers and the
mapping from domain errors to HTTP responses.
"""

from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
import structlog

from fleetops.aggregation.errors import InvalidBounds, InvalidKey, NotFound
from fleetops.config import Settings, get_settings
from fleetops.serving.api.middleware import (
    RequestLoggingMiddleware,
    RateLimitMiddleware,
    SecurityHeadersMiddleware,
)
from fleetops.serving.api.routes import (
    admin_router,
    analytics_router,
    bookings_router,
    dashboard_router,
    health_router,
    maintenance_router,
    vehicles_router,
)
from fleetops.services.errors import InvalidRecord, RecordNotFound

logger = structlog.get_logger(__name__)


async def aggregate_out_of_sync_handler(request: Request, exc: NotFound) -> JSONResponse:
    logger.error(
        "Aggregate out of sync with record store",
        aggregate=exc.aggregate,
        path=request.url.path,
        error=str(exc),
    )
    return JSONResponse(
        status_code=409,
        content={"error": "aggregate_out_of_sync", "detail": str(exc), "remedy": "POST /api/v1/admin/backfill"},
    )


async def invalid_bounds_handler(request: Request, exc: ValueError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": "invalid_bounds", "detail": str(exc)})


async def record_not_found_handler(request: Request, exc: RecordNotFound) -> JSONResponse:
    return JSONResponse(status_code=404, content={"error": "not_found", "detail": str(exc)})


async def invalid_record_handler(request: Request, exc: InvalidRecord) -> JSONResponse:
    return JSONResponse(status_code=422, content={"error": "invalid_record", "detail": str(exc)})


def create_api_app(settings: Optional[Settings] = None, lifespan=None) -> FastAPI:
    """
    Create and configure FastAPI application.

    Args:
        settings: Settings to use instead of the cached ones
        lifespan: Lifespan context; the caller is responsible for putting an
            AggregateRegistry on ``app.state.registry``

    Returns:
        Configured FastAPI app instance
    """
    settings = settings or get_settings()

    # Create FastAPI application
    app = FastAPI(
        title="Fleet Operations API",
        description="Vehicle rental fleet dashboard: bookings, maintenance, and windowed financial metrics",
        version=settings.version,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # Add CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.security.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Add compression
    app.add_middleware(GZipMiddleware, minimum_size=1000)

    # Custom middleware
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        RateLimitMiddleware,
        max_requests=settings.security.rate_limit_requests,
        window_seconds=settings.security.rate_limit_window_seconds,
    )

    # Domain errors to HTTP responses
    app.add_exception_handler(NotFound, aggregate_out_of_sync_handler)
    app.add_exception_handler(InvalidBounds, invalid_bounds_handler)
    app.add_exception_handler(InvalidKey, invalid_bounds_handler)
    app.add_exception_handler(RecordNotFound, record_not_found_handler)
    app.add_exception_handler(InvalidRecord, invalid_record_handler)

    # API routes
    app.include_router(health_router, prefix="/api/v1", tags=["Health"])
    app.include_router(vehicles_router, prefix="/api/v1/vehicles", tags=["Vehicles"])
    app.include_router(bookings_router, prefix="/api/v1/bookings", tags=["Bookings"])
    app.include_router(maintenance_router, prefix="/api/v1/maintenance", tags=["Maintenance"])
    app.include_router(dashboard_router, prefix="/api/v1/dashboard", tags=["Dashboard"])
    app.include_router(analytics_router, prefix="/api/v1/analytics", tags=["Analytics"])
    app.include_router(admin_router, prefix="/api/v1/admin", tags=["Admin"])

    @app.get("/api/v1/info")
    async def api_info():
        """API information endpoint."""
        return {
            "name": "Fleet Operations API",
            "version": settings.version,
            "environment": settings.app_env,
            "documentation": "/docs",
        }

    return app
