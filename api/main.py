"""
Synexa FastAPI Application.

Main application that provides the REST API for routines, device commands,
recurrence helpers and reminders. Includes automatic OpenAPI
documentation, error handling, metrics and health checks.
"""

import os
import time
from datetime import datetime, timezone
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from engine.errors import NotFoundError, RecurrenceFormatError
from .dependencies import engine, check_database_health, connector_registry
from .models import Base
from .schemas import HealthResponse, ErrorResponse
from .routes import routines, devices, recurrence, reminders

# Import observability components
from observability.logging import (
    api_logger, set_request_context, clear_request_context, generate_request_id
)
from observability.metrics import synexa_metrics

# Environment configuration
ENVIRONMENT = os.getenv("ENVIRONMENT", "development")
VERSION = os.getenv("VERSION", "1.0.0")
DEBUG = os.getenv("DEBUG", "false").lower() == "true"

logger = api_logger


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    logger.info(f"Starting Synexa API v{VERSION}")
    logger.info(f"Environment: {ENVIRONMENT}")

    Base.metadata.create_all(engine)

    if not await check_database_health():
        logger.error("Database connection failed on startup")
        raise RuntimeError("Database connection failed")

    logger.info(f"Device connectors: {', '.join(connector_registry.providers()) or 'none'}")
    logger.info("Application startup complete")
    yield

    # Shutdown
    logger.info("Shutting down Synexa API")


# Create FastAPI application
app = FastAPI(
    title="Synexa",
    description="""
    Scheduling core of the Synexa personal assistant.

    ## Features

    * **Routines**: Ordered smart-home routines with per-step failure isolation
    * **Devices**: Provider connectors (Philips Hue) behind one command interface
    * **Recurrence**: Daily, weekly, monthly and yearly rules with next-occurrence preview
    * **Reminders**: Recurring reminders sent by the scheduler service

    ## Authentication

    Send `Authorization: Bearer <user-id>` with every request.
    """,
    version=VERSION,
    lifespan=lifespan,
    openapi_tags=[
        {"name": "routines", "description": "Routine management and execution"},
        {"name": "devices", "description": "Device registration and direct commands"},
        {"name": "recurrence", "description": "Recurrence rule parsing and preview"},
        {"name": "reminders", "description": "Reminder creation and processing"},
        {"name": "health", "description": "System health and monitoring endpoints"}
    ]
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if DEBUG else ["https://localhost", "https://127.0.0.1"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error_response(request: Request, status_code: int, error: str, message, details=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(ErrorResponse(
            error=error,
            message=message,
            details=details,
            request_id=getattr(request.state, 'request_id', None),
            timestamp=datetime.now(timezone.utc)
        ))
    )


# Custom exception handlers
@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Handle HTTP exceptions with consistent error format."""
    response = _error_response(request, exc.status_code, exc.__class__.__name__, exc.detail)
    if exc.headers:
        response.headers.update(exc.headers)
    return response


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return _error_response(
        request,
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "ValidationError",
        "Request validation failed",
        details={"errors": jsonable_encoder(exc.errors())}
    )


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    """Unknown or foreign routines and devices."""
    return _error_response(
        request,
        status.HTTP_404_NOT_FOUND,
        exc.__class__.__name__,
        str(exc),
        details={"resource_id": exc.resource_id} if exc.resource_id else None
    )


@app.exception_handler(RecurrenceFormatError)
async def recurrence_format_handler(request: Request, exc: RecurrenceFormatError):
    return _error_response(request, status.HTTP_422_UNPROCESSABLE_ENTITY, "RecurrenceFormatError", str(exc))


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    logger.exception("Unhandled exception in API request")
    return _error_response(
        request,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "InternalServerError",
        "An unexpected error occurred. Please try again later.",
        details={"exception_type": exc.__class__.__name__} if DEBUG else None
    )


# Request middleware for logging, metrics, and request IDs
@app.middleware("http")
async def request_middleware(request: Request, call_next):
    """Add request ID, logging, and metrics for all requests."""
    clear_request_context()
    request_id = generate_request_id()
    request.state.request_id = request_id
    set_request_context(request_id=request_id)

    start_time = time.time()
    status_code = 500
    try:
        response = await call_next(request)
        status_code = response.status_code
        response.headers["X-Request-ID"] = request_id
        return response
    finally:
        duration = time.time() - start_time
        route = request.scope.get("route")
        endpoint = getattr(route, "path", request.url.path)
        synexa_metrics.record_http_request(request.method, endpoint, status_code, duration)
        logger.api_request(
            method=request.method,
            path=request.url.path,
            status_code=status_code,
            duration_ms=duration * 1000
        )


# Include routers
app.include_router(routines.router)
app.include_router(devices.router)
app.include_router(recurrence.router)
app.include_router(reminders.router)


# Health check endpoints
@app.get("/health", response_model=HealthResponse, tags=["health"])
async def health_check():
    """
    System health check.

    Reports database reachability and the registered device connectors.
    Returns 503 when the database is unavailable.
    """
    database_ok = await check_database_health()
    report = HealthResponse(
        status="healthy" if database_ok else "unhealthy",
        timestamp=datetime.now(timezone.utc),
        version=VERSION,
        database=database_ok,
        connectors=connector_registry.providers()
    )
    if not database_ok:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content=jsonable_encoder(report)
        )
    return report


@app.get("/metrics", tags=["health"], include_in_schema=False)
async def metrics():
    """Prometheus exposition of the service metrics."""
    return Response(content=synexa_metrics.get_metrics(), media_type=synexa_metrics.get_content_type())


# Root endpoint
@app.get("/", include_in_schema=False)
async def root():
    """Root endpoint with basic service information."""
    return {
        "service": "Synexa",
        "version": VERSION,
        "environment": ENVIRONMENT,
        "status": "running",
        "docs_url": "/docs",
        "health_url": "/health"
    }


if __name__ == "__main__":
    # For local development
    import uvicorn

    uvicorn.run(
        "api.main:app",
        host="0.0.0.0",
        port=8080,
        reload=DEBUG,
        log_level="info"
    )
