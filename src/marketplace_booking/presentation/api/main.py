"""FastAPI main application module."""

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import logging

from ...domain.exceptions import (
    BookingAccessDenied,
    BookingError,
    BookingNotFound,
    ExternalServiceError,
    InvalidLineItem,
    InvalidTransition,
    SlotConflict,
    SlotUnavailable,
    StaleBooking,
    ValidationError,
)
from ...infrastructure.logging import setup_logging_from_env
from ...infrastructure.services import initialize_services, shutdown_services
from .routes import health, bookings
from .config import get_settings
from .schemas.booking_schemas import ErrorResponse
from .middleware import RequestResponseLoggingMiddleware


logger = logging.getLogger(__name__)

ERROR_STATUS_CODES = {
    ValidationError: 422,
    InvalidLineItem: 400,
    BookingNotFound: 404,
    BookingAccessDenied: 403,
    SlotUnavailable: 409,
    SlotConflict: 409,
    StaleBooking: 409,
    InvalidTransition: 409,
    ExternalServiceError: 503,
}


def status_code_for(exc: BookingError) -> int:
    for error_type in type(exc).__mro__:
        if error_type in ERROR_STATUS_CODES:
            return ERROR_STATUS_CODES[error_type]
    return 400


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan management."""
    # Startup
    setup_logging_from_env()
    logger.info("Starting Marketplace Booking API")
    await initialize_services()

    yield

    # Shutdown
    logger.info("Shutting down Marketplace Booking API")
    await shutdown_services()


def add_exception_handlers(app: FastAPI) -> None:
    """Add custom exception handlers to the FastAPI application."""

    @app.exception_handler(BookingError)
    async def booking_error_handler(request: Request, exc: BookingError):
        """Translate booking errors into JSON responses."""
        status_code = status_code_for(exc)
        log_level = logging.ERROR if status_code >= 500 else logging.WARNING
        logger.log(
            log_level,
            f"{type(exc).__name__} on {request.url.path}: {exc.message}",
            extra={"error_code": exc.code, "response_status": status_code}
        )
        return JSONResponse(
            status_code=status_code,
            content=ErrorResponse(type=exc.code, detail=exc.message, details=exc.details).model_dump(mode="json")
        )

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        """Handle validation errors raised outside the booking error hierarchy."""
        logger.warning(f"Validation error on {request.url.path}: {str(exc)}")
        return JSONResponse(
            status_code=400,
            content=ErrorResponse(type="validation_error", detail=str(exc)).model_dump(mode="json")
        )


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Marketplace Booking Engine",
        description="API for reserving, pricing and managing local-service bookings",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )

    add_exception_handlers(app)

    app.add_middleware(RequestResponseLoggingMiddleware)

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=settings.allowed_methods,
        allow_headers=settings.allowed_headers,
    )

    # Include routers
    app.include_router(health.router, tags=["health"])
    app.include_router(
        bookings.router,
        prefix=f"{settings.api_prefix}/bookings",
        tags=["bookings"]
    )

    return app


# Create app instance
app = create_app()
