"""FastAPI application initialization and configuration."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from .core.config import settings
from .core.database import check_db, close_db, init_db
from .core.exceptions import (
    ProblemDetailsException,
    generic_exception_handler,
    problem_details_handler,
    request_validation_handler,
)
from .core.middleware import setup_middleware
from .core.observability import (
    instrument_fastapi,
    instrument_sqlalchemy,
    setup_metrics,
    setup_structured_logging,
    setup_tracing,
)
from .routers import (
    alert_router,
    booking_router,
    checkin_router,
    damage_router,
    deposit_router,
    health_router,
    hold_router,
    metrics_router,
    payment_router,
    vehicle_router,
)
from .schemas.health import HealthStatus, ReadinessResponse
from .workers.manager import worker_manager

SERVICE_NAME = "rental-core-api"

# Configure structured logging
setup_structured_logging()

# Configure traditional logging for compatibility
logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan context manager.

    Sets up observability, the database and the notification retry worker
    on startup, and tears them down in reverse on shutdown.
    """
    logger.info("Starting rental API", extra={"environment": settings.environment})

    try:
        setup_tracing(SERVICE_NAME)
        setup_metrics(SERVICE_NAME)
        instrument_sqlalchemy()
        logger.info("Observability setup completed")

        await init_db()
        logger.info("Database initialized successfully")

        await worker_manager.start_all()
        logger.info("Background workers started successfully")
    except Exception as e:
        logger.error(f"Failed to initialize application: {e}")
        raise

    logger.info("Application startup complete")

    yield

    logger.info("Shutting down rental API")

    try:
        await worker_manager.stop_all()
        logger.info("Background workers stopped")

        await close_db()
        logger.info("Database connections closed")
    except Exception as e:
        logger.error(f"Error during application cleanup: {e}")

    logger.info("Application shutdown complete")


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        FastAPI: Configured FastAPI application instance
    """
    app = FastAPI(
        title="Vehicle Rental API",
        description=(
            "RPC-over-HTTP API for vehicle rentals: reservation holds, the booking "
            "lifecycle, check-in, handover readiness and the deposit ledger"
        ),
        version="1.0.0",
        debug=settings.debug,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "Idempotent-Replayed", "traceparent", "tracestate"],
    )

    setup_middleware(app, enable_logging=True)

    instrument_fastapi(app)

    app.add_exception_handler(ProblemDetailsException, problem_details_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    @app.get(
        "/health",
        status_code=status.HTTP_200_OK,
        tags=["Health"],
        summary="Health Check",
        description="Check if the service is up",
        response_model=dict,
    )
    async def health_check():
        return {
            "status": "healthy",
            "service": SERVICE_NAME,
            "version": "1.0.0",
            "environment": settings.environment,
        }

    @app.get(
        "/ready",
        tags=["Health"],
        summary="Readiness Check",
        description="Check that the database answers and report background worker state",
        response_model=ReadinessResponse,
    )
    async def readiness_check() -> JSONResponse:
        """Returns 503 when the database cannot be reached."""
        try:
            await check_db()
            database = "ok"
        except (SQLAlchemyError, OSError) as e:
            logger.warning("Readiness database check failed", extra={"error": str(e)})
            database = "unavailable"

        ready = database == "ok"
        response_data = ReadinessResponse(
            status=HealthStatus.READY if ready else HealthStatus.UNAVAILABLE,
            service=SERVICE_NAME,
            checks={"database": database},
            workers=worker_manager.get_worker_status(),
        )
        return JSONResponse(
            status_code=status.HTTP_200_OK if ready else status.HTTP_503_SERVICE_UNAVAILABLE,
            content=response_data.model_dump(mode="json"),
        )

    @app.get(
        "/info",
        status_code=status.HTTP_200_OK,
        tags=["Info"],
        summary="Service Information",
        response_model=dict,
    )
    async def service_info():
        return {
            "service": SERVICE_NAME,
            "version": "1.0.0",
            "environment": settings.environment,
            "reservation": {
                "hold_ttl_minutes": settings.hold_ttl_minutes,
                "minimum_driver_age": settings.minimum_driver_age,
                "arrival_window_minutes": settings.arrival_window_minutes,
            },
            "features": {
                "authentication": True,
                "idempotency": True,
                "tracing": True,
                "problem_details": True,
                "notifications": settings.notification_webhook_url is not None,
            },
        }

    app.include_router(health_router)
    app.include_router(vehicle_router)
    app.include_router(hold_router)
    app.include_router(booking_router)
    app.include_router(checkin_router)
    app.include_router(deposit_router)
    app.include_router(damage_router)
    app.include_router(payment_router)
    app.include_router(alert_router)
    app.include_router(metrics_router)

    logger.info("FastAPI application created and configured")

    return app


# Create the application instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "rental_core.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
        access_log=True,
    )
