"""FastAPI application for Courier."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from courier import __version__
from courier.config import Settings
from courier.exceptions import (
    CourierError,
    DeliveryError,
    DeliveryStateError,
    NotFoundError,
    QueueFullError,
    ValidationError,
)
from courier.logging import configure_logging, get_logger
from courier.service import WebhookService

from .router import router, set_service

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application lifespan.

    Creates and initializes the WebhookService on startup (loading stored
    state and starting the dispatcher), and drains it on shutdown.
    """
    settings: Settings = app.state.settings

    configure_logging(level=settings.log_level, format=settings.log_format)
    logger.info(
        "Starting Courier API",
        log_level=settings.log_level,
        log_format=settings.log_format,
        data_dir=settings.data_dir,
    )

    service = WebhookService.create(settings)
    await service.initialize()
    set_service(service)

    yield

    await service.close()
    set_service(None)


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create a FastAPI application.

    Args:
        settings: Optional settings. Uses environment if None.

    Returns:
        Configured FastAPI application.

    Example:
        ```python
        from courier.api import create_app

        app = create_app()
        # Run with: uvicorn courier.api:app --reload
        ```
    """
    if settings is None:
        settings = Settings()

    app = FastAPI(
        title="Courier",
        description="Signed webhook delivery with retries.",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.settings = settings

    if settings.cors_enabled:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_allow_origins,
            allow_methods=settings.cors_allow_methods,
            allow_headers=settings.cors_allow_headers,
        )

    # Register exception handlers; ConfigError is a ValidationError
    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
        """Handle validation and config errors with 400 status."""
        logger.warning(
            "Validation error", field=exc.field, error=exc.message, path=str(request.url)
        )
        return JSONResponse(status_code=400, content=exc.to_dict())

    @app.exception_handler(NotFoundError)
    async def not_found_error_handler(request: Request, exc: NotFoundError) -> JSONResponse:
        """Handle not found errors with 404 status."""
        logger.info(
            "Resource not found",
            resource_type=exc.resource_type,
            resource_id=exc.resource_id,
            path=str(request.url),
        )
        return JSONResponse(status_code=404, content=exc.to_dict())

    @app.exception_handler(DeliveryStateError)
    async def delivery_state_error_handler(
        request: Request, exc: DeliveryStateError
    ) -> JSONResponse:
        """Handle operations refused by delivery state with 409 status."""
        logger.info(
            "Delivery state conflict",
            delivery_id=exc.delivery_id,
            status=exc.status,
            path=str(request.url),
        )
        return JSONResponse(status_code=409, content=exc.to_dict())

    @app.exception_handler(QueueFullError)
    async def queue_full_error_handler(request: Request, exc: QueueFullError) -> JSONResponse:
        """Handle a full event queue with 503 status."""
        logger.warning("Event queue full", capacity=exc.capacity, path=str(request.url))
        return JSONResponse(
            status_code=503,
            content=exc.to_dict(),
            headers={"Retry-After": "1"},
        )

    @app.exception_handler(DeliveryError)
    async def delivery_error_handler(request: Request, exc: DeliveryError) -> JSONResponse:
        """Handle failed outbound calls with 502 status."""
        logger.warning(
            "Outbound call failed",
            error=exc.message,
            upstream_status=exc.status_code,
            path=str(request.url),
        )
        return JSONResponse(status_code=502, content=exc.to_dict())

    @app.exception_handler(CourierError)
    async def courier_error_handler(request: Request, exc: CourierError) -> JSONResponse:
        """Handle all other Courier errors with 500 status."""
        logger.error("Courier error", error=exc.message, code=exc.code, path=str(request.url))
        return JSONResponse(status_code=500, content=exc.to_dict())

    app.include_router(router, prefix="/api/v1")

    return app


# Default app instance for uvicorn
app = create_app()
