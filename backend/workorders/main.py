"""
Main FastAPI application.

WHY: This is the entry point for the application. It configures logging,
middleware, routes, exception handlers, and the notification lifecycle.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from workorders.core.config import get_notification_recipients, settings
from workorders.core.exceptions import AppException
from workorders.core.exception_handlers import (
    app_exception_handler,
    validation_exception_handler,
    http_exception_handler,
    generic_exception_handler,
)
from workorders.middleware import RequestContextMiddleware, RequestIdFilter
from workorders.api import attachments, comments, tickets
from workorders.services.dispatcher import get_dispatcher

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s [%(request_id)s] %(name)s: %(message)s"

# Seconds to wait for in-flight notifications at shutdown
SHUTDOWN_DRAIN_TIMEOUT = 10.0


def configure_logging() -> None:
    """
    Configure the root logger from LOG_LEVEL.

    WHY: Every record carries the request ID, including those logged by
    detached notification tasks after the response has gone out.
    """
    handler = logging.StreamHandler()
    handler.addFilter(RequestIdFilter())
    handler.setFormatter(logging.Formatter(LOG_FORMAT))

    root = logging.getLogger()
    root.setLevel(settings.LOG_LEVEL.upper())
    if not any(isinstance(f, RequestIdFilter) for h in root.handlers for f in h.filters):
        root.addHandler(handler)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan.

    WHY: Recipient lists are parsed at startup so a bad configuration fails
    before serving. At shutdown, in-flight notifications get a bounded
    chance to finish.
    """
    recipients = get_notification_recipients()
    logger.info(
        f"Notification recipients: {len(recipients.notify)} normal, "
        f"{len(recipients.emergency)} emergency"
    )
    yield
    await get_dispatcher().drain(timeout=SHUTDOWN_DRAIN_TIMEOUT)


def create_app() -> FastAPI:
    """
    Create and configure FastAPI application.

    WHY: Factory pattern allows easier testing with different configurations.

    Returns:
        Configured FastAPI application instance
    """
    configure_logging()

    app = FastAPI(
        title=settings.PROJECT_NAME,
        description="Work order ticket lifecycle API",
        version=settings.VERSION,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json",
        lifespan=lifespan,
    )

    # Register exception handlers
    # WHY: Every error leaves as the same JSON body with a stable "code"
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    # Request ID for log correlation
    app.add_middleware(RequestContextMiddleware)

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health", tags=["health"])
    async def health_check() -> dict:
        """
        Health check endpoint.

        WHY: Liveness only; no authentication or database round trip.
        """
        return {
            "status": "healthy",
            "version": settings.VERSION,
            "pending_notifications": get_dispatcher().pending,
        }

    # Register API routers
    app.include_router(tickets.router, prefix=settings.API_V1_PREFIX)
    app.include_router(comments.router, prefix=settings.API_V1_PREFIX)
    app.include_router(attachments.router, prefix=settings.API_V1_PREFIX)

    return app


# Create app instance
# WHY: Creating the app instance here allows it to be imported by uvicorn
app = create_app()


if __name__ == "__main__":
    import uvicorn

    # WHY: This allows running the app directly with `python -m workorders.main`
    # for development. In production, use `uvicorn workorders.main:app` directly.
    uvicorn.run(
        "workorders.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level="info" if settings.DEBUG else "warning",
    )
