"""FastAPI application for the PR review bot.

This module creates and configures the main FastAPI application,
including routers, middleware, error handlers, and lifecycle events.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.responses import JSONResponse

from .config import get_settings
from .dependencies import init_dependencies, shutdown_dependencies
from .errors import register_exception_handlers
from .logging_config import configure_logging
from .middleware import RequestLoggingMiddleware
from .routers import health_router, webhook_router

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    Wires the GitHub integration and starts the dispatcher on startup;
    drains the dispatcher and closes HTTP clients on shutdown.

    Args:
        app: The FastAPI application instance.

    Yields:
        None after startup is complete.
    """
    # Startup
    settings = get_settings()
    logger.info(
        "app_starting",
        app_name=settings.app_name,
        version=settings.app_version,
        debug=settings.debug,
    )

    try:
        await init_dependencies(settings)
    except Exception as e:
        logger.error("dependency_init_failed", error=str(e))
        raise

    yield

    # Shutdown
    logger.info("app_stopping")
    await shutdown_dependencies()
    logger.info("app_stopped")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance.
    """
    settings = get_settings()
    configure_logging(settings.log_level, json_output=settings.log_json)

    app = FastAPI(
        title=settings.app_name,
        description=(
            "GitHub App that receives pull request webhooks, verifies them, "
            "and reviews eligible pull requests in the background."
        ),
        version=settings.app_version,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.add_middleware(RequestLoggingMiddleware)
    register_exception_handlers(app)

    app.include_router(health_router)
    app.include_router(webhook_router)

    # Root endpoint
    @app.get("/", include_in_schema=False)
    async def root() -> JSONResponse:
        """Root endpoint returning service information."""
        return JSONResponse(
            content={
                "name": settings.app_name,
                "version": settings.app_version,
                "webhook": "/webhook/github",
                "health": "/health",
            }
        )

    return app


# Create the application instance
app = create_app()
