"""Application factory.

`create_app` wires the pieces every deployment shares: logging and tracing,
the error formatter, correlation and request ID middleware, and the service
routes. Routes added to the returned application use `PipelineRoute`, so
their endpoints can declare body stages with `use_stages`.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Annotated, Any

from fastapi import APIRouter, Depends, FastAPI
from loguru import logger

from ingress.api.middleware.error_handler import register_exception_handlers
from ingress.api.middleware.request_context import RequestContextMiddleware
from ingress.api.middleware.request_logging import RequestLoggingMiddleware
from ingress.api.pipeline.routing import PipelineRoute
from ingress.api.utils.responses import ORJSONResponse
from ingress.core.config import Settings, get_settings
from ingress.core.logging import setup_logging
from ingress.core.observability import instrument_app, setup_tracing

service_router = APIRouter(tags=["service"])


@service_router.get("/health")
async def health() -> dict[str, str]:
    """Liveness check."""
    return {"status": "healthy"}


@service_router.get("/info")
async def info(settings: Annotated[Settings, Depends(get_settings)]) -> dict[str, Any]:
    """Describe the running service."""
    return {
        "app_name": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment,
        "debug": settings.debug,
    }


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    logger.info("Starting {} v{}", app.title, app.version)
    yield
    logger.info("{} stopped", app.title)


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the application.

    Args:
        settings: Settings to build from. Defaults to `get_settings()`.

    Returns:
        FastAPI: The application, ready to have pipeline routes added.
    """
    settings = settings or get_settings()
    setup_logging(settings)
    setup_tracing(settings)

    # Starlette debug mode would answer unhandled errors with a plain-text
    # traceback instead of the error formatter
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        docs_url=settings.docs_url,
        redoc_url=settings.redoc_url,
        openapi_url=settings.openapi_url,
        default_response_class=ORJSONResponse,
        lifespan=lifespan,
    )
    app.router.route_class = PipelineRoute
    register_exception_handlers(app, settings)

    # Starlette runs the last added middleware first: the correlation ID must
    # be set before the request logger binds its context
    app.add_middleware(RequestLoggingMiddleware, log_config=settings.log_config)
    app.add_middleware(RequestContextMiddleware)

    app.include_router(service_router)
    instrument_app(app, settings)
    return app
