"""Main entry point for running the Ingress FastAPI application."""

import os

import uvicorn
from loguru import logger

from ingress.core.config import get_settings
from ingress.core.logging import setup_logging

UVICORN_LOG_CONFIG = {
    "version": 1,
    "disable_existing_loggers": False,
    "handlers": {
        "default": {
            "class": "ingress.core.logging.InterceptHandler",
        },
    },
    "loggers": {
        "uvicorn": {"handlers": ["default"], "level": "INFO", "propagate": False},
        "uvicorn.error": {"handlers": ["default"], "level": "INFO", "propagate": False},
        "uvicorn.access": {
            "handlers": ["default"],
            "level": "INFO",
            "propagate": False,
        },
    },
}


def main() -> None:
    """Main entry point for the Ingress application."""
    settings = get_settings()
    setup_logging(settings)

    # Container platforms pass the listening port through PORT
    port = int(os.environ.get("PORT", settings.api_port))

    logger.info(
        "Starting Uvicorn on http://{}:{} ({} mode)",
        settings.api_host,
        port,
        "development" if settings.debug else "production",
    )
    uvicorn.run(
        "ingress.api.main:create_app",
        factory=True,
        host=settings.api_host,
        port=port,
        reload=settings.debug,
        log_config=UVICORN_LOG_CONFIG,
    )


if __name__ == "__main__":
    main()
