"""Access logging with timing and request IDs.

Every request outside `log_config.excluded_paths` gets a request ID (taken
from `X-Request-ID` or generated), which is stored for the error formatter,
bound to the log records emitted while the request runs and returned in the
response header. Requests slower than `slow_request_threshold_ms` are logged
again as a warning.
"""

import time

from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from ingress.api.constants import REQUEST_ID_HEADER
from ingress.core.config import LogConfig
from ingress.core.constants import MILLISECONDS_PER_SECOND
from ingress.core.context import RequestContext, generate_request_id


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * MILLISECONDS_PER_SECOND, 2)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log each request's outcome and duration.

    Args:
        app: The ASGI application.
        log_config: Paths to skip and the slow request threshold.
    """

    def __init__(self, app: ASGIApp, *, log_config: LogConfig) -> None:
        super().__init__(app)
        self.excluded_paths = frozenset(log_config.excluded_paths)
        self.slow_threshold_ms = log_config.slow_request_threshold_ms

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        """Time the request and log its outcome.

        Raises:
            Exception: Whatever the application raised, after it is logged.
        """
        if request.url.path in self.excluded_paths:
            return await call_next(request)

        request_id = request.headers.get(REQUEST_ID_HEADER) or generate_request_id()
        RequestContext.set_request_id(request_id)

        with logger.contextualize(
            request_id=request_id, method=request.method, path=request.url.path
        ):
            logger.info("Request started")
            started = time.perf_counter()
            try:
                response = await call_next(request)
            except Exception as exc:
                logger.error(
                    "Request failed",
                    duration_ms=_elapsed_ms(started),
                    error_type=type(exc).__name__,
                )
                raise

            duration_ms = _elapsed_ms(started)
            response.headers[REQUEST_ID_HEADER] = request_id
            logger.info(
                "Request completed",
                status_code=response.status_code,
                duration_ms=duration_ms,
            )
            if duration_ms > self.slow_threshold_ms:
                logger.warning(
                    "Slow request detected",
                    duration_ms=duration_ms,
                    threshold_ms=self.slow_threshold_ms,
                )
            return response
