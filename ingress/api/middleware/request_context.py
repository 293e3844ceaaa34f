"""Correlation ID propagation.

A correlation ID ties together the requests one client operation causes
across services. It is read from `X-Correlation-ID` (or generated), made
available to the error formatter and to tracing, attached to every log record
of the request and echoed back to the caller.
"""

from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from ingress.api.constants import CORRELATION_ID_HEADER
from ingress.core.context import RequestContext, generate_correlation_id


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Run each request inside its correlation context."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        correlation_id = request.headers.get(CORRELATION_ID_HEADER)
        if not correlation_id:
            correlation_id = generate_correlation_id()
        RequestContext.set_correlation_id(correlation_id)

        with logger.contextualize(correlation_id=correlation_id):
            response = await call_next(request)

        response.headers[CORRELATION_ID_HEADER] = correlation_id
        return response
