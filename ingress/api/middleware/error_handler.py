"""Process-wide error response formatting.

`register_exception_handlers` is called once by the application factory. It
builds an immutable `ErrorFormatter` from the settings of that moment and
registers its handlers, so every error that escapes a route (or a pipeline
stage) is answered with a JSON `ErrorResponse`.

Status codes:
- `IngressError` subclasses declare their own (`status_code` class attribute)
- Starlette `HTTPException` keeps its status code and headers
- FastAPI `RequestValidationError` (endpoint parameters) becomes 422
- anything else uses its `status_code`/`status` attribute when that is an
  error status, otherwise 500

In production the serialized error has no `stack` key, and unexpected 5xx
errors carry a generic message instead of the exception text.
"""

import traceback
from dataclasses import dataclass

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import Response
from loguru import logger
from starlette.exceptions import HTTPException

from ingress.api.constants import (
    HTTP_422_UNPROCESSABLE_CONTENT,
    HTTP_500_INTERNAL_SERVER_ERROR,
    MAX_ERROR_STATUS,
    MIN_ERROR_STATUS,
)
from ingress.api.pipeline.validation import redact_error_details
from ingress.api.schemas.errors import ErrorResponse, ServiceInfo
from ingress.api.utils.responses import ORJSONResponse
from ingress.core.config import Settings, get_settings, is_production
from ingress.core.context import RequestContext, generate_request_id
from ingress.core.error_context import sanitize_dict, sanitize_error_context
from ingress.core.exceptions import ErrorCode, IngressError, Severity

GENERIC_ERROR_MESSAGE = "An internal server error occurred"


def get_service_info(settings: Settings) -> ServiceInfo:
    """Create ServiceInfo from application settings."""
    return ServiceInfo(
        name=settings.app_name,
        version=settings.app_version,
        environment=settings.environment,
    )


def declared_status(exc: BaseException) -> int:
    """Return the error status an exception declares, or 500.

    Args:
        exc: Any exception.

    Returns:
        int: `exc.status_code` or `exc.status` when it is an int in 400-599.
    """
    for attribute in ("status_code", "status"):
        value = getattr(exc, attribute, None)
        if (
            isinstance(value, int)
            and not isinstance(value, bool)
            and MIN_ERROR_STATUS <= value <= MAX_ERROR_STATUS
        ):
            return value
    return HTTP_500_INTERNAL_SERVER_ERROR


def format_stack(exc: BaseException, *, include_message: bool = True) -> list[str]:
    """Format an exception and its traceback as a list of lines.

    Args:
        exc: The exception to format.
        include_message: Whether to render the exception text and its chained
            causes. Without it only the frames and the exception type remain,
            for exceptions whose text can echo request data.

    Returns:
        list[str]: The lines of the formatted traceback.
    """
    if include_message:
        return "".join(traceback.format_exception(exc)).splitlines()
    frames = "".join(traceback.format_tb(exc.__traceback__)).splitlines()
    return ["Traceback (most recent call last):", *frames, type(exc).__name__]


@dataclass(frozen=True, slots=True)
class ErrorFormatter:
    """Serializes escaped errors as JSON.

    Attributes:
        service_info: Service metadata attached to every error.
        omit_stack: Remove the `stack` key from serialized errors.
        hide_internal_details: Replace messages of unexpected 5xx errors.
    """

    service_info: ServiceInfo
    omit_stack: bool
    hide_internal_details: bool

    @classmethod
    def from_settings(cls, settings: Settings) -> "ErrorFormatter":
        production = is_production(settings)
        return cls(
            service_info=get_service_info(settings),
            omit_stack=production,
            hide_internal_details=production,
        )

    def render(
        self,
        error: ErrorResponse,
        headers: dict[str, str] | None = None,
    ) -> Response:
        """Serialize an error response, applying stack redaction."""
        content = error.model_dump(mode="json")
        if self.omit_stack:
            content.pop("stack", None)
        return ORJSONResponse(status_code=error.status, content=content, headers=headers)

    def _build(self, exc: BaseException, **fields: object) -> ErrorResponse:
        return ErrorResponse.model_validate(
            {
                "name": type(exc).__name__,
                "correlation_id": RequestContext.get_correlation_id(),
                "request_id": RequestContext.get_request_id() or generate_request_id(),
                "service_info": self.service_info,
                "stack": format_stack(exc),
                **fields,
            }
        )

    async def handle_ingress_error(self, request: Request, exc: Exception) -> Response:
        """Handle IngressError exceptions.

        Raises:
            TypeError: If exc is not an IngressError instance
        """
        if not isinstance(exc, IngressError):
            raise TypeError(f"Expected IngressError, got {type(exc).__name__}")

        error_context = sanitize_error_context(
            exc,
            {
                "request_method": request.method,
                "request_path": str(request.url.path),
                "error_code": exc.error_code,
                "fingerprint": exc.fingerprint,
            },
        )
        log = logger.warning if exc.is_expected else logger.error
        log("Handling {}: {}", type(exc).__name__, exc.message, **error_context)

        return self.render(
            self._build(
                exc,
                message=exc.message,
                status=exc.status_code,
                error_code=exc.error_code,
                details=sanitize_dict(exc.context) or None,
                severity=exc.severity.value,
            )
        )

    async def handle_request_validation_error(
        self, request: Request, exc: Exception
    ) -> Response:
        """Handle FastAPI RequestValidationError with redacted field errors.

        Raises:
            TypeError: If exc is not a RequestValidationError instance
        """
        if not isinstance(exc, RequestValidationError):
            raise TypeError(f"Expected RequestValidationError, got {type(exc).__name__}")

        fields = redact_error_details(exc.errors())
        logger.warning(
            "Endpoint parameter validation failed",
            request_method=request.method,
            request_path=str(request.url.path),
            failed_fields=[{"path": f.path, "type": f.type} for f in fields],
        )

        return self.render(
            self._build(
                exc,
                message="Request validation failed",
                status=HTTP_422_UNPROCESSABLE_CONTENT,
                error_code=ErrorCode.VALIDATION_ERROR.value,
                details={"fields": [f.model_dump(mode="json") for f in fields]},
                severity=Severity.LOW.value,
                # The exception text lists the raw errors, submitted input included
                stack=format_stack(exc, include_message=False),
            )
        )

    async def handle_http_exception(self, request: Request, exc: Exception) -> Response:
        """Handle Starlette HTTPException, keeping its status and headers.

        Raises:
            TypeError: If exc is not an HTTPException instance
        """
        if not isinstance(exc, HTTPException):
            raise TypeError(f"Expected HTTPException, got {type(exc).__name__}")

        error_code = {
            status.HTTP_400_BAD_REQUEST: ErrorCode.VALIDATION_ERROR,
            status.HTTP_401_UNAUTHORIZED: ErrorCode.UNAUTHORIZED,
            status.HTTP_404_NOT_FOUND: ErrorCode.NOT_FOUND,
        }.get(exc.status_code, ErrorCode.INTERNAL_ERROR)
        severity = (
            Severity.HIGH
            if exc.status_code >= HTTP_500_INTERNAL_SERVER_ERROR
            else Severity.LOW
        )

        logger.warning(
            "HTTP exception",
            **sanitize_error_context(
                exc,
                {
                    "status": exc.status_code,
                    "request_method": request.method,
                    "request_path": str(request.url.path),
                },
            ),
        )

        return self.render(
            self._build(
                exc,
                message=str(exc.detail),
                status=exc.status_code,
                error_code=error_code.value,
                severity=severity.value,
            ),
            headers=exc.headers,
        )

    async def handle_unexpected_error(
        self, request: Request, exc: Exception
    ) -> Response:
        """Handle any other exception.

        Internal error messages are hidden in production for 5xx statuses.
        """
        status_code = declared_status(exc)
        logger.opt(exception=exc).error(
            "Unhandled exception: {}",
            type(exc).__name__,
            **sanitize_error_context(
                exc,
                {
                    "request_method": request.method,
                    "request_path": str(request.url.path),
                    "status_code": status_code,
                },
            ),
        )

        if self.hide_internal_details and status_code >= HTTP_500_INTERNAL_SERVER_ERROR:
            message, details = GENERIC_ERROR_MESSAGE, None
        else:
            message = str(exc) or type(exc).__name__
            details = {"type": type(exc).__name__}

        return self.render(
            self._build(
                exc,
                message=message,
                status=status_code,
                error_code=ErrorCode.INTERNAL_ERROR.value,
                details=details,
                severity=Severity.CRITICAL.value,
            )
        )


def register_exception_handlers(
    app: FastAPI, settings: Settings | None = None
) -> ErrorFormatter:
    """Install the error formatter's handlers on the application.

    Call once during application initialization.

    Args:
        app: The FastAPI application instance
        settings: Settings to read the environment from (defaults to
            `get_settings()`)

    Returns:
        ErrorFormatter: The installed formatter, also kept on `app.state`.
    """
    formatter = ErrorFormatter.from_settings(settings or get_settings())

    app.add_exception_handler(IngressError, formatter.handle_ingress_error)
    app.add_exception_handler(
        RequestValidationError, formatter.handle_request_validation_error
    )
    app.add_exception_handler(HTTPException, formatter.handle_http_exception)
    app.add_exception_handler(Exception, formatter.handle_unexpected_error)
    app.state.error_formatter = formatter

    logger.debug("Exception handlers registered", omit_stack=formatter.omit_stack)
    return formatter
