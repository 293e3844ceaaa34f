"""Exceptions that reach the error formatter.

Every `IngressError` knows the HTTP status it stands for (`status_code`),
a stable machine-readable `error_code` and a `Severity` that decides whether
it is logged as a warning or as an error. Route code raises the subclasses
below; the formatter turns them into the JSON error body.

Schema failures found by the validation stage are not exceptions: that stage
answers 400 itself. Lookup failures inside the resolver are wrapped in
`ResolutionError` for logging and never propagate.
"""

import hashlib
import traceback
from enum import Enum
from pathlib import Path
from typing import Any, ClassVar

# Frames closest to the raise site that identify where an error comes from
FINGERPRINT_FRAMES = 5


class ErrorCode(Enum):
    """Machine-readable codes returned in the `error_code` field."""

    INTERNAL_ERROR = "INTERNAL_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    MALFORMED_BODY = "MALFORMED_BODY"
    NOT_FOUND = "NOT_FOUND"
    UNAUTHORIZED = "UNAUTHORIZED"
    BUSINESS_RULE_VIOLATION = "BUSINESS_RULE_VIOLATION"
    RESOLUTION_FAILED = "RESOLUTION_FAILED"


class Severity(Enum):
    """How urgently an error needs attention.

    LOW and MEDIUM errors are part of normal operation (bad input, unknown
    ids) and are logged as warnings. HIGH and CRITICAL ones are logged as
    errors.
    """

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


def _fingerprint(kind: str, error_code: str, stack: traceback.StackSummary) -> str:
    own_frames = [
        f"{frame.filename}:{frame.lineno}"
        for frame in stack[-FINGERPRINT_FRAMES:]
        if "ingress" in Path(frame.filename).parts
        and "site-packages" not in frame.filename
    ]
    digest = hashlib.sha256(":".join([kind, error_code, *own_frames]).encode())
    return digest.hexdigest()[:16]


class IngressError(Exception):
    """Base class of the service's own exceptions.

    Args:
        error_code: An `ErrorCode` or a custom code string.
        message: Message shown to the client (hidden for 5xx in production).
        severity: Defaults to MEDIUM.
        context: Extra details logged and returned with the error.
        cause: Underlying exception, chained as `__cause__`.
    """

    status_code: ClassVar[int] = 500

    def __init__(
        self,
        error_code: str | ErrorCode,
        message: str,
        severity: Severity = Severity.MEDIUM,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message)
        if isinstance(error_code, ErrorCode):
            error_code = error_code.value
        self.error_code = error_code
        self.message = message
        self.severity = severity
        self.context = dict(context) if context else {}
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause
        # Stack at creation time, without this frame
        stack = traceback.StackSummary.from_list(traceback.extract_stack()[:-1])
        self.stack_trace = stack.format()
        # Groups occurrences raised from the same place in the logs
        self.fingerprint = _fingerprint(type(self).__name__, error_code, stack)

    @property
    def is_expected(self) -> bool:
        return self.severity in {Severity.LOW, Severity.MEDIUM}

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        details = [
            f"error_code={self.error_code!r}",
            f"message={self.message!r}",
            f"severity={self.severity.value}",
        ]
        if self.context:
            details.append(f"context={self.context}")
        return f"{type(self).__name__}({', '.join(details)})"


class _ClassifiedError(IngressError):
    """An error whose default code and severity are fixed by its class."""

    default_code: ClassVar[ErrorCode]
    default_severity: ClassVar[Severity]

    def __init__(
        self,
        message: str,
        error_code: str | ErrorCode | None = None,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            error_code or self.default_code,
            message,
            self.default_severity,
            context,
            cause,
        )


class ValidationError(_ClassifiedError):
    """Input rejected by a business check in route code."""

    status_code = 400
    default_code = ErrorCode.VALIDATION_ERROR
    default_severity = Severity.LOW


class MalformedBodyError(ValidationError):
    """The request body is not decodable JSON."""

    default_code = ErrorCode.MALFORMED_BODY

    def __init__(
        self,
        message: str = "Request body is not valid JSON",
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message, context=context, cause=cause)


class NotFoundError(_ClassifiedError):
    """An identifier that does not exist.

    Lookup functions passed to the resolver may raise it for unknown ids;
    the resolver treats it like any other lookup failure.
    """

    status_code = 404
    default_code = ErrorCode.NOT_FOUND
    default_severity = Severity.LOW


class UnauthorizedError(_ClassifiedError):
    status_code = 401
    default_code = ErrorCode.UNAUTHORIZED
    default_severity = Severity.HIGH


class BusinessRuleError(_ClassifiedError):
    """A well-formed request that breaks a domain rule."""

    status_code = 422
    default_code = ErrorCode.BUSINESS_RULE_VIOLATION
    default_severity = Severity.MEDIUM


class ResolutionError(IngressError):
    """A lookup that failed while resolving the reference in `field`.

    Only used to describe the failure in the resolver's log record; the
    request continues with a placeholder in place of the value.
    """

    def __init__(self, field: str, cause: Exception) -> None:
        super().__init__(
            ErrorCode.RESOLUTION_FAILED,
            f"Failed to resolve reference for field '{field}'",
            Severity.LOW,
            {"field": field},
            cause,
        )
        self.field = field
