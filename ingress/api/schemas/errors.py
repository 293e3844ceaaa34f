"""Response schemas for errors produced by the pipeline and the formatter.

Two response shapes leave this service when something goes wrong:

- **ValidationErrorResponse**: written by the body validator when a payload
  fails its schema. Field descriptors carry a path and a message but never
  the submitted value.
- **ErrorResponse**: written by the process-wide error formatter for any
  exception that escaped the route. The `stack` field is dropped from the
  serialized object in production.
"""

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field


class FieldError(BaseModel):
    """One field-level validation failure, with the offending value removed."""

    path: list[str | int] = Field(
        ...,
        description="Location of the failing field inside the body",
        examples=[["author"], ["tags", 2]],
    )
    message: str = Field(
        ...,
        description="Human-readable description of the failure",
        examples=["Input should be a valid dictionary"],
    )
    type: str = Field(
        ...,
        description="Machine-readable failure type",
        examples=["dict_type", "missing", "string_too_short"],
    )
    context: dict[str, Any] | None = Field(
        default=None,
        description="Constraint parameters (never the submitted value)",
        examples=[{"min_length": 3}],
    )


class ValidationErrorResponse(BaseModel):
    """Body of the 400 response written by the body validator."""

    error: Literal["ValidationError"] = "ValidationError"
    fields: list[FieldError] = Field(
        default_factory=list,
        description="Every validation failure found in the body",
    )

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "error": "ValidationError",
                    "fields": [
                        {
                            "path": ["author"],
                            "message": "Input should be a valid dictionary",
                            "type": "dict_type",
                            "context": None,
                        }
                    ],
                }
            ]
        }
    }


class ServiceInfo(BaseModel):
    """Identifies the deployment that produced an error."""

    name: str = Field(..., description="`app_name` setting")
    version: str = Field(..., description="`app_version` setting")
    environment: str = Field(
        ...,
        description="Deployment environment; stacks are omitted in production",
        examples=["staging", "production"],
    )


class ErrorResponse(BaseModel):
    """JSON serialization of an uncaught error."""

    name: str = Field(
        ...,
        description="Class name of the error",
        examples=["NotFoundError", "RuntimeError"],
    )
    message: str = Field(
        ...,
        description="Error message; generic for 5xx errors in production",
        examples=["User not found", "An internal server error occurred"],
    )
    status: int = Field(
        ...,
        description="HTTP status code of the response",
        examples=[404, 500],
    )
    error_code: str = Field(
        ...,
        description="Stable code clients can branch on",
        examples=["NOT_FOUND", "INTERNAL_ERROR"],
    )
    details: dict[str, Any] | None = Field(
        default=None,
        description="Context attached to the error, with sensitive keys redacted",
    )
    correlation_id: str | None = Field(
        default=None,
        description="Value of X-Correlation-ID for this request",
    )
    request_id: str | None = Field(
        default=None,
        description="Value of X-Request-ID for this request",
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="UTC time at which the error was formatted",
    )
    severity: str | None = Field(
        default=None,
        description="Severity used for logging the error",
        examples=["LOW", "CRITICAL"],
    )
    service_info: ServiceInfo | None = Field(
        default=None,
        description="Deployment that produced the error",
    )
    stack: list[str] | None = Field(
        default=None,
        description="Stack trace lines (omitted entirely in production)",
    )
