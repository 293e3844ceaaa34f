"""Request body validation against pydantic schemas.

`validate_body(schema)` builds a pipeline stage that validates `ctx.body`:

- on success the body is replaced by the coerced payload (unknown fields
  dropped unless the options say otherwise) and the next stage runs;
- on a schema violation the request is answered with a 400 listing every
  failing field, and the next stage is not called.

Error descriptors are built from pydantic's error list with the submitted
value removed, so secrets or personal data sent by a client are never echoed
back. Only `pydantic.ValidationError` is handled here; any other exception
raised while validating propagates to the error formatter untouched.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from functools import lru_cache
from typing import Any

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from ingress.api.constants import HTTP_400_BAD_REQUEST, REDACTED_CONTEXT_KEYS
from ingress.api.pipeline.context import CallNext, PipelineContext, Stage
from ingress.api.schemas.errors import FieldError, ValidationErrorResponse
from ingress.core.config import Settings, get_settings
from ingress.core.types import RequestBody


class ValidationOptions(BaseModel):
    """Options applied when validating a body against a schema.

    All errors are always collected; pydantic never stops at the first one.
    """

    model_config = ConfigDict(frozen=True)

    strip_unknown: bool = Field(
        default=True,
        description=(
            "Drop undeclared top-level fields. When False they are reported "
            "as `extra_forbidden` errors."
        ),
    )
    strict: bool = Field(
        default=False,
        description="Disable type coercion (pydantic strict mode)",
    )

    @classmethod
    def from_settings(cls, settings: Settings) -> "ValidationOptions":
        """Build the default options from the pipeline configuration."""
        return cls(strip_unknown=settings.pipeline_config.strip_unknown)


@dataclass(frozen=True, slots=True)
class ValidationOutcome:
    """Result of validating a body: a coerced value or redacted errors."""

    value: RequestBody = None
    errors: tuple[FieldError, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.errors


def redact_error_details(errors: Iterable[Mapping[str, Any]]) -> list[FieldError]:
    """Convert raw pydantic/FastAPI error dicts into value-free descriptors.

    Args:
        errors: Error dicts as returned by `ValidationError.errors()`.

    Returns:
        list[FieldError]: One descriptor per error, in the original order.
    """
    fields = []
    for error in errors:
        context = {
            key: value
            for key, value in (error.get("ctx") or {}).items()
            if key not in REDACTED_CONTEXT_KEYS
        }
        fields.append(
            FieldError(
                path=list(error.get("loc", ())),
                message=error.get("msg", "Invalid value"),
                type=error.get("type", "value_error"),
                context=context or None,
            )
        )
    return fields


@lru_cache(maxsize=256)
def _forbid_unknown(schema: type[BaseModel]) -> type[BaseModel]:
    """Derive a schema that rejects undeclared top-level fields."""
    if schema.model_config.get("extra") == "forbid":
        return schema
    return type(
        schema.__name__,
        (schema,),
        {"model_config": ConfigDict(extra="forbid"), "__module__": schema.__module__},
    )


def validate(
    schema: type[BaseModel],
    body: RequestBody,
    options: ValidationOptions | None = None,
) -> ValidationOutcome:
    """Validate `body` against `schema`.

    Args:
        schema: Pydantic model describing the expected payload.
        body: Decoded request body.
        options: Validation options (defaults to `ValidationOptions()`).

    Returns:
        ValidationOutcome: The coerced body as JSON-compatible data, or the
            redacted list of every failure.
    """
    options = options or ValidationOptions()
    model = schema if options.strip_unknown else _forbid_unknown(schema)

    try:
        instance = model.model_validate(body, strict=options.strict)
    except PydanticValidationError as exc:
        errors = exc.errors(include_url=False, include_input=False)
        return ValidationOutcome(errors=tuple(redact_error_details(errors)))

    return ValidationOutcome(value=instance.model_dump(mode="json", by_alias=True))


def validate_body(
    schema: type[BaseModel], options: ValidationOptions | None = None
) -> Stage:
    """Create a stage that validates the request body against `schema`.

    Args:
        schema: Pydantic model describing the expected payload.
        options: Validation options. Defaults come from
            `Settings.pipeline_config`.

    Returns:
        Stage: The validating pipeline stage.
    """
    effective = options or ValidationOptions.from_settings(get_settings())

    async def validator(ctx: PipelineContext, call_next: CallNext) -> None:
        outcome = validate(schema, ctx.body, effective)

        if not outcome.ok:
            logger.warning(
                "Request body failed validation against {}",
                schema.__name__,
                status_code=HTTP_400_BAD_REQUEST,
                failed_fields=[
                    {"path": field.path, "type": field.type} for field in outcome.errors
                ],
            )
            response = ValidationErrorResponse(fields=list(outcome.errors))
            ctx.reject(HTTP_400_BAD_REQUEST, response.model_dump(mode="json"))
            return

        ctx.body = outcome.value
        await call_next()

    validator.__qualname__ = f"validate_body[{schema.__name__}]"
    return validator
