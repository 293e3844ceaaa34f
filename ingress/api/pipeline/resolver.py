"""External reference resolution for request bodies.

Clients often send lightweight identifiers (`{"author": "u123"}`) where the
handler needs the full entity. `resolve_references(mapping)` builds a stage
that, for each mapped field present in the body, calls the field's lookup
with the submitted value and replaces the field with the result.

Lookups for different fields run concurrently in one `asyncio.TaskGroup`
and all of them settle before the stage continues. A lookup that raises (or
exceeds the optional timeout) does not fail the request directly: the field
is replaced by a placeholder (`None`, or a list of `None` of the same length
for list values). The stage then validates the runtime shape of every
present field, requiring an object or a list of objects, so a placeholder
turns into a regular 400 validation response.

Behaviour worth knowing when wiring a route:

- mapped fields missing from the body are neither looked up nor required;
- present but falsy values (`0`, `""`, `False`, `[]`) count as missing;
- every present value goes to its lookup, whatever its shape, so a client
  cannot skip the lookup by submitting an object of its own;
- fields this request has already resolved are recorded on the context and
  not looked up again, so running the stage twice over a request is safe;
- if the request is cancelled, in-flight lookups are cancelled with it.
"""

import asyncio
from collections.abc import Awaitable, Iterable, Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Protocol

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, create_model

from ingress.api.pipeline.context import CallNext, PipelineContext, Stage
from ingress.api.pipeline.validation import ValidationOptions, validate_body
from ingress.core.config import get_settings
from ingress.core.error_context import sanitize_error_context
from ingress.core.exceptions import ResolutionError
from ingress.core.observability import trace_operation


class Lookup(Protocol):
    """Async capability turning a submitted identifier into a full object.

    The result should be a JSON object (a dict), or a list of them when the
    submitted value is a list. Any exception signals "not found / unavailable".
    """

    def __call__(self, raw: Any, /) -> Awaitable[Any]: ...  # noqa: ANN401


@dataclass(frozen=True, slots=True)
class Resolution:
    """Settled result of one field's lookup."""

    field: str
    original: Any
    value: Any = None
    error: ResolutionError | None = None

    @property
    def failed(self) -> bool:
        return self.error is not None

    def replacement(self) -> Any:  # noqa: ANN401
        """Value to store in the body for this field."""
        if self.error is None:
            return self.value
        if isinstance(self.original, list):
            return [None] * len(self.original)
        return None


def build_resolved_schema(
    body: Mapping[str, Any], fields: Iterable[str]
) -> type[BaseModel]:
    """Build a model requiring each field's current runtime shape.

    List values must be a list of objects, anything else must be an object.
    Undeclared fields are allowed through unchanged.

    Args:
        body: Body after resolution.
        fields: Names of the fields that were present before resolution.

    Returns:
        type[BaseModel]: A freshly created model.
    """
    definitions: dict[str, Any] = {}
    for index, name in enumerate(fields):
        annotation = (
            list[dict[str, Any]] if isinstance(body.get(name), list) else dict[str, Any]
        )
        # Aliases keep arbitrary JSON keys usable as field names
        definitions[f"reference_{index}"] = (annotation, Field(alias=name))

    return create_model(
        "ResolvedReferences",
        __config__=ConfigDict(extra="allow"),
        **definitions,
    )


async def _resolve_field(
    field: str, raw: Any, lookup: Lookup, timeout: float | None  # noqa: ANN401
) -> Resolution:
    with trace_operation("resolve_reference", **{"reference.field": field}) as span:
        try:
            async with asyncio.timeout(timeout):
                value = await lookup(raw)
        except Exception as exc:  # noqa: BLE001 - any lookup failure degrades to a placeholder
            span.set_attribute("reference.outcome", "failed")
            logger.warning(
                "Reference lookup failed for field {}",
                field,
                **sanitize_error_context(exc, {"field": field}),
            )
            return Resolution(field, raw, error=ResolutionError(field, exc))

        span.set_attribute("reference.outcome", "resolved")
        logger.debug("Resolved reference for field {}", field)
        return Resolution(field, raw, value=value)


def resolve_references(
    mapping: Mapping[str, Lookup], *, timeout: float | None = None
) -> Stage:
    """Create a stage that resolves external references in the request body.

    Args:
        mapping: Field name to lookup function. Copied; later changes to the
            passed mapping do not affect the stage.
        timeout: Per-lookup timeout in seconds. Defaults to
            `pipeline_config.resolution_timeout_seconds` (None, no timeout).

    Returns:
        Stage: The resolving pipeline stage.
    """
    lookups: Mapping[str, Lookup] = MappingProxyType(dict(mapping))
    if timeout is None:
        timeout = get_settings().pipeline_config.resolution_timeout_seconds

    async def resolver(ctx: PipelineContext, call_next: CallNext) -> None:
        body = ctx.body if isinstance(ctx.body, dict) else {}
        present = [field for field in lookups if body.get(field)]
        pending = [field for field in present if field not in ctx.resolved_fields]

        if pending:
            async with asyncio.TaskGroup() as group:
                tasks = [
                    group.create_task(
                        _resolve_field(field, body[field], lookups[field], timeout)
                    )
                    for field in pending
                ]

            resolutions = [task.result() for task in tasks]
            for resolution in resolutions:
                body[resolution.field] = resolution.replacement()
                if not resolution.failed:
                    ctx.resolved_fields.add(resolution.field)

            logger.debug(
                "Resolved {} of {} references",
                sum(not resolution.failed for resolution in resolutions),
                len(resolutions),
                failed_fields=[r.field for r in resolutions if r.failed],
            )

        schema = build_resolved_schema(body, present)
        await validate_body(schema, ValidationOptions())(ctx, call_next)

    return resolver
