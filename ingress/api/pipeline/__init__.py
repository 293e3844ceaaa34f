"""Per-route request body pipeline.

- **validate_body**: validate and coerce the body against a pydantic schema,
  answering with a redacted 400 on failure
- **resolve_references**: replace identifiers with objects fetched
  concurrently from external lookups, then validate the resolved shape
- **use_stages / PipelineRoute**: attach stages to an endpoint and run them
"""

from ingress.api.pipeline.context import CallNext, PipelineContext, Stage, run_stages
from ingress.api.pipeline.resolver import Lookup, Resolution, resolve_references
from ingress.api.pipeline.routing import PipelineRoute, use_stages
from ingress.api.pipeline.validation import (
    ValidationOptions,
    ValidationOutcome,
    validate,
    validate_body,
)

__all__ = [
    "CallNext",
    "Lookup",
    "PipelineContext",
    "PipelineRoute",
    "Resolution",
    "Stage",
    "ValidationOptions",
    "ValidationOutcome",
    "resolve_references",
    "run_stages",
    "use_stages",
    "validate",
    "validate_body",
]
