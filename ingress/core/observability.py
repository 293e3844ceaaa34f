"""OpenTelemetry tracing for the request pipeline.

Tracing is opt-in (`OBSERVABILITY_CONFIG__ENABLE_TRACING=true`). Finished
spans go to one of:

- **console**: a debug log record per span (development)
- **otlp**: an OTLP/gRPC collector (Jaeger, Tempo, cloud agents)
- **none**: spans are sampled and recorded but not exported

Besides the server span created by the FastAPI instrumentation, the resolver
opens a `resolve_reference` span per lookup through `trace_operation`, so a
slow or failing external source shows up inside the request's trace.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Final

from loguru import logger
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import ReadableSpan, TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    SpanExporter,
    SpanExportResult,
)
from opentelemetry.sdk.trace.sampling import TraceIdRatioBased

from ingress.core.context import RequestContext

if TYPE_CHECKING:
    from collections.abc import Generator, Sequence

    from fastapi import FastAPI

    from ingress.core.config import Settings

TRACER_NAME: Final[str] = "ingress"
DEFAULT_OTLP_ENDPOINT: Final[str] = "http://localhost:4317"
UNTRACED_URLS: Final[str] = "/health,/docs,/redoc,/openapi.json"
NANOSECONDS_PER_MILLISECOND: Final[int] = 1_000_000


class LoguruSpanExporter(SpanExporter):
    """Exporter writing each finished span as a debug log record."""

    def export(self, spans: Sequence[ReadableSpan]) -> SpanExportResult:
        for span in spans:
            context = span.get_span_context()
            if context is None:
                continue

            elapsed_ms = None
            if span.start_time and span.end_time:
                elapsed = span.end_time - span.start_time
                elapsed_ms = elapsed // NANOSECONDS_PER_MILLISECOND

            attributes = dict(span.attributes or {})
            logger.bind(
                span_name=span.name,
                trace_id=format(context.trace_id, "032x"),
                span_id=format(context.span_id, "016x"),
                duration_ms=elapsed_ms,
                status=span.status.status_code.name,
                correlation_id=attributes.get("correlation_id")
                or RequestContext.get_correlation_id(),
                attributes=attributes,
            ).debug("Span {} finished", span.name)

        return SpanExportResult.SUCCESS


def _otlp_exporter(settings: Settings) -> SpanExporter:
    endpoint = settings.observability_config.exporter_endpoint or DEFAULT_OTLP_ENDPOINT
    logger.info("Exporting spans to OTLP collector at {}", endpoint)
    # Plaintext gRPC is only acceptable against a local collector
    return OTLPSpanExporter(
        endpoint=endpoint, insecure=settings.environment == "development"
    )


def get_span_exporter(settings: Settings) -> SpanExporter | None:
    """Pick the exporter named by `observability_config.exporter_type`.

    Returns:
        SpanExporter | None: The exporter, or None when export is disabled.
    """
    exporter_type = settings.observability_config.exporter_type
    if exporter_type == "otlp":
        return _otlp_exporter(settings)
    if exporter_type == "none":
        logger.info("Span export disabled")
        return None
    return LoguruSpanExporter()


def build_resource(settings: Settings) -> Resource:
    """Describe this service for every span it emits."""
    return Resource.create(
        {
            "service.name": settings.app_name,
            "service.version": settings.app_version,
            "deployment.environment": settings.environment,
        }
    )


def setup_tracing(settings: Settings) -> None:
    """Install the global tracer provider when tracing is enabled."""
    config = settings.observability_config
    if not config.enable_tracing:
        logger.debug("Tracing disabled by configuration")
        return

    provider = TracerProvider(
        resource=build_resource(settings),
        sampler=TraceIdRatioBased(config.trace_sample_rate),
    )
    exporter = get_span_exporter(settings)
    if exporter is not None:
        provider.add_span_processor(BatchSpanProcessor(exporter))

    trace.set_tracer_provider(provider)
    logger.info(
        "Tracing enabled",
        exporter_type=config.exporter_type,
        sample_rate=config.trace_sample_rate,
    )


def add_correlation_id_to_span(span: trace.Span, scope: dict[str, Any]) -> None:
    """Server request hook tagging the request span with the correlation ID."""
    del scope
    correlation_id = RequestContext.get_correlation_id()
    if correlation_id and span.is_recording():
        span.set_attribute("correlation_id", correlation_id)


def instrument_app(app: FastAPI, settings: Settings) -> None:
    """Create server spans for every request except the untraced URLs."""
    if settings.observability_config.enable_tracing:
        FastAPIInstrumentor.instrument_app(
            app,
            excluded_urls=UNTRACED_URLS,
            server_request_hook=add_correlation_id_to_span,
        )


@contextmanager
def trace_operation(
    name: str, **attributes: str | int | float | bool
) -> Generator[trace.Span]:
    """Run a block inside a child span of the current request.

    Args:
        name: Span name.
        **attributes: Attributes set on the span before the block runs.

    Yields:
        trace.Span: The active span, for recording the block's outcome.

    Example:
        >>> with trace_operation("resolve_reference", field="author") as span:
        ...     span.set_attribute("reference.outcome", "resolved")
    """
    if correlation_id := RequestContext.get_correlation_id():
        attributes = {**attributes, "correlation_id": correlation_id}

    tracer = trace.get_tracer(TRACER_NAME)
    with tracer.start_as_current_span(name, attributes=attributes) as span:
        yield span
