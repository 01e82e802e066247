"""
OpenTelemetry spans around database work.

Index DDL, batched inserts and similarity queries each run inside a span
named ``vectorstore.<operation>`` carrying ``db.table`` and, where one is
involved, ``index.name`` / ``index.type``. Log lines emitted inside a span
pick up its ids through ``add_trace_context``.

    setup_tracing("cloudpg", "http://collector:4317")

    with traced(get_tracer(__name__), "vectorstore.reindex", {"db.table": "docs"}):
        ...

Without ``setup_tracing`` the global provider is the no-op one, so spans
cost nothing.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    SimpleSpanProcessor,
    SpanExporter,
)
from opentelemetry.trace import Span, StatusCode, Tracer
from opentelemetry.trace.propagation import get_current_span

logger = logging.getLogger(__name__)

DEFAULT_OTLP_ENDPOINT = "http://localhost:4317"

_provider: TracerProvider | None = None


def setup_tracing(
    service_name: str,
    otlp_endpoint: str | None = None,
    *,
    exporter: SpanExporter | None = None,
) -> TracerProvider:
    """
    Install a TracerProvider as the process-wide provider.

    Spans are batched to an OTLP gRPC collector unless ``exporter`` is
    given, in which case each span is handed to it synchronously (tests pass
    an InMemorySpanExporter here).
    """
    global _provider

    provider = TracerProvider(resource=Resource.create({"service.name": service_name}))
    if exporter is not None:
        provider.add_span_processor(SimpleSpanProcessor(exporter))
        target = type(exporter).__name__
    else:
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (
            OTLPSpanExporter,
        )

        target = otlp_endpoint or DEFAULT_OTLP_ENDPOINT
        provider.add_span_processor(
            BatchSpanProcessor(OTLPSpanExporter(endpoint=target, insecure=True))
        )

    trace.set_tracer_provider(provider)
    _provider = provider
    logger.info("Tracing enabled for %s, exporting to %s", service_name, target)
    return provider


def shutdown_tracing() -> None:
    """Flush pending spans and stop the provider installed by setup_tracing."""
    global _provider

    if _provider is None:
        return
    _provider.shutdown()
    _provider = None


def is_tracing_enabled() -> bool:
    return _provider is not None


def get_tracer(name: str) -> Tracer:
    return trace.get_tracer(name)


@contextmanager
def traced(
    tracer: Tracer,
    name: str,
    attributes: dict[str, Any] | None = None,
) -> Iterator[Span]:
    """
    Run the block inside a new current span.

    Attributes whose value is None are left off the span. An exception
    escaping the block marks the span as failed, is recorded as a span
    event, and is re-raised unchanged.
    """
    with tracer.start_as_current_span(
        name, record_exception=False, set_status_on_exception=False
    ) as span:
        for key, value in (attributes or {}).items():
            if value is not None:
                span.set_attribute(key, value)
        try:
            yield span
        except Exception as exc:
            span.record_exception(exc)
            span.set_status(StatusCode.ERROR, f"{type(exc).__name__}: {exc}")
            raise


def add_trace_context(
    logger_: Any, method: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """structlog processor adding hex ``trace_id``/``span_id`` of the active span."""
    ctx = get_current_span().get_span_context()
    if ctx.is_valid:
        event_dict["trace_id"] = format(ctx.trace_id, "032x")
        event_dict["span_id"] = format(ctx.span_id, "016x")
    return event_dict
