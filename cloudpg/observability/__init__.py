"""Logging, Prometheus metrics and OpenTelemetry spans."""

from cloudpg.observability.logging import setup_logging
from cloudpg.observability.metrics import MetricsCollector, get_metrics
from cloudpg.observability.tracing import (
    get_tracer,
    setup_tracing,
    shutdown_tracing,
    traced,
)

__all__ = [
    "setup_logging",
    "MetricsCollector",
    "get_metrics",
    "setup_tracing",
    "shutdown_tracing",
    "get_tracer",
    "traced",
]
