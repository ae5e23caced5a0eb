"""
Telemetry Layer — Unified Observability
========================================

All other layers depend on this one.

Provides:
  - Structured event logging with correlation ids
  - Distributed tracing (OpenTelemetry)
  - Metrics collection (Prometheus)

Usage:
    from switchyard.infra.telemetry import get_logger, get_metrics, get_tracer

    logger = get_logger(__name__)
    tracer = get_tracer(__name__)
    with tracer.span("router.route") as span:
        span.set_attribute("model", "llama3")
        logger.info("route_selected", model_id="llama3")
"""

from switchyard.infra.telemetry.logger import (
    StructuredLogger,
    clear_request_context,
    get_logger,
    get_request_context,
    set_request_context,
    setup_logging,
)
from switchyard.infra.telemetry.metrics import MetricsCollector, get_metrics
from switchyard.infra.telemetry.tracer import Tracer, get_tracer, init_tracing, trace_span

__all__ = [
    "MetricsCollector",
    "StructuredLogger",
    "Tracer",
    "clear_request_context",
    "get_logger",
    "get_metrics",
    "get_request_context",
    "get_tracer",
    "init_tracing",
    "set_request_context",
    "setup_logging",
    "trace_span",
]
