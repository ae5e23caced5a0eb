"""
Distributed Tracing — OpenTelemetry Integration
==================================================

Spans around routing, task execution, pipeline steps, agent turns and
health sweeps.

While a recording span is open its trace id is published to the log
correlation context, so every log line emitted inside the span carries
``context.trace_id``.

Until ``init_tracing()`` installs a provider the OpenTelemetry API hands
out non-recording spans and no trace id is published.

Usage:
    from switchyard.infra.telemetry import get_tracer, trace_span

    tracer = get_tracer(__name__)

    with tracer.span("router.route", attributes={"task": "reasoning"}) as span:
        decision = route()
        span.set_attribute("model", decision.model_id)

    @trace_span("health.sweep")
    async def check_all_models(self): ...
"""

from __future__ import annotations

import functools
import inspect
from collections.abc import Callable, Generator
from contextlib import contextmanager
from typing import Any

from opentelemetry import trace as otel_trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    ConsoleSpanExporter,
    SimpleSpanProcessor,
    SpanExporter,
)

from switchyard.infra.telemetry.logger import (
    get_logger,
    get_request_context,
    set_request_context,
)

logger = get_logger(__name__)

EXPORTERS = ("console", "none")

class Tracer:
    """Per-module span factory."""

    def __init__(
        self,
        name: str,
        *,
        enabled: bool = True,
        provider: otel_trace.TracerProvider | None = None,
    ):
        self._name = name
        self._enabled = enabled
        self._otel = (
            provider.get_tracer(name) if provider is not None else otel_trace.get_tracer(name)
        )

    @property
    def name(self) -> str:
        return self._name

    @property
    def enabled(self) -> bool:
        return self._enabled

    @enabled.setter
    def enabled(self, value: bool) -> None:
        self._enabled = value

    @contextmanager
    def span(
        self,
        name: str,
        *,
        attributes: dict[str, Any] | None = None,
    ) -> Generator[otel_trace.Span, None, None]:
        """
        Open a span around a block.

        Exceptions escaping the block are recorded on the span (type in
        ``error.type``) and re-raised.
        """
        if not self._enabled:
            yield otel_trace.INVALID_SPAN
            return

        with self._otel.start_as_current_span(name, attributes=_clean(attributes)) as span:
            outer_trace_id = get_request_context().get("trace_id")
            ctx = span.get_span_context()
            if ctx.is_valid:
                set_request_context(trace_id=otel_trace.format_trace_id(ctx.trace_id))
            try:
                yield span
            except BaseException as e:
                span.set_attribute("error.type", type(e).__name__)
                raise
            finally:
                set_request_context(trace_id=outer_trace_id)

def _clean(attributes: dict[str, Any] | None) -> dict[str, Any] | None:
    # OpenTelemetry rejects None values and non-primitive types.
    if not attributes:
        return None
    return {
        key: value if isinstance(value, (str, bool, int, float)) else str(value)
        for key, value in attributes.items()
        if value is not None
    }

# ── Registry of Module Tracers ─────────────────────────────────────

_tracers: dict[str, Tracer] = {}
_tracing_enabled = True

def get_tracer(name: str) -> Tracer:
    """Get or create the tracer for a module."""
    tracer = _tracers.get(name)
    if tracer is None:
        tracer = _tracers[name] = Tracer(name, enabled=_tracing_enabled)
    return tracer

def init_tracing(
    *,
    service_name: str = "switchyard",
    enabled: bool = True,
    exporter: str | SpanExporter = "none",
) -> TracerProvider | None:
    """
    Install the global TracerProvider. Call once at startup.

    Args:
        service_name: ``service.name`` resource attribute
        enabled: False turns every module tracer into a no-op
        exporter: "console", "none" (record without exporting), or a
            SpanExporter instance, which is flushed synchronously

    Returns:
        The installed provider, or None when tracing is disabled.
    """
    global _tracing_enabled
    _tracing_enabled = enabled
    for tracer in _tracers.values():
        tracer.enabled = enabled
    if not enabled:
        logger.info("tracing_disabled")
        return None

    provider = TracerProvider(resource=Resource.create({"service.name": service_name}))
    if isinstance(exporter, SpanExporter):
        provider.add_span_processor(SimpleSpanProcessor(exporter))
    elif exporter == "console":
        provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))
    elif exporter != "none":
        raise ValueError(f"Unknown span exporter: {exporter} (expected one of {EXPORTERS})")

    otel_trace.set_tracer_provider(provider)
    logger.info("tracing_initialized", exporter=str(exporter), service=service_name)
    return provider

# ── Decorator ──────────────────────────────────────────────────────

def trace_span(
    name: str | None = None,
    *,
    attributes: dict[str, Any] | None = None,
) -> Callable:
    """Wrap a sync or async callable in ``Tracer.span``."""

    def decorator(func: Callable) -> Callable:
        tracer = get_tracer(func.__module__)
        span_name = name or func.__qualname__

        if inspect.iscoroutinefunction(func):

            @functools.wraps(func)
            async def traced_async(*args: Any, **kwargs: Any) -> Any:
                with tracer.span(span_name, attributes=attributes):
                    return await func(*args, **kwargs)

            return traced_async

        @functools.wraps(func)
        def traced(*args: Any, **kwargs: Any) -> Any:
            with tracer.span(span_name, attributes=attributes):
                return func(*args, **kwargs)

        return traced

    return decorator
