"""
Telemetry — Unit Tests
=======================

Structured logging, correlation context, metrics and tracing helpers.
"""

import json
import logging

import pytest
from opentelemetry import trace as otel_trace
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from switchyard.infra.telemetry import (
    MetricsCollector,
    clear_request_context,
    get_logger,
    get_request_context,
    set_request_context,
    trace_span,
)
from switchyard.infra.telemetry.logger import StructuredFormatter
from switchyard.infra.telemetry.metrics import PercentileTracker
from switchyard.infra.telemetry.tracer import Tracer


def make_record(**extra) -> logging.LogRecord:
    record = logging.LogRecord(
        "switchyard.test", logging.INFO, __file__, 10, "model_selected", None, None
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestRequestContext:
    def teardown_method(self):
        clear_request_context()

    def test_set_and_clear(self):
        set_request_context(request_id="req-1", pipeline_id="p1")
        assert get_request_context() == {"request_id": "req-1", "pipeline_id": "p1"}

        set_request_context(pipeline_id=None)
        assert get_request_context() == {"request_id": "req-1"}

        clear_request_context()
        assert get_request_context() == {}

    def test_unknown_field(self):
        with pytest.raises(KeyError):
            set_request_context(tenant="acme")


class TestStructuredFormatter:
    def teardown_method(self):
        clear_request_context()

    def test_json_output(self):
        set_request_context(request_id="req-9")
        line = StructuredFormatter(json_output=True).format(
            make_record(model_id="gpt", latency_ms=12.5, tags=["a", "b"])
        )
        entry = json.loads(line)
        assert entry["event"] == "model_selected"
        assert entry["level"] == "INFO"
        assert entry["context"] == {"request_id": "req-9"}
        assert entry["data"]["model_id"] == "gpt"
        assert entry["data"]["latency_ms"] == 12.5
        assert entry["data"]["tags"] == '["a", "b"]'

    def test_text_output(self):
        line = StructuredFormatter(json_output=False).format(make_record(model_id="gpt"))
        assert "| INFO     |" in line
        assert line.endswith("model_selected | model_id=gpt")

    def test_exception_is_rendered(self):
        try:
            raise ValueError("bad probe")
        except ValueError as e:
            record = make_record()
            record.exc_info = (type(e), e, e.__traceback__)
        entry = json.loads(StructuredFormatter().format(record))
        assert entry["exception"]["type"] == "ValueError"
        assert entry["exception"]["message"] == "bad probe"


class TestStructuredLogger:
    def test_fields_become_record_attributes(self, caplog):
        log = get_logger("switchyard.test.logger")
        with caplog.at_level(logging.INFO, logger="switchyard.test.logger"):
            log.info("cache_evicted", count=3, name="shadowed")

        (record,) = caplog.records
        assert record.getMessage() == "cache_evicted"
        assert record.count == 3
        assert record.data_name == "shadowed"

    def test_bound_fields_are_merged(self, caplog):
        log = get_logger("switchyard.test.bound").bind(role="writer")
        with caplog.at_level(logging.DEBUG, logger="switchyard.test.bound"):
            log.warning("agent_slow", role="editor", duration_ms=900)

        (record,) = caplog.records
        assert record.levelno == logging.WARNING
        assert record.role == "editor"
        assert record.duration_ms == 900

    def test_disabled_level_is_skipped(self, caplog):
        log = get_logger("switchyard.test.quiet")
        with caplog.at_level(logging.WARNING, logger="switchyard.test.quiet"):
            log.debug("noise")
        assert caplog.records == []


class TestPercentileTracker:
    def test_percentiles(self):
        tracker = PercentileTracker()
        for value in range(1, 101):
            tracker.record(float(value))
        assert tracker.percentile(50) == 51.0
        assert tracker.percentile(99) == 100.0
        assert tracker.mean() == 50.5
        assert tracker.count == 100

    def test_window_is_bounded(self):
        tracker = PercentileTracker(window_size=3)
        for value in (100.0, 1.0, 2.0, 3.0):
            tracker.record(value)
        assert tracker.count == 3
        assert tracker.percentile(99) == 3.0

    def test_empty(self):
        assert PercentileTracker().snapshot()["p50"] == 0.0


class TestMetricsCollector:
    def setup_method(self):
        self.metrics = MetricsCollector()

    def sample(self, name, **labels):
        return self.metrics.registry.get_sample_value(name, labels)

    def test_record_task(self):
        self.metrics.record_task(
            model_id="gpt", task="reasoning", latency_s=0.2,
            input_tokens=10, output_tokens=4, cost=0.01,
        )
        assert self.sample(
            "switchyard_task_requests_total", model="gpt", task="reasoning", status="success"
        ) == 1.0
        assert self.sample("switchyard_task_tokens_total", model="gpt", direction="input") == 10.0
        assert self.sample("switchyard_task_cost_total", model="gpt") == pytest.approx(0.01)
        assert self.metrics.get_latency_percentiles("gpt")["count"] == 1

    def test_cache_and_health(self):
        self.metrics.record_cache_access(cache_type="response", hit=True)
        self.metrics.record_cache_access(cache_type="response", hit=False)
        self.metrics.record_cache_eviction(0, reason="capacity")
        self.metrics.set_health_counts({"healthy": 2, "down": 1})

        assert self.sample("switchyard_cache_hits_total", cache_type="response") == 1.0
        assert self.sample("switchyard_cache_misses_total", cache_type="response") == 1.0
        assert self.sample("switchyard_cache_evictions_total", reason="capacity") is None
        assert self.sample("switchyard_health_models", state="down") == 1.0
        assert self.sample("switchyard_health_models", state="degraded") == 0.0

    def test_collectors_are_isolated(self):
        other = MetricsCollector()
        self.metrics.record_no_model(task="vision")
        assert other.registry.get_sample_value(
            "switchyard_router_no_model_total", {"task": "vision"}
        ) is None

    def test_export(self):
        self.metrics.record_routing(model_id="gpt", task="reasoning")
        text = self.metrics.export_prometheus().decode()
        assert "switchyard_router_decisions_total" in text
        assert 'model="gpt"' in text

    def test_summary(self):
        self.metrics.record_task(model_id="llama", task="reasoning", latency_s=0.1)
        assert set(self.metrics.get_summary()["models"]) == {"llama"}


class TestTracing:
    def test_disabled_tracer_yields_invalid_span(self):
        with Tracer("switchyard.test", enabled=False).span("x") as span:
            assert span is otel_trace.INVALID_SPAN

    def recording_tracer(self):
        exporter = InMemorySpanExporter()
        provider = TracerProvider()
        provider.add_span_processor(SimpleSpanProcessor(exporter))
        return Tracer("switchyard.test", provider=provider), exporter

    def test_span_publishes_trace_id_to_log_context(self):
        tracer, exporter = self.recording_tracer()
        with tracer.span("router.route", attributes={"task": "reasoning", "model": None}) as span:
            trace_id = get_request_context()["trace_id"]
            assert trace_id == otel_trace.format_trace_id(span.get_span_context().trace_id)
        assert "trace_id" not in get_request_context()

        (finished,) = exporter.get_finished_spans()
        assert finished.name == "router.route"
        assert dict(finished.attributes) == {"task": "reasoning"}

    def test_nested_span_restores_outer_trace_id(self):
        tracer, _ = self.recording_tracer()
        with tracer.span("outer"):
            outer = get_request_context()["trace_id"]
            with tracer.span("inner"):
                pass
            assert get_request_context()["trace_id"] == outer

    def test_span_records_error_and_reraises(self):
        tracer, exporter = self.recording_tracer()
        with pytest.raises(RuntimeError):
            with tracer.span("boom"):
                raise RuntimeError("inside span")
        (finished,) = exporter.get_finished_spans()
        assert finished.attributes["error.type"] == "RuntimeError"
        assert "trace_id" not in get_request_context()

    def test_trace_span_sync(self):
        @trace_span("test.sync")
        def add(a, b):
            return a + b

        assert add(2, 3) == 5
        assert add.__name__ == "add"

    @pytest.mark.asyncio
    async def test_trace_span_async(self):
        @trace_span()
        async def fetch():
            return "done"

        assert await fetch() == "done"
