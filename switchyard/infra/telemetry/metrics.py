"""
Metrics Collector — Prometheus + Internal Percentiles
=======================================================

Typed metric primitives for the control plane, exported through a
Prometheus ``CollectorRegistry`` owned by the collector.

Design:
  - One collector per process (``get_metrics()``), tests may build their own
  - Pre-defined metrics for routing, task execution, cache, health,
    pipelines and agent coordination
  - Rolling latency percentiles (p50, p95, p99) per model

Metric Naming Convention:
  - switchyard_{component}_{metric}_{unit}
  - e.g., switchyard_task_latency_seconds
"""

from __future__ import annotations

import threading
from collections import deque
from typing import Any

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

# ── Percentile Tracker ─────────────────────────────────────────────

class PercentileTracker:
    """Rolling-window percentile calculator with a cached sorted view."""

    __slots__ = ("_dirty", "_lock", "_sorted", "_values")

    def __init__(self, window_size: int = 1000):
        self._values: deque[float] = deque(maxlen=window_size)
        self._lock = threading.Lock()
        self._dirty = True
        self._sorted: list[float] = []

    def record(self, value: float) -> None:
        with self._lock:
            self._values.append(value)
            self._dirty = True

    def percentile(self, p: float) -> float:
        """Percentile value for p in 0-100. Re-sorts only after new samples."""
        with self._lock:
            if not self._values:
                return 0.0
            if self._dirty:
                self._sorted = sorted(self._values)
                self._dirty = False
            idx = int(len(self._sorted) * p / 100)
            return self._sorted[min(idx, len(self._sorted) - 1)]

    @property
    def count(self) -> int:
        return len(self._values)

    def mean(self) -> float:
        with self._lock:
            if not self._values:
                return 0.0
            return sum(self._values) / len(self._values)

    def snapshot(self) -> dict[str, float]:
        return {
            "p50": self.percentile(50),
            "p95": self.percentile(95),
            "p99": self.percentile(99),
            "mean": self.mean(),
            "count": self.count,
        }

# ── Metrics Collector ──────────────────────────────────────────────

class MetricsCollector:
    """
    Centralized metrics for routing, execution, caching and health.

    Usage:
        metrics = get_metrics()
        metrics.record_task(model_id="gpt-4o", task="reasoning", latency_s=0.4)
        metrics.export_prometheus()
    """

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self.registry = registry or CollectorRegistry()
        self._lock = threading.Lock()
        self._latency: dict[str, PercentileTracker] = {}

        # ── Routing ──
        self.routing_decisions = Counter(
            "switchyard_router_decisions_total",
            "Routing decisions by selected model",
            labelnames=["model", "task", "path"],  # path: scored / privacy
            registry=self.registry,
        )
        self.routing_failures = Counter(
            "switchyard_router_no_model_total",
            "Routing attempts with no eligible model",
            labelnames=["task"],
            registry=self.registry,
        )

        # ── Task Execution ──
        self.task_latency = Histogram(
            "switchyard_task_latency_seconds",
            "Backend task latency",
            labelnames=["model", "task"],
            buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
            registry=self.registry,
        )
        self.task_requests = Counter(
            "switchyard_task_requests_total",
            "Executed tasks",
            labelnames=["model", "task", "status"],
            registry=self.registry,
        )
        self.task_tokens = Counter(
            "switchyard_task_tokens_total",
            "Estimated tokens processed",
            labelnames=["model", "direction"],  # direction: input/output
            registry=self.registry,
        )
        self.task_cost = Counter(
            "switchyard_task_cost_total",
            "Accumulated task cost in provider currency units",
            labelnames=["model"],
            registry=self.registry,
        )

        # ── Cache ──
        self.cache_hits = Counter(
            "switchyard_cache_hits_total",
            "Cache hits",
            labelnames=["cache_type"],
            registry=self.registry,
        )
        self.cache_misses = Counter(
            "switchyard_cache_misses_total",
            "Cache misses",
            labelnames=["cache_type"],
            registry=self.registry,
        )
        self.cache_evictions = Counter(
            "switchyard_cache_evictions_total",
            "Cache evictions",
            labelnames=["reason"],  # reason: capacity / expired
            registry=self.registry,
        )

        # ── Health ──
        self.health_probe_latency = Histogram(
            "switchyard_health_probe_latency_seconds",
            "Health probe latency",
            labelnames=["model"],
            buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
            registry=self.registry,
        )
        self.health_models = Gauge(
            "switchyard_health_models",
            "Enabled models per health state",
            labelnames=["state"],
            registry=self.registry,
        )

        # ── Pipelines / Agents ──
        self.pipeline_steps = Counter(
            "switchyard_pipeline_steps_total",
            "Pipeline step outcomes",
            labelnames=["task", "status"],
            registry=self.registry,
        )
        self.agent_turns = Counter(
            "switchyard_agent_turns_total",
            "Agent coordination turns",
            labelnames=["role", "status"],
            registry=self.registry,
        )

    # ── Recording Methods ──────────────────────────────────────────

    def record_routing(self, *, model_id: str, task: str, path: str = "scored") -> None:
        self.routing_decisions.labels(model=model_id, task=task, path=path).inc()

    def record_no_model(self, *, task: str) -> None:
        self.routing_failures.labels(task=task).inc()

    def record_task(
        self,
        *,
        model_id: str,
        task: str,
        latency_s: float,
        status: str = "success",
        input_tokens: int = 0,
        output_tokens: int = 0,
        cost: float = 0.0,
    ) -> None:
        """Record a completed (or failed) backend task."""
        self._tracker(model_id).record(latency_s)
        self.task_latency.labels(model=model_id, task=task).observe(latency_s)
        self.task_requests.labels(model=model_id, task=task, status=status).inc()
        if input_tokens > 0:
            self.task_tokens.labels(model=model_id, direction="input").inc(input_tokens)
        if output_tokens > 0:
            self.task_tokens.labels(model=model_id, direction="output").inc(output_tokens)
        if cost > 0:
            self.task_cost.labels(model=model_id).inc(cost)

    def record_cache_access(self, *, cache_type: str, hit: bool) -> None:
        if hit:
            self.cache_hits.labels(cache_type=cache_type).inc()
        else:
            self.cache_misses.labels(cache_type=cache_type).inc()

    def record_cache_eviction(self, count: int, *, reason: str) -> None:
        if count > 0:
            self.cache_evictions.labels(reason=reason).inc(count)

    def record_health_probe(self, *, model_id: str, latency_s: float) -> None:
        self.health_probe_latency.labels(model=model_id).observe(latency_s)

    def set_health_counts(self, counts: dict[str, int]) -> None:
        for state in ("healthy", "degraded", "down"):
            self.health_models.labels(state=state).set(counts.get(state, 0))

    def record_pipeline_step(self, *, task: str, success: bool) -> None:
        self.pipeline_steps.labels(
            task=task, status="success" if success else "error"
        ).inc()

    def record_agent_turn(self, *, role: str, success: bool) -> None:
        self.agent_turns.labels(role=role, status="success" if success else "error").inc()

    # ── Percentile Access ──────────────────────────────────────────

    def _tracker(self, model_id: str) -> PercentileTracker:
        if model_id not in self._latency:
            with self._lock:
                if model_id not in self._latency:
                    self._latency[model_id] = PercentileTracker()
        return self._latency[model_id]

    def get_latency_percentiles(self, model_id: str) -> dict[str, float]:
        return self._tracker(model_id).snapshot()

    def get_summary(self) -> dict[str, Any]:
        """Latency summary per model for dashboards."""
        return {
            "models": {m: t.snapshot() for m, t in self._latency.items()},
        }

    def export_prometheus(self) -> bytes:
        """Export metrics in Prometheus text format."""
        return generate_latest(self.registry)

# ── Process Accessor ───────────────────────────────────────────────

_metrics: MetricsCollector | None = None

def get_metrics() -> MetricsCollector:
    # Lock-free benign-race singleton; telemetry only.
    global _metrics
    if _metrics is not None:
        return _metrics
    _metrics = MetricsCollector()
    return _metrics
