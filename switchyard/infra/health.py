"""
Health Monitor — Periodic Backend Probes
==========================================

Keeps each enabled registry entry's HealthStatus current.

Probe per entry:
  - ``health_check`` URL set → HTTP GET with timeout; success = 2xx
  - no URL → success if the registry holds a backend for the entry

Status:
  - probe unsuccessful      → down
  - latency > 5000ms        → degraded
  - otherwise               → healthy
  - probe raised            → down, error_rate 1

Sweeps fan out through a bounded WorkerPool; one slow or failing probe
never blocks the others, and a sweep never raises.
"""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING, Any

import httpx

from switchyard.core.config import HealthMonitorConfig, WorkerConfig
from switchyard.core.exceptions import ProbeFailure
from switchyard.core.types import HealthState
from switchyard.infra.runtime.worker_pool import WorkerPool
from switchyard.infra.telemetry import get_logger, get_metrics, trace_span

if TYPE_CHECKING:
    from switchyard.registry.entries import HealthStatus
    from switchyard.registry.model_registry import ModelRegistry

logger = get_logger(__name__)
metrics = get_metrics()

class HealthMonitor:
    """
    Periodic health prober for registry entries.

    Usage:
        monitor = HealthMonitor(registry, HealthMonitorConfig(check_interval_s=30))
        await monitor.start()      # one sweep now, then every 30s
        monitor.get_overall_health()
        await monitor.stop()
    """

    def __init__(
        self,
        registry: ModelRegistry,
        config: HealthMonitorConfig | None = None,
        *,
        worker_pool: WorkerPool | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._registry = registry
        self._config = config or HealthMonitorConfig()
        self._owns_pool = worker_pool is None
        self._pool = worker_pool or WorkerPool(
            WorkerConfig(max_workers=self._config.max_concurrent_probes)
        )
        self._client = client
        self._owns_client = client is None
        self._task: asyncio.Task | None = None
        self._running = False
        self._probe_counts: dict[str, tuple[int, int]] = {}

    @property
    def is_running(self) -> bool:
        return self._running

    # ── Lifecycle ────────────────────────────────────────────────────

    async def start(self) -> None:
        """Sweep once, then keep sweeping every ``check_interval_s``."""
        if self._running:
            logger.warning("health_monitor_already_running")
            return

        self._running = True
        if self._owns_pool and not self._pool.running:
            await self._pool.start()

        await self.check_all_models()
        self._task = asyncio.create_task(self._loop(), name="health-monitor")
        logger.info("health_monitor_started", interval_s=self._config.check_interval_s)

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        self._running = False
        if self._owns_pool and self._pool.running:
            await self._pool.shutdown(drain=False)
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
        logger.info("health_monitor_stopped")

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self._config.check_interval_s)
            await self.check_all_models()

    # ── Probing ──────────────────────────────────────────────────────

    @trace_span("health.sweep")
    async def check_all_models(self) -> None:
        """Probe every enabled entry concurrently."""
        model_ids = self._registry.enabled_ids()
        logger.debug("checking_model_health", count=len(model_ids))

        if not self._pool.running:
            await self._pool.start()

        results = await self._pool.map(
            [lambda mid=mid: self.check_model(mid) for mid in model_ids],
            kind="health_probe",
        )
        for mid, result in zip(model_ids, results):
            if isinstance(result, BaseException):
                logger.error("model_health_sweep_error", exc=result, model_id=mid)

        metrics.set_health_counts(self.get_overall_health())

    async def check_model(self, model_id: str) -> HealthStatus | None:
        """Probe one entry and write its health snapshot. Unknown ids return None."""
        entry = self._registry.get_entry(model_id)
        if entry is None:
            return None

        start = time.perf_counter()
        try:
            if entry.health_check:
                success = await self._probe_url(entry.health_check)
            else:
                success = self._registry.get_backend(model_id) is not None
        except Exception as e:
            latency_ms = (time.perf_counter() - start) * 1000
            failure = ProbeFailure(model_id, f"{type(e).__name__}: {e}")
            self._count_probe(model_id, success=False)
            logger.warning("model_health_check_failed", model_id=model_id, error=failure.detail)
            metrics.record_health_probe(model_id=model_id, latency_s=latency_ms / 1000)
            return self._registry.update_health(
                model_id,
                status=HealthState.DOWN,
                latency_ms=latency_ms,
                error_rate=1.0,
                uptime=self._uptime(model_id),
            )

        latency_ms = (time.perf_counter() - start) * 1000
        if not success:
            status = HealthState.DOWN
        elif latency_ms > self._config.degraded_latency_ms:
            status = HealthState.DEGRADED
        else:
            status = HealthState.HEALTHY

        self._count_probe(model_id, success=success)
        metrics.record_health_probe(model_id=model_id, latency_s=latency_ms / 1000)
        logger.debug(
            "model_health_checked",
            model_id=model_id,
            status=status.value,
            latency_ms=round(latency_ms, 2),
        )
        return self._registry.update_health(
            model_id,
            status=status,
            latency_ms=latency_ms,
            error_rate=0.0,
            uptime=self._uptime(model_id),
        )

    async def _probe_url(self, url: str) -> bool:
        if self._client is None:
            self._client = httpx.AsyncClient()
        # httpx timeouts apply per read; wait_for caps the whole probe.
        response = await asyncio.wait_for(
            self._client.get(url, timeout=self._config.timeout_s),
            timeout=self._config.timeout_s,
        )
        return response.is_success

    def _count_probe(self, model_id: str, *, success: bool) -> None:
        ok, total = self._probe_counts.get(model_id, (0, 0))
        self._probe_counts[model_id] = (ok + int(success), total + 1)

    def _uptime(self, model_id: str) -> float:
        """Percent of probes since start that succeeded."""
        ok, total = self._probe_counts.get(model_id, (0, 0))
        return round(100.0 * ok / total, 2) if total else 100.0

    # ── Aggregation ──────────────────────────────────────────────────

    def get_overall_health(self) -> dict[str, int]:
        """Per-state counts over enabled entries."""
        model_ids = self._registry.enabled_ids()
        counts = {"healthy": 0, "degraded": 0, "down": 0}
        for mid in model_ids:
            health = self._registry.health(mid)
            if health is not None:
                counts[health.status.value] += 1
        return {**counts, "total": len(model_ids)}

    def get_stats(self) -> dict[str, Any]:
        return {
            "running": self._running,
            "interval_s": self._config.check_interval_s,
            "uptime": {mid: self._uptime(mid) for mid in self._probe_counts},
            **self.get_overall_health(),
        }
