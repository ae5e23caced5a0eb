"""
Registry Manager — Control Plane Façade
=========================================

Wires the registry, router, cache, pipeline executor, health monitor,
orchestrator and worker pool together behind one object.

Task flow:
    cache lookup → route → resolve backend → dispatch → cost record
    → cache store → result

Usage:
    async with RegistryManager(ManagerConfig.from_env()) as manager:
        manager.register_model(RegistryEntry.from_dict(entry_json))
        answer = await manager.execute_task(
            TaskRoutingOptions(type="reasoning"),
            {"messages": [{"role": "user", "content": "hi"}]},
        )
"""

from __future__ import annotations

import asyncio
import time
from datetime import datetime
from typing import Any

from switchyard.agents import AgentConfig, CoordinationResult, MultiAgentOrchestrator
from switchyard.core.config import ManagerConfig
from switchyard.core.exceptions import BackendError, SwitchyardError
from switchyard.core.types import UpdatePolicy
from switchyard.infra.cache import ResponseCache
from switchyard.infra.health import HealthMonitor
from switchyard.infra.runtime.backends import BackendFactoryRegistry, ModelBackend
from switchyard.infra.runtime.dispatch import dispatch, estimate_usage
from switchyard.infra.runtime.pipeline import PipelineConfig, PipelineExecutor, PipelineResult
from switchyard.infra.runtime.router import ModelRouter, RoutingDecision
from switchyard.infra.runtime.worker_pool import WorkerPool
from switchyard.infra.telemetry import get_logger, get_metrics, get_tracer
from switchyard.registry import (
    CostBreakdown,
    CostMetric,
    ModelPreferences,
    ModelRegistry,
    RegistryEntry,
    TaskRoutingOptions,
)

logger = get_logger(__name__)
tracer = get_tracer(__name__)
metrics = get_metrics()

AUTO_MODEL = "auto"

class RegistryManager:
    """Unified entry point for every control-plane operation."""

    def __init__(
        self,
        config: ManagerConfig | None = None,
        *,
        registry: ModelRegistry | None = None,
        factories: BackendFactoryRegistry | None = None,
        cache: ResponseCache | None = None,
        health_monitor: HealthMonitor | None = None,
        worker_pool: WorkerPool | None = None,
    ) -> None:
        self._config = config or ManagerConfig()
        self._registry = registry or ModelRegistry(factories=factories)
        self._pool = worker_pool or WorkerPool(self._config.workers)
        self._router = ModelRouter(self._registry, self._config.router)
        self._cache = cache or ResponseCache(self._config.cache)
        self._pipeline = PipelineExecutor(
            self._registry,
            self._router,
            worker_pool=self._pool,
            cache=self._cache if self._config.enable_cache else None,
        )
        self._health = health_monitor or HealthMonitor(
            self._registry, self._config.health, worker_pool=self._pool
        )
        self._orchestrator = MultiAgentOrchestrator(self._registry)
        self._initialized = False

        logger.info(
            "registry_manager_created",
            cache_enabled=self._config.enable_cache,
            health_monitoring_enabled=self._config.enable_health_monitoring,
        )

    # ── Accessors ────────────────────────────────────────────────────

    @property
    def config(self) -> ManagerConfig:
        return self._config

    @property
    def registry(self) -> ModelRegistry:
        return self._registry

    @property
    def router(self) -> ModelRouter:
        return self._router

    @property
    def cache(self) -> ResponseCache:
        return self._cache

    @property
    def pipeline(self) -> PipelineExecutor:
        return self._pipeline

    @property
    def health_monitor(self) -> HealthMonitor:
        return self._health

    @property
    def orchestrator(self) -> MultiAgentOrchestrator:
        return self._orchestrator

    @property
    def worker_pool(self) -> WorkerPool:
        return self._pool

    # ── Lifecycle ────────────────────────────────────────────────────

    async def init(self) -> None:
        """Start the worker pool, cache sweeper and health monitoring."""
        if self._initialized:
            return
        await self._pool.start()
        if self._config.enable_cache:
            await self._cache.start()
        if self._config.enable_health_monitoring:
            await self._health.start()
        self._initialized = True
        logger.info("registry_manager_initialized", models=len(self._registry))

    async def cleanup(self) -> None:
        """Stop background work and close backend clients."""
        await self._health.stop()
        await self._cache.stop()
        await self._pool.shutdown(drain=True)
        await self._registry.aclose()
        self._initialized = False
        logger.info("registry_manager_cleanup_completed")

    async def __aenter__(self) -> RegistryManager:
        await self.init()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.cleanup()

    # ── Registry Operations ──────────────────────────────────────────

    def register_model(self, entry: RegistryEntry) -> None:
        self._registry.register(entry)

    def unregister_model(self, model_id: str) -> None:
        self._registry.unregister(model_id)

    def enable_model(self, model_id: str) -> None:
        self._registry.enable(model_id)

    def disable_model(self, model_id: str) -> None:
        self._registry.disable(model_id)

    def pin_version(self, model_id: str, version: str) -> None:
        self._registry.pin_version(model_id, version)

    def set_update_policy(self, model_id: str, policy: UpdatePolicy | str) -> None:
        self._registry.set_update_policy(model_id, policy)

    def set_preferences(self, **preferences: Any) -> ModelPreferences:
        return self._registry.set_preferences(**preferences)

    # ── Routing / Execution ──────────────────────────────────────────

    def route_task(self, options: TaskRoutingOptions) -> tuple[ModelBackend, RoutingDecision]:
        decision = self._router.route_task(options)
        return self._registry.get_backend(decision.model_id), decision

    async def execute_task(
        self,
        options: TaskRoutingOptions,
        input: Any,
        *,
        temperature: float | None = None,
        max_tokens: int | None = None,
        timeout: float | None = None,
    ) -> Any:
        """
        Run one task, served from cache when an identical request was
        answered recently.

        The cache key's model field is the preferred provider, or "auto"
        when none is given, and the task type is keyed separately. The
        key is built before routing, so the same request is a hit whichever
        entry ends up serving it.

        Raises:
            NoModelAvailableError: no entry can serve the task.
            SwitchyardError: backend failures, re-raised with their type;
                anything else is wrapped in BackendError.
        """
        cache_key = None
        if self._config.enable_cache:
            cache_key = self._cache.generate_key(
                options.preferred_provider or AUTO_MODEL,
                options.type,
                input,
                temperature,
                max_tokens,
            )
            cached = self._cache.get(cache_key)
            if cached is not None:
                logger.debug("task_cache_hit", task=options.type)
                return cached

        with tracer.span("manager.execute_task", attributes={"task": options.type}) as span:
            backend, decision = self.route_task(options)
            span.set_attribute("model", decision.model_id)

            start = time.perf_counter()
            try:
                call = dispatch(
                    backend, options.type, input, temperature=temperature, max_tokens=max_tokens
                )
                result = await asyncio.wait_for(call, timeout=timeout) if timeout else await call
            except Exception as e:
                latency_s = time.perf_counter() - start
                metrics.record_task(
                    model_id=decision.model_id,
                    task=options.type,
                    latency_s=latency_s,
                    status="error",
                )
                logger.error(
                    "task_execution_failed",
                    task=options.type,
                    model_id=decision.model_id,
                    error=str(e) or type(e).__name__,
                )
                if isinstance(e, SwitchyardError):
                    raise
                if isinstance(e, TimeoutError):
                    raise BackendError(
                        f"Task timed out after {timeout}s", decision.provider, status_code=504
                    ) from e
                raise BackendError(str(e) or type(e).__name__, decision.provider) from e

            latency_s = time.perf_counter() - start
            self._record_usage(decision, options, input, result, latency_s)

        if cache_key is not None:
            self._cache.set(cache_key, result)
        return result

    def _record_usage(
        self,
        decision: RoutingDecision,
        options: TaskRoutingOptions,
        payload: Any,
        result: Any,
        latency_s: float,
    ) -> None:
        entry = self._registry.get_entry(decision.model_id)
        usage = estimate_usage(payload, result)
        cost = CostBreakdown.for_usage(usage, entry.cost if entry else None)
        self.record_metrics(
            CostMetric(
                model_id=decision.model_id,
                tokens=usage,
                cost=cost,
                latency_ms=latency_s * 1000,
            )
        )
        metrics.record_task(
            model_id=decision.model_id,
            task=options.type,
            latency_s=latency_s,
            input_tokens=usage.input,
            output_tokens=usage.output,
            cost=cost.total,
        )

    async def execute_pipeline(self, config: PipelineConfig) -> PipelineResult:
        return await self._pipeline.execute(config)

    async def coordinate_agents(
        self,
        task: str,
        context: dict[str, Any],
        agents: list[AgentConfig],
    ) -> dict[str, CoordinationResult]:
        return await self._orchestrator.coordinate_task(task, context, agents)

    # ── Metrics / Stats ──────────────────────────────────────────────

    def record_metrics(self, metric: CostMetric) -> None:
        self._registry.record_cost(metric)

    def get_overall_health(self) -> dict[str, int]:
        return self._health.get_overall_health()

    def get_cache_stats(self) -> dict[str, Any]:
        return self._cache.get_stats()

    def get_total_costs(
        self,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> dict[str, float]:
        return self._registry.total_costs(start, end)

    def get_stats(self) -> dict[str, Any]:
        return {
            "models": len(self._registry),
            "enabled": len(self._registry.enabled_ids()),
            "router": self._router.get_stats(),
            "worker_pool": self._pool.get_stats(),
            "cache": self._cache.get_stats(),
            "health": self._health.get_stats(),
        }
