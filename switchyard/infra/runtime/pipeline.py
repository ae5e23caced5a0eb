"""
Pipeline Executor — Dependency-Ordered Multi-Step Execution
=============================================================

Runs a graph of task steps:

  1. Ready set = remaining steps whose dependencies have all executed
  2. Parallel-marked ready steps fan out through the worker pool
  3. Non-parallel ready steps run one at a time, in listed order
  4. Repeat until nothing remains

An empty ready set with steps remaining is a cycle or a missing step;
the run stops with ``success=False`` and the results gathered so far.

Step inputs may reference earlier results as ``{{step-id}}``; the
placeholder is replaced by the JSON of that result. Placeholders for
unknown or failed steps are left as written.

A failed step is still "executed": its dependents run, they just see
the unresolved placeholder. ``execute()`` never raises.
"""

from __future__ import annotations

import asyncio
import json
import re
import time
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any

from switchyard.core.exceptions import (
    PipelineGraphError,
    RetryConfig,
    StepFailure,
    retry_async,
)
from switchyard.core.types import TaskType
from switchyard.infra.cache import ResponseCache
from switchyard.infra.runtime.dispatch import dispatch
from switchyard.infra.runtime.router import ModelRouter
from switchyard.infra.runtime.worker_pool import WorkerPool
from switchyard.infra.telemetry import get_logger, get_metrics, get_tracer, set_request_context
from switchyard.registry.entries import TaskRoutingOptions

if TYPE_CHECKING:
    from switchyard.registry.model_registry import ModelRegistry

logger = get_logger(__name__)
tracer = get_tracer(__name__)
metrics = get_metrics()

AUTO = "auto"
PLACEHOLDER = re.compile(r"\{\{([\w-]+)\}\}")

# ── Pipeline Types ───────────────────────────────────────────────────

@dataclass
class PipelineStep:
    """
    One node of a pipeline graph.

    Attributes:
        model:        Entry id, or "auto" to let the router pick
        input:        Task input; strings anywhere inside may hold {{step-id}}
        dependencies: Step ids that must execute first
        parallel:     Run concurrently with other parallel steps of the same round
        timeout:      Seconds; no limit when None
    """

    id: str
    model: str = AUTO
    task: str = TaskType.REASONING
    input: Any = None
    dependencies: list[str] = field(default_factory=list)
    parallel: bool = False
    timeout: float | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> PipelineStep:
        return cls(
            id=data["id"],
            model=data.get("model") or AUTO,
            task=data.get("task") or TaskType.REASONING,
            input=data.get("input"),
            dependencies=list(data.get("dependencies") or ()),
            parallel=bool(data.get("parallel", False)),
            timeout=data.get("timeout"),
        )

@dataclass
class PipelineConfig:
    id: str
    name: str = ""
    steps: list[PipelineStep] = field(default_factory=list)
    cache: bool = False
    retry: int = 0

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> PipelineConfig:
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            steps=[
                s if isinstance(s, PipelineStep) else PipelineStep.from_dict(s)
                for s in data.get("steps", ())
            ],
            cache=bool(data.get("cache", False)),
            retry=int(data.get("retry") or 0),
        )

@dataclass
class StepResult:
    id: str
    success: bool
    result: Any = None
    error: str | None = None
    duration_ms: float = 0.0
    attempts: int = 0
    model_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "success": self.success,
            "result": self.result,
            "error": self.error,
            "duration_ms": round(self.duration_ms, 2),
            "attempts": self.attempts,
            "model_id": self.model_id,
        }

@dataclass
class PipelineResult:
    pipeline_id: str
    success: bool
    steps: list[StepResult] = field(default_factory=list)
    duration_ms: float = 0.0
    result: Any = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "pipeline_id": self.pipeline_id,
            "success": self.success,
            "steps": [s.to_dict() for s in self.steps],
            "duration_ms": round(self.duration_ms, 2),
            "result": self.result,
            "error": self.error,
        }

# ── Placeholder Resolution ───────────────────────────────────────────

def resolve_input(value: Any, results: Mapping[str, Any]) -> Any:
    """Replace ``{{step-id}}`` placeholders, recursing through containers."""
    if isinstance(value, str):
        def substitute(match: re.Match[str]) -> str:
            step_id = match.group(1)
            if step_id not in results:
                return match.group(0)
            return json.dumps(results[step_id], default=str)

        return PLACEHOLDER.sub(substitute, value)
    if isinstance(value, Mapping):
        return {k: resolve_input(v, results) for k, v in value.items()}
    if isinstance(value, list):
        return [resolve_input(v, results) for v in value]
    if isinstance(value, tuple):
        return tuple(resolve_input(v, results) for v in value)
    return value

# ── Executor ─────────────────────────────────────────────────────────

class PipelineExecutor:
    """
    Executes pipeline graphs against the registry.

    Usage:
        executor = PipelineExecutor(registry, router, worker_pool=pool)
        result = await executor.execute(PipelineConfig.from_dict(payload))
    """

    def __init__(
        self,
        registry: ModelRegistry,
        router: ModelRouter | None = None,
        *,
        worker_pool: WorkerPool | None = None,
        retry_config: RetryConfig | None = None,
        cache: ResponseCache | None = None,
    ) -> None:
        self._registry = registry
        self._router = router
        self._pool = worker_pool or WorkerPool()
        self._retry_config = retry_config or RetryConfig()
        self._cache = cache

    async def execute(self, config: PipelineConfig) -> PipelineResult:
        start = time.perf_counter()
        step_results: list[StepResult] = []
        executed: set[str] = set()
        values: dict[str, Any] = {}

        set_request_context(pipeline_id=config.id)
        logger.info("pipeline_started", pipeline_id=config.id, steps=len(config.steps))
        try:
            with tracer.span(
                "pipeline.execute",
                attributes={"pipeline_id": config.id, "steps": len(config.steps)},
            ) as span:
                remaining = list(config.steps)
                while remaining:
                    ready = [s for s in remaining if all(d in executed for d in s.dependencies)]
                    if not ready:
                        graph_error = PipelineGraphError([s.id for s in remaining])
                        logger.error(
                            "pipeline_graph_error",
                            pipeline_id=config.id,
                            pending=graph_error.pending,
                        )
                        span.set_attribute("success", False)
                        return PipelineResult(
                            pipeline_id=config.id,
                            success=False,
                            steps=step_results,
                            duration_ms=(time.perf_counter() - start) * 1000,
                            error=graph_error.detail,
                        )

                    parallel = [s for s in ready if s.parallel]
                    sequential = [s for s in ready if not s.parallel]

                    if parallel:
                        outcomes = await self._fan_out(parallel, values, config)
                        for outcome in outcomes:
                            self._record(outcome, step_results, executed, values)

                    for step in sequential:
                        outcome = await self._run_step(step, values, config)
                        self._record(outcome, step_results, executed, values)

                    remaining = [s for s in remaining if s.id not in executed]

                success = all(r.success for r in step_results)
                last = step_results[-1] if step_results else None
                result = PipelineResult(
                    pipeline_id=config.id,
                    success=success,
                    steps=step_results,
                    duration_ms=(time.perf_counter() - start) * 1000,
                    result=values.get(last.id) if last is not None and last.success else None,
                )
                span.set_attribute("success", success)

            logger.info(
                "pipeline_executed",
                pipeline_id=config.id,
                success=result.success,
                duration_ms=round(result.duration_ms, 2),
                steps_succeeded=sum(1 for r in step_results if r.success),
                steps_failed=sum(1 for r in step_results if not r.success),
            )
            return result
        finally:
            set_request_context(pipeline_id=None)

    @staticmethod
    def _record(
        outcome: StepResult,
        step_results: list[StepResult],
        executed: set[str],
        values: dict[str, Any],
    ) -> None:
        step_results.append(outcome)
        executed.add(outcome.id)
        if outcome.success:
            values[outcome.id] = outcome.result

    async def _fan_out(
        self,
        steps: list[PipelineStep],
        values: dict[str, Any],
        config: PipelineConfig,
    ) -> list[StepResult]:
        if not self._pool.running:
            await self._pool.start()
        snapshot = dict(values)
        outcomes = await self._pool.map(
            [lambda s=s: self._run_step(s, snapshot, config) for s in steps],
            kind="pipeline_step",
        )
        results = []
        for step, outcome in zip(steps, outcomes):
            if isinstance(outcome, BaseException):
                results.append(StepResult(id=step.id, success=False, error=str(outcome)))
            else:
                results.append(outcome)
        return results

    async def _run_step(
        self,
        step: PipelineStep,
        values: Mapping[str, Any],
        config: PipelineConfig,
    ) -> StepResult:
        """Execute one step, capturing any failure into the result."""
        start = time.perf_counter()
        payload = resolve_input(step.input, values)
        attempts = 0
        model_id: str | None = None

        async def attempt() -> Any:
            nonlocal attempts, model_id
            attempts += 1
            model_id = self._target(step)
            return await self._execute_step(step, model_id, payload, config)

        attempt.__name__ = f"step:{step.id}"
        logger.debug("pipeline_step_started", step_id=step.id, task=step.task)

        try:
            if config.retry > 0:
                value = await retry_async(
                    attempt, replace(self._retry_config, max_attempts=config.retry + 1)
                )
            else:
                value = await attempt()
        except Exception as e:
            failure = _as_step_failure(step, e)
            duration_ms = (time.perf_counter() - start) * 1000
            metrics.record_pipeline_step(task=step.task, success=False)
            logger.error(
                "pipeline_step_failed",
                step_id=step.id,
                duration_ms=round(duration_ms, 2),
                attempts=attempts,
                error=failure.detail,
            )
            return StepResult(
                id=step.id,
                success=False,
                error=failure.detail,
                duration_ms=duration_ms,
                attempts=attempts,
                model_id=model_id,
            )

        duration_ms = (time.perf_counter() - start) * 1000
        metrics.record_pipeline_step(task=step.task, success=True)
        logger.debug("pipeline_step_executed", step_id=step.id, duration_ms=round(duration_ms, 2))
        return StepResult(
            id=step.id,
            success=True,
            result=value,
            duration_ms=duration_ms,
            attempts=attempts,
            model_id=model_id,
        )

    def _target(self, step: PipelineStep) -> str:
        if step.model != AUTO:
            return self._registry.resolve_id(step.model)
        options = TaskRoutingOptions(type=step.task)
        if self._router is not None:
            return self._router.route_task(options).model_id
        return self._registry.resolve_for_task(options)

    async def _execute_step(
        self,
        step: PipelineStep,
        model_id: str,
        payload: Any,
        config: PipelineConfig,
    ) -> Any:
        cache_key = None
        if config.cache and self._cache is not None:
            cache_key = self._cache.generate_key(model_id, step.task, payload)
            cached = self._cache.get(cache_key)
            if cached is not None:
                return cached

        backend = self._registry.get_backend(model_id)
        with tracer.span("pipeline.step", attributes={"step_id": step.id, "model": model_id}):
            call = dispatch(backend, step.task, payload)
            if step.timeout:
                value = await asyncio.wait_for(call, timeout=step.timeout)
            else:
                value = await call

        if cache_key is not None and value is not None:
            self._cache.set(cache_key, value)
        return value

def _as_step_failure(step: PipelineStep, error: Exception) -> StepFailure:
    if isinstance(error, StepFailure):
        return error
    if isinstance(error, TimeoutError):
        detail = f"Step {step.id} timed out after {step.timeout}s"
    else:
        detail = str(error) or type(error).__name__
    return StepFailure(detail, step_id=step.id, original_error=error)
