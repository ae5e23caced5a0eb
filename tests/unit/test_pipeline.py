"""
Pipeline Executor — Unit Tests
===============================

Dependency ordering, placeholder substitution, parallel rounds,
per-step failure capture, graph errors, timeouts, retries and caching.
"""

import time

import pytest

from fakes import fake_factories, make_entry
from switchyard.core.config import WorkerConfig
from switchyard.core.exceptions import RetryConfig
from switchyard.core.types import HealthState
from switchyard.infra.cache import ResponseCache
from switchyard.infra.runtime.pipeline import (
    PipelineConfig,
    PipelineExecutor,
    PipelineStep,
    resolve_input,
)
from switchyard.infra.runtime.router import ModelRouter
from switchyard.infra.runtime.worker_pool import WorkerPool
from switchyard.infra.telemetry import get_request_context
from switchyard.registry import ModelRegistry

NO_DELAY = RetryConfig(initial_delay=0.0, max_delay=0.0)


class TestResolveInput:
    def test_substitutes_json_encoded_results(self):
        results = {"a": "text", "b": {"score": 1}}
        assert resolve_input("x {{a}} y {{b}}", results) == 'x "text" y {"score": 1}'

    def test_unknown_placeholder_is_kept(self):
        assert resolve_input("use {{missing}}", {}) == "use {{missing}}"

    def test_recurses_through_containers(self):
        value = {"messages": [{"role": "user", "content": "{{step-one}}"}], "n": 3}
        resolved = resolve_input(value, {"step-one": "hi"})
        assert resolved == {"messages": [{"role": "user", "content": '"hi"'}], "n": 3}

    def test_non_string_values_pass_through(self):
        assert resolve_input(42, {"a": 1}) == 42
        assert resolve_input(None, {}) is None


class TestPipelineConfig:
    def test_from_dict(self):
        config = PipelineConfig.from_dict({
            "id": "p1",
            "name": "demo",
            "steps": [
                {"id": "a", "input": "hi"},
                {"id": "b", "model": "gpt", "dependencies": ["a"], "parallel": True, "timeout": 5},
            ],
            "retry": 2,
        })
        assert config.retry == 2
        assert config.steps[0].model == "auto"
        assert config.steps[0].task == "reasoning"
        assert config.steps[1].dependencies == ["a"]
        assert config.steps[1].parallel is True


class TestExecution:
    def setup_method(self):
        self.registry = ModelRegistry(factories=fake_factories())
        self.registry.register(make_entry("gpt", priority=1))
        self.registry.register(make_entry("slow", priority=50, config={"delay": 0.1}))
        self.registry.register(make_entry(
            "broken", priority=90, config={"error": "backend exploded"}
        ))
        self.registry.register(make_entry("embedder", capabilities=("embeddings",), priority=5))
        self.router = ModelRouter(self.registry)
        self.executor = PipelineExecutor(
            self.registry,
            self.router,
            worker_pool=WorkerPool(WorkerConfig(max_workers=4)),
            retry_config=NO_DELAY,
        )

    @pytest.mark.asyncio
    async def test_dependencies_and_placeholders(self):
        config = PipelineConfig(id="p", steps=[
            PipelineStep(id="summary", model="gpt", input="Summarize {{draft}}", dependencies=["draft"]),
            PipelineStep(id="draft", model="gpt", input="Write a draft"),
        ])

        result = await self.executor.execute(config)

        assert result.success
        assert [s.id for s in result.steps] == ["draft", "summary"]
        backend = self.registry.get_backend("gpt")
        _, messages, _ = backend.calls[-1]
        assert messages == [{"role": "user", "content": 'Summarize "answer from gpt"'}]
        assert result.result == "answer from gpt"

    @pytest.mark.asyncio
    async def test_parallel_steps_run_concurrently(self):
        config = PipelineConfig(id="p", steps=[
            PipelineStep(id="one", model="slow", input="a", parallel=True),
            PipelineStep(id="two", model="slow", input="b", parallel=True),
            PipelineStep(id="three", model="slow", input="c", parallel=True),
        ])

        start = time.perf_counter()
        result = await self.executor.execute(config)
        elapsed = time.perf_counter() - start

        assert result.success
        assert {s.id for s in result.steps} == {"one", "two", "three"}
        assert elapsed < 0.25

    @pytest.mark.asyncio
    async def test_parallel_round_precedes_sequential(self):
        config = PipelineConfig(id="p", steps=[
            PipelineStep(id="seq", model="gpt", input="s"),
            PipelineStep(id="par", model="gpt", input="p", parallel=True),
        ])
        result = await self.executor.execute(config)
        assert [s.id for s in result.steps] == ["par", "seq"]

    @pytest.mark.asyncio
    async def test_failed_step_is_captured(self):
        config = PipelineConfig(id="p", steps=[
            PipelineStep(id="bad", model="broken", input="x"),
            PipelineStep(id="after", model="gpt", input="Use {{bad}}", dependencies=["bad"]),
        ])

        result = await self.executor.execute(config)

        assert result.success is False
        bad, after = result.steps
        assert bad.success is False
        assert bad.error == "backend exploded"
        assert bad.model_id == "broken"
        assert after.success is True
        _, messages, _ = self.registry.get_backend("gpt").calls[-1]
        assert messages[0]["content"] == "Use {{bad}}"

    @pytest.mark.asyncio
    async def test_result_is_last_executed_step(self):
        config = PipelineConfig(id="p", steps=[
            PipelineStep(id="ok", model="gpt", input="x"),
            PipelineStep(id="last", model="broken", input="y", dependencies=["ok"]),
        ])
        result = await self.executor.execute(config)
        assert result.result is None
        assert result.steps[-1].id == "last"

    @pytest.mark.asyncio
    async def test_cycle_is_reported_not_raised(self):
        config = PipelineConfig(id="p", steps=[
            PipelineStep(id="a", model="gpt", dependencies=["b"]),
            PipelineStep(id="b", model="gpt", dependencies=["a"]),
        ])
        result = await self.executor.execute(config)
        assert result.success is False
        assert result.error == "Circular dependency or missing step: a, b"
        assert result.steps == []

    @pytest.mark.asyncio
    async def test_missing_dependency_after_progress(self):
        config = PipelineConfig(id="p", steps=[
            PipelineStep(id="first", model="gpt", input="x"),
            PipelineStep(id="orphan", model="gpt", dependencies=["first", "ghost"]),
        ])
        result = await self.executor.execute(config)
        assert result.success is False
        assert [s.id for s in result.steps] == ["first"]
        assert "orphan" in result.error

    @pytest.mark.asyncio
    async def test_step_timeout(self):
        config = PipelineConfig(id="p", steps=[
            PipelineStep(id="wait", model="slow", input="x", timeout=0.01),
        ])
        result = await self.executor.execute(config)
        assert result.success is False
        assert result.steps[0].error == "Step wait timed out after 0.01s"

    @pytest.mark.asyncio
    async def test_retry_attempts(self):
        config = PipelineConfig(
            id="p",
            steps=[PipelineStep(id="bad", model="broken", input="x")],
            retry=2,
        )
        result = await self.executor.execute(config)
        assert result.steps[0].attempts == 3
        calls = self.registry.get_backend("broken").calls
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_auto_model_routes_by_task(self):
        config = PipelineConfig(id="p", steps=[
            PipelineStep(id="vec", task="embedding", input="hello"),
        ])
        result = await self.executor.execute(config)
        assert result.steps[0].model_id == "embedder"
        assert result.result == [5.0, 0.5]

    @pytest.mark.asyncio
    async def test_unhealthy_explicit_model_falls_back(self):
        self.registry.update_health("broken", status=HealthState.DOWN)
        config = PipelineConfig(id="p", steps=[PipelineStep(id="s", model="broken", input="x")])
        result = await self.executor.execute(config)
        assert result.success
        assert result.steps[0].model_id == "gpt"

    @pytest.mark.asyncio
    async def test_no_model_for_auto_step(self):
        config = PipelineConfig(id="p", steps=[PipelineStep(id="hear", task="audio", input="x")])
        result = await self.executor.execute(config)
        assert result.success is False
        assert "No model available for task type: audio" in result.steps[0].error

    @pytest.mark.asyncio
    async def test_without_router_uses_registry_selection(self):
        executor = PipelineExecutor(self.registry, worker_pool=WorkerPool())
        config = PipelineConfig(id="p", steps=[PipelineStep(id="s", input="x")])
        result = await executor.execute(config)
        assert result.steps[0].model_id == "gpt"

    @pytest.mark.asyncio
    async def test_cache_flag_reuses_step_results(self):
        executor = PipelineExecutor(
            self.registry, self.router, worker_pool=WorkerPool(), cache=ResponseCache()
        )
        config = PipelineConfig(
            id="p", steps=[PipelineStep(id="s", model="gpt", input="same")], cache=True
        )
        await executor.execute(config)
        await executor.execute(config)
        assert len(self.registry.get_backend("gpt").calls) == 1

    @pytest.mark.asyncio
    async def test_empty_pipeline(self):
        result = await self.executor.execute(PipelineConfig(id="empty"))
        assert result.success
        assert result.result is None

    @pytest.mark.asyncio
    async def test_pipeline_context_is_cleared(self):
        await self.executor.execute(PipelineConfig(id="ctx", steps=[PipelineStep(id="s", input="x")]))
        assert "pipeline_id" not in get_request_context()

    @pytest.mark.asyncio
    async def test_to_dict(self):
        result = await self.executor.execute(
            PipelineConfig(id="p", steps=[PipelineStep(id="s", model="gpt", input="x")])
        )
        data = result.to_dict()
        assert data["pipeline_id"] == "p"
        assert data["steps"][0]["id"] == "s"
        assert data["steps"][0]["success"] is True
