"""
Multi-Agent Orchestrator — Unit Tests
======================================
"""

import json

import pytest

from fakes import fake_factories, make_entry
from switchyard.agents import AgentConfig, AgentTurn, MultiAgentOrchestrator
from switchyard.infra.telemetry import get_request_context
from switchyard.registry import ModelRegistry


def prompt_context(message: dict) -> dict:
    _, context = message["content"].split("\nContext: ", 1)
    return json.loads(context)


class TestCoordination:
    def setup_method(self):
        self.registry = ModelRegistry(factories=fake_factories())
        self.registry.register(make_entry("gpt", provider="openai", config={"response": "draft v1"}))
        self.registry.register(make_entry("llama", provider="ollama", config={"response": "looks good"}))
        self.registry.register(make_entry(
            "broken", provider="openai", config={"error": "backend exploded"}
        ))
        self.registry.register(make_entry("slow", provider="openai", config={"delay": 0.2}))
        self.orchestrator = MultiAgentOrchestrator(self.registry)

    @pytest.mark.asyncio
    async def test_agents_run_in_order_with_previous_results(self):
        results = await self.orchestrator.coordinate_task(
            "Write release notes",
            {"version": "2.1"},
            [AgentConfig("openai", "writer"), AgentConfig("ollama", "reviewer")],
        )

        assert list(results) == ["openai:writer", "ollama:reviewer"]
        assert results["openai:writer"].response == "draft v1"
        assert results["ollama:reviewer"].response == "looks good"

        _, messages, _ = self.registry.get_backend("llama").calls[0]
        prompt = messages[-1]
        assert prompt["role"] == "user"
        assert prompt["content"].startswith("Task: Write release notes\nContext: ")
        context = prompt_context(prompt)
        assert context["version"] == "2.1"
        assert context["role"] == "reviewer"
        assert context["previousResults"]["openai:writer"]["response"] == "draft v1"

    @pytest.mark.asyncio
    async def test_failure_does_not_abort_coordination(self):
        results = await self.orchestrator.coordinate_task(
            "Task",
            {},
            [
                AgentConfig("openai", "critic", model_id="broken"),
                AgentConfig("ollama", "reviewer"),
            ],
        )
        critic = results["openai:critic"]
        assert critic.success is False
        assert critic.error == "backend exploded"
        assert "response" not in critic.to_dict()
        assert results["ollama:reviewer"].success

    @pytest.mark.asyncio
    async def test_no_model_is_captured(self):
        orchestrator = MultiAgentOrchestrator(ModelRegistry(factories=fake_factories()))
        results = await orchestrator.coordinate_task("Task", {}, [AgentConfig("openai", "writer")])
        assert "No model available" in results["openai:writer"].error

    @pytest.mark.asyncio
    async def test_agent_timeout(self):
        results = await self.orchestrator.coordinate_task(
            "Task", {}, [AgentConfig("openai", "waiter", model_id="slow", timeout=0.01)]
        )
        assert results["openai:waiter"].error == "TimeoutError"

    @pytest.mark.asyncio
    async def test_agent_role_context_is_cleared(self):
        await self.orchestrator.coordinate_task("Task", {}, [AgentConfig("openai", "writer")])
        assert "agent_role" not in get_request_context()


class TestAgentMemory:
    def setup_method(self):
        self.registry = ModelRegistry(factories=fake_factories())
        self.registry.register(make_entry("gpt", provider="openai", config={"response": "ok"}))
        self.registry.register(make_entry("broken", provider="anthropic", config={"error": "nope"}))
        self.agent = AgentConfig("openai", "writer")

    @pytest.mark.asyncio
    async def test_memory_replayed_on_next_turn(self):
        orchestrator = MultiAgentOrchestrator(self.registry)
        await orchestrator.coordinate_task("first", {}, [self.agent])
        await orchestrator.coordinate_task("second", {}, [self.agent])

        _, messages, _ = self.registry.get_backend("gpt").calls[-1]
        assert [m["role"] for m in messages] == ["user", "assistant", "user"]
        assert messages[1]["content"] == "ok"
        assert len(orchestrator.get_agent_memory("openai", "writer")) == 4

    @pytest.mark.asyncio
    async def test_memory_is_bounded(self):
        orchestrator = MultiAgentOrchestrator(self.registry, max_memory_size=3)
        for i in range(4):
            await orchestrator.coordinate_task(f"task {i}", {}, [self.agent])

        memory = orchestrator.get_agent_memory("openai", "writer")
        assert len(memory) == 3
        assert memory[-1] == AgentTurn("assistant", "ok")
        assert memory[-2].content.startswith("Task: task 3")

    @pytest.mark.asyncio
    async def test_failed_turn_leaves_memory_untouched(self):
        orchestrator = MultiAgentOrchestrator(self.registry)
        agent = AgentConfig("anthropic", "critic", model_id="broken")
        await orchestrator.coordinate_task("Task", {}, [agent])
        assert orchestrator.get_agent_memory("anthropic", "critic") == []

    @pytest.mark.asyncio
    async def test_clear_memory(self):
        orchestrator = MultiAgentOrchestrator(self.registry)
        await orchestrator.coordinate_task("Task", {}, [self.agent, AgentConfig("openai", "editor")])

        orchestrator.clear_agent_memory("openai", "writer")
        assert orchestrator.get_agent_memory("openai", "writer") == []
        assert orchestrator.get_agent_memory("openai", "editor") != []

        orchestrator.clear_agent_memory()
        assert orchestrator.get_agent_memory("openai", "editor") == []

    def test_set_max_memory_size(self):
        orchestrator = MultiAgentOrchestrator(self.registry)
        orchestrator.set_max_memory_size(4)
        assert orchestrator.max_memory_size == 4
        with pytest.raises(ValueError):
            orchestrator.set_max_memory_size(0)

    def test_invalid_initial_size(self):
        with pytest.raises(ValueError):
            MultiAgentOrchestrator(self.registry, max_memory_size=0)


class TestAgentConfig:
    def test_from_dict_accepts_camel_case(self):
        config = AgentConfig.from_dict({"provider": "openai", "role": "writer", "modelId": "gpt"})
        assert config.model_id == "gpt"
        assert config.memory_key == "openai:writer"
