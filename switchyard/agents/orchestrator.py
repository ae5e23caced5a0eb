"""
Multi-Agent Orchestrator — Sequential Role Coordination
=========================================================

Runs an ordered list of agent roles against the registry. Each role:

  - resolves its backend (``model_id`` if given, else ``provider``)
  - sees the shared context plus every earlier role's result
  - keeps its own bounded conversation memory keyed by ``provider:role``

Roles run strictly one after another so later roles can build on
earlier answers. A failing role is recorded and the next one still runs.
"""

from __future__ import annotations

import asyncio
import json
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from switchyard.core.exceptions import AgentFailure
from switchyard.infra.telemetry import get_logger, get_metrics, get_tracer, set_request_context

if TYPE_CHECKING:
    from switchyard.registry.model_registry import ModelRegistry

logger = get_logger(__name__)
tracer = get_tracer(__name__)
metrics = get_metrics()

DEFAULT_MAX_MEMORY = 10

@dataclass(frozen=True, slots=True)
class AgentTurn:
    role: str  # "user" | "assistant"
    content: str

    def to_message(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}

@dataclass(frozen=True)
class AgentConfig:
    """
    One role assignment.

    ``priority`` is carried for callers that order their agent lists;
    the orchestrator runs agents in the order given.
    """

    provider: str
    role: str
    model_id: str | None = None
    priority: int | None = None
    timeout: float | None = None

    @property
    def memory_key(self) -> str:
        return f"{self.provider}:{self.role}"

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> AgentConfig:
        return cls(
            provider=data["provider"],
            role=data["role"],
            model_id=data.get("model_id") or data.get("modelId"),
            priority=data.get("priority"),
            timeout=data.get("timeout"),
        )

@dataclass
class CoordinationResult:
    provider: str
    role: str
    response: str | None = None
    error: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    duration_ms: float = 0.0

    @property
    def success(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "provider": self.provider,
            "role": self.role,
            "timestamp": self.timestamp.isoformat(),
            "duration_ms": round(self.duration_ms, 2),
        }
        if self.error is None:
            out["response"] = self.response
        else:
            out["error"] = self.error
        return out

def _json_default(value: Any) -> Any:
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)

class MultiAgentOrchestrator:
    """
    Coordinates agent roles over a shared registry.

    Usage:
        orchestrator = MultiAgentOrchestrator(registry)
        results = await orchestrator.coordinate_task(
            "Draft a release note",
            {"version": "2.1"},
            [AgentConfig("openai", "writer"), AgentConfig("ollama", "reviewer")],
        )
        results["ollama:reviewer"].response
    """

    def __init__(self, registry: ModelRegistry, max_memory_size: int = DEFAULT_MAX_MEMORY) -> None:
        if max_memory_size < 1:
            raise ValueError("max_memory_size must be >= 1")
        self._registry = registry
        self._max_memory = max_memory_size
        self._memory: dict[str, list[AgentTurn]] = {}
        logger.info("multi_agent_orchestrator_initialized", max_memory_size=max_memory_size)

    @property
    def max_memory_size(self) -> int:
        return self._max_memory

    async def coordinate_task(
        self,
        task: str,
        context: Mapping[str, Any],
        agents: list[AgentConfig],
    ) -> dict[str, CoordinationResult]:
        """Run each agent in order. Results are keyed by ``provider:role``."""
        results: dict[str, CoordinationResult] = {}

        with tracer.span("agents.coordinate", attributes={"agents": len(agents)}):
            for agent in agents:
                set_request_context(agent_role=agent.role)
                try:
                    results[agent.memory_key] = await self._run_agent(task, context, agent, results)
                finally:
                    set_request_context(agent_role=None)

        return results

    async def _run_agent(
        self,
        task: str,
        context: Mapping[str, Any],
        agent: AgentConfig,
        results: dict[str, CoordinationResult],
    ) -> CoordinationResult:
        log = logger.bind(provider=agent.provider, role=agent.role)
        start = time.perf_counter()
        try:
            backend = self._registry.resolve(agent.model_id or agent.provider)
            agent_context = {**context, "role": agent.role, "previousResults": results}
            prompt = f"Task: {task}\nContext: {json.dumps(agent_context, indent=2, default=_json_default)}"

            memory = self._memory.get(agent.memory_key, [])
            messages = [turn.to_message() for turn in memory]
            messages.append({"role": "user", "content": prompt})

            with tracer.span("agents.turn", attributes={"role": agent.role, "provider": agent.provider}):
                call = backend.chat_completion(messages)
                if agent.timeout:
                    response = await asyncio.wait_for(call, timeout=agent.timeout)
                else:
                    response = await call
        except Exception as e:
            failure = AgentFailure(
                str(e) or type(e).__name__, agent.provider, agent.role, original_error=e
            )
            duration_ms = (time.perf_counter() - start) * 1000
            metrics.record_agent_turn(role=agent.role, success=False)
            log.error("agent_coordination_failed", error=failure.detail)
            return CoordinationResult(
                provider=agent.provider,
                role=agent.role,
                error=failure.detail,
                duration_ms=duration_ms,
            )

        duration_ms = (time.perf_counter() - start) * 1000
        updated = [*memory, AgentTurn("user", prompt), AgentTurn("assistant", response)]
        self._memory[agent.memory_key] = updated[-self._max_memory:]

        metrics.record_agent_turn(role=agent.role, success=True)
        log.debug("agent_coordination_succeeded", duration_ms=round(duration_ms, 2))
        return CoordinationResult(
            provider=agent.provider,
            role=agent.role,
            response=response,
            duration_ms=duration_ms,
        )

    # ── Memory ───────────────────────────────────────────────────────

    def clear_agent_memory(self, provider: str | None = None, role: str | None = None) -> None:
        """Clear one agent's memory, or everyone's when provider/role are not both given."""
        if provider and role:
            self._memory.pop(f"{provider}:{role}", None)
            logger.info("agent_memory_cleared", provider=provider, role=role)
        else:
            self._memory.clear()
            logger.info("all_agent_memory_cleared")

    def get_agent_memory(self, provider: str, role: str) -> list[AgentTurn]:
        return list(self._memory.get(f"{provider}:{role}", ()))

    def set_max_memory_size(self, size: int) -> None:
        """Existing buffers are trimmed on their next write."""
        if size < 1:
            raise ValueError("max memory size must be >= 1")
        self._max_memory = size
        logger.info("max_memory_size_updated", size=size)
