"""Multi-agent coordination over the model registry."""

from switchyard.agents.orchestrator import (
    AgentConfig,
    AgentTurn,
    CoordinationResult,
    MultiAgentOrchestrator,
)

__all__ = [
    "AgentConfig",
    "AgentTurn",
    "CoordinationResult",
    "MultiAgentOrchestrator",
]
