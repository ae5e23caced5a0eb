"""
Canonical Type Definitions
===========================

Single source of truth for shared enums used across the control plane.
All modules should import shared enums from here.

This module defines:
- TaskType: Categories of AI operation a caller can request
- Capability: Feature flags a backend entry can declare
- Location: Where a backend runs (privacy posture)
- HealthState: Status written by the health monitor
- UpdatePolicy: Recorded per-entry model update policy

Dataclasses stay in their domain modules but use these enums.
"""

from enum import StrEnum

__all__ = [
    "TASK_CAPABILITIES",
    "Capability",
    "HealthState",
    "Location",
    "TaskType",
    "UpdatePolicy",
    "required_capabilities",
]

class TaskType(StrEnum):
    """Task types for model routing.

    Determines which capability set a backend must offer.
    """

    REASONING = "reasoning"
    VISION = "vision"
    AUDIO = "audio"
    EMBEDDING = "embedding"
    RAG = "rag"
    FUNCTION = "function"
    SUPERVISOR = "supervisor"

class Capability(StrEnum):
    """Capability flags declared by a registry entry."""

    REASONING = "reasoning"
    MULTIMODAL = "multimodal"
    VISION = "vision"
    AUDIO = "audio"
    EMBEDDINGS = "embeddings"
    FUNCTION_CALLING = "function_calling"

class Location(StrEnum):
    CLOUD = "cloud"
    LOCAL = "local"
    EDGE = "edge"

class HealthState(StrEnum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    DOWN = "down"

class UpdatePolicy(StrEnum):
    """How an entry should pick up new model versions (recorded only)."""

    AUTO = "auto"
    MANUAL = "manual"
    NOTIFY = "notify"

# Task → required capabilities
TASK_CAPABILITIES: dict[str, tuple[Capability, ...]] = {
    TaskType.REASONING: (Capability.REASONING,),
    TaskType.VISION: (Capability.VISION, Capability.MULTIMODAL),
    TaskType.AUDIO: (Capability.AUDIO,),
    TaskType.EMBEDDING: (Capability.EMBEDDINGS,),
    TaskType.RAG: (Capability.EMBEDDINGS, Capability.REASONING),
    TaskType.FUNCTION: (Capability.FUNCTION_CALLING, Capability.REASONING),
    TaskType.SUPERVISOR: (Capability.REASONING,),
}

def required_capabilities(task_type: str) -> tuple[Capability, ...]:
    """Capabilities a task type needs. Unknown task types need reasoning."""
    return TASK_CAPABILITIES.get(task_type, (Capability.REASONING,))
