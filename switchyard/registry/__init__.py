"""Model registry: entry data model and the in-memory catalog."""

from switchyard.registry.entries import (
    CostBreakdown,
    CostMetric,
    HealthStatus,
    LatencyProfile,
    ModelCapabilities,
    ModelPreferences,
    PrivacyFlags,
    RegistryEntry,
    TaskRoutingOptions,
    TokenCost,
    TokenUsage,
)
from switchyard.registry.model_registry import ModelRegistry

__all__ = [
    "CostBreakdown",
    "CostMetric",
    "HealthStatus",
    "LatencyProfile",
    "ModelCapabilities",
    "ModelPreferences",
    "ModelRegistry",
    "PrivacyFlags",
    "RegistryEntry",
    "TaskRoutingOptions",
    "TokenCost",
    "TokenUsage",
]
