"""
Switchyard — Model Routing Control Plane
==========================================

Registry, health monitoring, response caching, routing, pipeline
execution and multi-agent coordination for heterogeneous model backends.

Usage:
    from switchyard import ManagerConfig, RegistryEntry, RegistryManager

    async with RegistryManager(ManagerConfig.from_env()) as manager:
        manager.register_model(RegistryEntry.from_dict(entry_json))
"""

from switchyard.core import (
    ConfigurationError,
    ManagerConfig,
    NoModelAvailableError,
    SwitchyardError,
    TaskType,
)
from switchyard.manager import RegistryManager
from switchyard.registry import ModelRegistry, RegistryEntry, TaskRoutingOptions

__version__ = "0.1.0"

__all__ = [
    "ConfigurationError",
    "ManagerConfig",
    "ModelRegistry",
    "NoModelAvailableError",
    "RegistryEntry",
    "RegistryManager",
    "SwitchyardError",
    "TaskRoutingOptions",
    "TaskType",
    "__version__",
]
