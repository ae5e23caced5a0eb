"""Core types, errors and configuration shared by every layer."""

from switchyard.core.config import (
    CacheConfig,
    HealthMonitorConfig,
    ManagerConfig,
    RouterConfig,
    WorkerConfig,
)
from switchyard.core.exceptions import (
    AgentFailure,
    BackendError,
    ConfigurationError,
    ModelNotFoundError,
    NoModelAvailableError,
    PipelineGraphError,
    ProbeFailure,
    RetryConfig,
    StepFailure,
    SwitchyardError,
    UnsupportedOperation,
)
from switchyard.core.types import (
    Capability,
    HealthState,
    Location,
    TaskType,
    UpdatePolicy,
)

__all__ = [
    "AgentFailure",
    "BackendError",
    "CacheConfig",
    "Capability",
    "ConfigurationError",
    "HealthMonitorConfig",
    "HealthState",
    "Location",
    "ManagerConfig",
    "ModelNotFoundError",
    "NoModelAvailableError",
    "PipelineGraphError",
    "ProbeFailure",
    "RetryConfig",
    "RouterConfig",
    "StepFailure",
    "SwitchyardError",
    "TaskType",
    "UnsupportedOperation",
    "UpdatePolicy",
    "WorkerConfig",
]
