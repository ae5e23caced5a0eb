"""
Runtime Layer — Routing and Execution
======================================

Provides:
  - Backend capability contract and provider → factory map
  - Score-based model routing with fallback chains
  - Dependency-ordered pipeline execution
  - Bounded worker pool for fan-out

Depends on: telemetry, registry entries
Depended on by: agents, manager, api
"""

from switchyard.infra.runtime.backends import (
    BackendFactoryRegistry,
    ModelBackend,
    default_factories,
)
from switchyard.infra.runtime.dispatch import dispatch, estimate_tokens
from switchyard.infra.runtime.pipeline import (
    PipelineConfig,
    PipelineExecutor,
    PipelineResult,
    PipelineStep,
    StepResult,
)
from switchyard.infra.runtime.router import ModelRouter, RoutingDecision
from switchyard.infra.runtime.worker_pool import WorkerPool

__all__ = [
    "BackendFactoryRegistry",
    "ModelBackend",
    "ModelRouter",
    "PipelineConfig",
    "PipelineExecutor",
    "PipelineResult",
    "PipelineStep",
    "RoutingDecision",
    "StepResult",
    "WorkerPool",
    "default_factories",
    "dispatch",
    "estimate_tokens",
]
