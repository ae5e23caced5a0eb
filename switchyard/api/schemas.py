"""
API Request Models
===================

Pydantic bodies for the HTTP surface. Each model converts to the
control-plane dataclass it stands for.
"""

from typing import Any

from pydantic import BaseModel, Field

from switchyard.agents import AgentConfig
from switchyard.core.types import TaskType, UpdatePolicy
from switchyard.infra.runtime.pipeline import PipelineConfig, PipelineStep
from switchyard.registry import RegistryEntry, TaskRoutingOptions

# ==================== Registry ====================

class ModelEntryRequest(BaseModel):
    """Registry entry. Capabilities accept a flag mapping or a name list."""

    id: str = Field(..., min_length=1)
    provider: str = Field(..., min_length=1)
    name: str = ""
    version: str = ""
    capabilities: dict[str, bool] | list[str] = Field(default_factory=dict)
    location: str = "cloud"
    max_context_length: int = Field(default=8192, ge=1)
    max_output_length: int = Field(default=4096, ge=1)
    priority: int | None = None
    fallback_to: list[str] = Field(default_factory=list)
    preferred_for: list[str] = Field(default_factory=list)
    cost: dict[str, float] | None = None
    latency: dict[str, float] | None = None
    enabled: bool = True
    offline_capable: bool = False
    privacy: dict[str, bool] = Field(default_factory=dict)
    health_check: str | None = None
    config: dict[str, Any] = Field(default_factory=dict)

    def to_entry(self) -> RegistryEntry:
        return RegistryEntry.from_dict(self.model_dump())

class PinVersionRequest(BaseModel):
    version: str = Field(..., min_length=1)

class UpdatePolicyRequest(BaseModel):
    policy: UpdatePolicy

class PreferencesRequest(BaseModel):
    default_provider: str | None = None
    fallback_provider: str | None = None
    cost_optimization: bool | None = None
    speed_optimization: bool | None = None
    require_privacy: bool | None = None
    preferred_models: dict[str, str] | None = None

# ==================== Routing / Tasks ====================

class RouteRequest(BaseModel):
    type: str = TaskType.REASONING
    requires_privacy: bool = False
    cost_optimization: bool = False
    speed_optimization: bool = False
    capabilities: list[str] = Field(default_factory=list)
    context_length: int | None = Field(default=None, ge=1)
    preferred_provider: str | None = None

    def to_options(self) -> TaskRoutingOptions:
        return TaskRoutingOptions(
            type=self.type,
            requires_privacy=self.requires_privacy,
            cost_optimization=self.cost_optimization,
            speed_optimization=self.speed_optimization,
            capabilities=tuple(self.capabilities),
            context_length=self.context_length,
            preferred_provider=self.preferred_provider,
        )

class TaskRequest(BaseModel):
    options: RouteRequest = Field(default_factory=RouteRequest)
    input: Any = None
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    max_tokens: int | None = Field(default=None, ge=1)
    timeout: float | None = Field(default=None, gt=0)

class TaskResponse(BaseModel):
    task: str
    result: Any

# ==================== Pipelines / Agents ====================

class PipelineStepRequest(BaseModel):
    id: str = Field(..., min_length=1)
    model: str = "auto"
    task: str = TaskType.REASONING
    input: Any = None
    dependencies: list[str] = Field(default_factory=list)
    parallel: bool = False
    timeout: float | None = Field(default=None, gt=0)

class PipelineRequest(BaseModel):
    id: str = Field(..., min_length=1)
    name: str = ""
    steps: list[PipelineStepRequest] = Field(default_factory=list)
    cache: bool = False
    retry: int = Field(default=0, ge=0, le=10)

    def to_config(self) -> PipelineConfig:
        return PipelineConfig(
            id=self.id,
            name=self.name,
            steps=[PipelineStep(**step.model_dump()) for step in self.steps],
            cache=self.cache,
            retry=self.retry,
        )

class AgentRequest(BaseModel):
    provider: str = Field(..., min_length=1)
    role: str = Field(..., min_length=1)
    model_id: str | None = None
    priority: int | None = None
    timeout: float | None = Field(default=None, gt=0)

    def to_config(self) -> AgentConfig:
        return AgentConfig(**self.model_dump())

class CoordinateRequest(BaseModel):
    task: str = Field(..., min_length=1)
    context: dict[str, Any] = Field(default_factory=dict)
    agents: list[AgentRequest] = Field(..., min_length=1)
