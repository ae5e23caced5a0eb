"""
Registry Data Model
====================

Value types describing a registered backend and its live state:

  RegistryEntry   — static configuration (identity, capabilities, cost, ...)
  HealthStatus    — snapshot written by the health monitor
  CostMetric      — one invocation's token usage, cost and latency
  ModelPreferences / TaskRoutingOptions — selection inputs

Entries are immutable; the registry keeps enabled/health/cost state in
its own maps so they can change without rebuilding the entry.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, fields, replace
from datetime import UTC, datetime
from typing import Any

from switchyard.core.exceptions import ConfigurationError
from switchyard.core.types import Capability, HealthState, Location, TaskType

DEFAULT_PRIORITY = 100

_CAMEL_CAPABILITIES = {
    "functionCalling": Capability.FUNCTION_CALLING,
}
_FLAG_NAMES = frozenset(c.value for c in Capability)

# ── Static Configuration ─────────────────────────────────────────────────────

@dataclass(frozen=True, slots=True)
class ModelCapabilities:
    """Capability flags of a backend entry."""

    reasoning: bool = False
    multimodal: bool = False
    vision: bool = False
    audio: bool = False
    embeddings: bool = False
    function_calling: bool = False

    def supports(self, capability: str) -> bool:
        name = str(_CAMEL_CAPABILITIES.get(capability, capability))
        return name in _FLAG_NAMES and bool(getattr(self, name))

    def supports_all(self, capabilities: Iterable[str]) -> bool:
        return all(self.supports(c) for c in capabilities)

    def enabled_names(self) -> list[str]:
        return [f.name for f in fields(self) if getattr(self, f.name)]

    @classmethod
    def of(cls, *capabilities: str) -> ModelCapabilities:
        return cls(**{Capability(c).value: True for c in capabilities})

    @classmethod
    def from_value(cls, value: Any) -> ModelCapabilities:
        """Accept an instance, a flag mapping (snake or camelCase) or a name list."""
        if isinstance(value, ModelCapabilities):
            return value
        if value is None:
            return cls()
        if isinstance(value, Mapping):
            flags = {}
            for key, enabled in value.items():
                cap = _CAMEL_CAPABILITIES.get(key) or _capability(key)
                flags[cap.value] = bool(enabled)
            return cls(**flags)
        return cls.of(*(_CAMEL_CAPABILITIES.get(v) or _capability(v) for v in value))

def _capability(name: str) -> Capability:
    try:
        return Capability(name)
    except ValueError:
        raise ConfigurationError(f"Unknown capability: {name}") from None

@dataclass(frozen=True, slots=True)
class TokenCost:
    """Per-token price for input and output."""

    input_per_token: float = 0.0
    output_per_token: float = 0.0

    @property
    def average(self) -> float:
        return (self.input_per_token + self.output_per_token) / 2

@dataclass(frozen=True, slots=True)
class LatencyProfile:
    """Advisory latency percentiles in milliseconds."""

    p50: float = 0.0
    p95: float = 0.0
    p99: float = 0.0

@dataclass(frozen=True, slots=True)
class PrivacyFlags:
    local_only: bool = False
    gdpr_compliant: bool = False
    hipaa_compliant: bool = False

@dataclass(frozen=True, slots=True)
class RegistryEntry:
    """
    A registered backend model configuration.

    Attributes:
        id:                 Unique entry id (registry key)
        provider:           Provider name, resolved through the backend factory map
        capabilities:       Capability flags used for candidate filtering
        location:           cloud / local / edge
        priority:           Lower is preferred; None means 100
        fallback_to:        Ordered entry ids to fall back to
        preferred_for:      Task types this entry gets a routing bonus for
        health_check:       Optional URL probed by the health monitor
        config:             Opaque backend-specific settings (base_url, api_key, model, ...)
    """

    id: str
    provider: str
    name: str = ""
    version: str = ""
    capabilities: ModelCapabilities = field(default_factory=ModelCapabilities)
    location: Location = Location.CLOUD
    max_context_length: int = 8192
    max_output_length: int = 4096
    priority: int | None = None
    fallback_to: tuple[str, ...] = ()
    preferred_for: tuple[str, ...] = ()
    cost: TokenCost | None = None
    latency: LatencyProfile | None = None
    enabled: bool = True
    offline_capable: bool = False
    privacy: PrivacyFlags = field(default_factory=PrivacyFlags)
    health_check: str | None = None
    config: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.id:
            raise ConfigurationError("Registry entry requires an id")
        if not self.provider:
            raise ConfigurationError(f"Registry entry '{self.id}' requires a provider")

    @property
    def display_name(self) -> str:
        return self.name or self.id

    @property
    def effective_priority(self) -> int:
        return DEFAULT_PRIORITY if self.priority is None else self.priority

    def with_changes(self, **changes: Any) -> RegistryEntry:
        return replace(self, **changes)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> RegistryEntry:
        """Build an entry from a snake_case or camelCase mapping."""
        get = _lookup(data)
        cost = get("cost")
        latency = get("latency")
        privacy = get("privacy") or {}
        location = get("location") or Location.CLOUD
        try:
            location = Location(location)
        except ValueError:
            raise ConfigurationError(f"Unknown location: {location}") from None

        return cls(
            id=get("id") or "",
            provider=get("provider") or "",
            name=get("name") or "",
            version=get("version") or "",
            capabilities=ModelCapabilities.from_value(get("capabilities")),
            location=location,
            max_context_length=int(get("max_context_length", "maxContextLength") or 8192),
            max_output_length=int(get("max_output_length", "maxOutputLength") or 4096),
            priority=get("priority"),
            fallback_to=tuple(get("fallback_to", "fallbackTo") or ()),
            preferred_for=tuple(get("preferred_for", "preferredFor") or ()),
            cost=_token_cost(cost) if cost else None,
            latency=LatencyProfile(**dict(latency)) if latency else None,
            enabled=bool(get("enabled") if get("enabled") is not None else True),
            offline_capable=bool(get("offline_capable", "offlineCapable") or False),
            privacy=PrivacyFlags(
                local_only=bool(_lookup(privacy)("local_only", "localOnly")),
                gdpr_compliant=bool(_lookup(privacy)("gdpr_compliant", "gdprCompliant")),
                hipaa_compliant=bool(_lookup(privacy)("hipaa_compliant", "hipaaCompliant")),
            ),
            health_check=get("health_check", "healthCheck"),
            config=dict(get("config") or {}),
        )

def _lookup(data: Mapping[str, Any]):
    def get(*keys: str) -> Any:
        for key in keys:
            if key in data:
                return data[key]
        return None

    return get

def _token_cost(value: Any) -> TokenCost:
    if isinstance(value, TokenCost):
        return value
    get = _lookup(value)
    return TokenCost(
        input_per_token=float(get("input_per_token", "inputPerToken") or 0.0),
        output_per_token=float(get("output_per_token", "outputPerToken") or 0.0),
    )

# ── Live State ───────────────────────────────────────────────────────────────

@dataclass(slots=True)
class HealthStatus:
    """Health snapshot for one entry. Written only by the health monitor."""

    model_id: str
    status: HealthState = HealthState.HEALTHY
    latency_ms: float = 0.0
    error_rate: float = 0.0
    last_check: datetime = field(default_factory=lambda: datetime.now(UTC))
    uptime: float = 100.0

    @property
    def is_healthy(self) -> bool:
        return self.status == HealthState.HEALTHY

    def to_dict(self) -> dict[str, Any]:
        return {
            "model_id": self.model_id,
            "status": self.status.value,
            "latency_ms": round(self.latency_ms, 2),
            "error_rate": self.error_rate,
            "last_check": self.last_check.isoformat(),
            "uptime": self.uptime,
        }

@dataclass(frozen=True, slots=True)
class TokenUsage:
    input: int = 0
    output: int = 0

    @property
    def total(self) -> int:
        return self.input + self.output

@dataclass(frozen=True, slots=True)
class CostBreakdown:
    input: float = 0.0
    output: float = 0.0

    @property
    def total(self) -> float:
        return self.input + self.output

    @classmethod
    def for_usage(cls, usage: TokenUsage, price: TokenCost | None) -> CostBreakdown:
        if price is None:
            return cls()
        return cls(
            input=usage.input * price.input_per_token,
            output=usage.output * price.output_per_token,
        )

@dataclass(frozen=True, slots=True)
class CostMetric:
    """One invocation's token usage, cost and latency."""

    model_id: str
    tokens: TokenUsage = field(default_factory=TokenUsage)
    cost: CostBreakdown = field(default_factory=CostBreakdown)
    latency_ms: float = 0.0
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        return {
            "model_id": self.model_id,
            "tokens": {
                "input": self.tokens.input,
                "output": self.tokens.output,
                "total": self.tokens.total,
            },
            "cost": {
                "input": self.cost.input,
                "output": self.cost.output,
                "total": self.cost.total,
            },
            "latency_ms": round(self.latency_ms, 2),
            "timestamp": self.timestamp.isoformat(),
        }

# ── Selection Inputs ─────────────────────────────────────────────────────────

@dataclass(slots=True)
class ModelPreferences:
    """Global selection preferences (merged by ``set_preferences``)."""

    default_provider: str | None = None
    fallback_provider: str | None = None
    cost_optimization: bool = False
    speed_optimization: bool = False
    require_privacy: bool = False
    preferred_models: dict[str, str] = field(default_factory=dict)

@dataclass(frozen=True, slots=True)
class TaskRoutingOptions:
    """What a caller needs from a model for one task."""

    type: str = TaskType.REASONING
    requires_privacy: bool = False
    cost_optimization: bool = False
    speed_optimization: bool = False
    capabilities: tuple[str, ...] = ()
    context_length: int | None = None
    preferred_provider: str | None = None
