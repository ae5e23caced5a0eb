"""
Model Router — Capability-Matched, Score-Based Selection
==========================================================

Routes a task to one registry entry:

  1. Privacy (task flag or prefer_local) → a local, offline-capable,
     healthy entry, if one exists
  2. Required capabilities from the task type (+ any extra ones)
  3. Candidates: enabled, healthy, capable, long enough context,
     matching the preferred provider when given
  4. Score each candidate; highest wins, ties keep registration order
  5. Fallback chain from the winner's ``fallback_to`` plus one more
     healthy entry

Score:
    100 − priority×0.1 − (20 if degraded) − health latency×0.01
        − (avg token cost×1000 if cost-optimizing)
        − (p50 latency×0.1 if speed-optimizing)
        + (50 if the entry is preferred for this task)
    floored at 0.

Routing decisions are kept in a bounded history for stats.
"""

from __future__ import annotations

import time
from collections import Counter, deque
from dataclasses import dataclass, field, fields, replace
from typing import TYPE_CHECKING, Any

from switchyard.core.config import RouterConfig
from switchyard.core.exceptions import ConfigurationError, NoModelAvailableError
from switchyard.core.types import HealthState, Location, required_capabilities
from switchyard.infra.telemetry import get_logger, get_metrics, get_tracer
from switchyard.registry.entries import HealthStatus, RegistryEntry, TaskRoutingOptions

if TYPE_CHECKING:
    from switchyard.registry.model_registry import ModelRegistry

logger = get_logger(__name__)
tracer = get_tracer(__name__)
metrics = get_metrics()

PRIVACY_REASON = "Privacy-required task routed to local model"

_ROUTER_PREFERENCES = frozenset(f.name for f in fields(RouterConfig))

@dataclass
class RoutingDecision:
    """Outcome of the routing process."""

    model_id: str
    provider: str
    confidence: float
    reason: str
    fallback_chain: list[str] = field(default_factory=list)
    score: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "model_id": self.model_id,
            "provider": self.provider,
            "confidence": self.confidence,
            "reason": self.reason,
            "fallback_chain": list(self.fallback_chain),
            "score": self.score,
        }

@dataclass(frozen=True, slots=True)
class ScoredCandidate:
    entry: RegistryEntry
    score: float

    @property
    def id(self) -> str:
        return self.entry.id

def confidence_for(score: float) -> float:
    if score > 80:
        return 0.9
    if score > 60:
        return 0.7
    return 0.5

class ModelRouter:
    """
    Routes tasks to registry entries.

    Usage:
        router = ModelRouter(registry, RouterConfig(cost_optimization=True))
        decision = router.route_task(TaskRoutingOptions(type="reasoning"))
        backend = registry.get_backend(decision.model_id)
    """

    def __init__(self, registry: ModelRegistry, config: RouterConfig | None = None) -> None:
        self._registry = registry
        self._config = config or RouterConfig()
        self._history: deque[tuple[float, str, str]] = deque(maxlen=self._config.history_size)
        self._counts: Counter[str] = Counter()

    @property
    def config(self) -> RouterConfig:
        return self._config

    def set_preferences(self, **preferences: Any) -> RouterConfig:
        """Update router defaults (prefer_local, cost_optimization, ...)."""
        unknown = set(preferences) - _ROUTER_PREFERENCES
        if unknown:
            raise ConfigurationError(f"Unknown router preference fields: {sorted(unknown)}")
        self._config = replace(self._config, **preferences)
        logger.info("router_preferences_updated", **preferences)
        return self._config

    # ── Routing ──────────────────────────────────────────────────────

    def route_task(self, options: TaskRoutingOptions) -> RoutingDecision:
        """
        Pick an entry for ``options``.

        Raises:
            NoModelAvailableError: nothing enabled and healthy meets the
                task's requirements.
        """
        with tracer.span("router.route", attributes={"task": options.type}) as span:
            if options.requires_privacy or self._config.prefer_local:
                local = self._route_to_local()
                if local is not None:
                    self._record(options.type, local, path="privacy")
                    span.set_attribute("model", local.model_id)
                    return local

            candidates = self.candidates(options)
            if not candidates:
                metrics.record_no_model(task=options.type)
                logger.warning("no_model_for_task", task=options.type)
                raise NoModelAvailableError(f"No model available for task type: {options.type}")

            best = candidates[0]
            decision = RoutingDecision(
                model_id=best.id,
                provider=best.entry.provider,
                confidence=confidence_for(best.score),
                reason=f"Selected {best.entry.display_name} based on {self._basis(options)}",
                fallback_chain=self._fallback_chain(best.entry),
                score=best.score,
            )
            self._record(options.type, decision, path="scored")
            span.set_attribute("model", decision.model_id)
            span.set_attribute("score", decision.score)
            return decision

    def _route_to_local(self) -> RoutingDecision | None:
        model_id = self._registry.best_local()
        if model_id is None:
            return None
        entry = self._registry.get_entry(model_id)
        return RoutingDecision(
            model_id=model_id,
            provider=entry.provider,
            confidence=0.9,
            reason=PRIVACY_REASON,
        )

    def _basis(self, options: TaskRoutingOptions) -> str:
        if self._cost_optimizing(options):
            return "cost optimization"
        if self._speed_optimizing(options):
            return "speed optimization"
        return "priority and score"

    def _cost_optimizing(self, options: TaskRoutingOptions) -> bool:
        return options.cost_optimization or self._config.cost_optimization

    def _speed_optimizing(self, options: TaskRoutingOptions) -> bool:
        return options.speed_optimization or self._config.speed_optimization

    # ── Candidates / Scoring ─────────────────────────────────────────

    def candidates(self, options: TaskRoutingOptions) -> list[ScoredCandidate]:
        """Eligible entries, scored, best first."""
        needed = (*required_capabilities(options.type), *options.capabilities)
        scored: list[ScoredCandidate] = []

        for mid in self._registry.enabled_ids():
            entry = self._registry.get_entry(mid)
            if not entry.capabilities.supports_all(needed):
                continue
            if options.context_length and entry.max_context_length < options.context_length:
                continue
            if options.preferred_provider and entry.provider != options.preferred_provider:
                continue
            health = self._registry.health(mid)
            if health is None or health.status != HealthState.HEALTHY:
                continue
            scored.append(ScoredCandidate(entry, self.score(entry, health, options)))

        if self._config.prefer_cloud:
            cloud = [c for c in scored if c.entry.location == Location.CLOUD]
            scored = cloud or scored

        # sorted() is stable: equal scores keep registration order
        return sorted(scored, key=lambda c: c.score, reverse=True)

    def score(
        self,
        entry: RegistryEntry,
        health: HealthStatus | None,
        options: TaskRoutingOptions,
    ) -> float:
        score = 100.0
        score -= entry.effective_priority * 0.1

        if health is not None:
            if health.status == HealthState.DEGRADED:
                score -= 20
            score -= health.latency_ms * 0.01

        if self._cost_optimizing(options) and entry.cost is not None:
            score -= entry.cost.average * 1000

        if self._speed_optimizing(options) and entry.latency is not None:
            score -= entry.latency.p50 * 0.1

        if options.type in entry.preferred_for:
            score += 50

        return max(0.0, score)

    def _fallback_chain(self, selected: RegistryEntry) -> list[str]:
        chain: list[str] = []
        for fid in selected.fallback_to:
            if (
                fid != selected.id
                and fid not in chain
                and self._registry.has_model(fid)
                and self._registry.is_healthy(fid)
            ):
                chain.append(fid)

        for mid in self._registry.enabled_ids():
            if mid != selected.id and mid not in chain and self._registry.is_healthy(mid):
                chain.append(mid)
                break

        return chain

    # ── Stats ────────────────────────────────────────────────────────

    def _record(self, task: str, decision: RoutingDecision, *, path: str) -> None:
        if len(self._history) == self._history.maxlen:
            _, _, dropped = self._history[0]
            self._counts[dropped] -= 1
        self._history.append((time.monotonic(), task, decision.model_id))
        self._counts[decision.model_id] += 1
        metrics.record_routing(model_id=decision.model_id, task=task, path=path)
        logger.debug(
            "routing_decision",
            task=task,
            model_id=decision.model_id,
            confidence=decision.confidence,
            reason=decision.reason,
            fallback_chain=decision.fallback_chain,
        )

    def get_stats(self) -> dict[str, Any]:
        return {
            "routing_history_size": len(self._history),
            "decisions_by_model": {m: n for m, n in self._counts.items() if n > 0},
            "preferences": {
                "prefer_local": self._config.prefer_local,
                "prefer_cloud": self._config.prefer_cloud,
                "cost_optimization": self._config.cost_optimization,
                "speed_optimization": self._config.speed_optimization,
            },
        }
