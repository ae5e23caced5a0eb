"""
Model Registry — Catalog of Backend Entries
=============================================

Owns every registered entry together with its backend client, enabled
flag, health snapshot, cost history, version pin and update policy.

The registry is an ordinary object: construct one and hand it to the
router, pipeline executor, orchestrator, health monitor and façade.
All operations are synchronous map updates; nothing here performs I/O
except ``aclose()``. Backends of overwritten or unregistered entries are
held until ``aclose()`` closes them with the rest.

Usage:
    registry = ModelRegistry(factories=default_factories())
    registry.register(RegistryEntry(id="gpt-4o", provider="openai", ...))
    backend = registry.resolve("gpt-4o")
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable
from dataclasses import fields, replace
from datetime import UTC, datetime
from typing import Any

from switchyard.core.exceptions import ConfigurationError, NoModelAvailableError
from switchyard.core.types import HealthState, Location, UpdatePolicy, required_capabilities
from switchyard.infra.runtime.backends import BackendFactoryRegistry, ModelBackend, default_factories
from switchyard.infra.telemetry import get_logger
from switchyard.registry.entries import (
    CostMetric,
    HealthStatus,
    ModelPreferences,
    RegistryEntry,
    TaskRoutingOptions,
)

logger = get_logger(__name__)

MAX_COST_METRICS = 1000
DEFAULT_REQUESTED = "openai"
DEFAULT_FALLBACK = "ollama"

_PREFERENCE_FIELDS = frozenset(f.name for f in fields(ModelPreferences))

class ModelRegistry:
    """
    In-memory catalog of backend entries and their live state.

    Entries keep registration order; that order breaks ties everywhere
    a selection is made.
    """

    def __init__(
        self,
        factories: BackendFactoryRegistry | None = None,
        preferences: ModelPreferences | None = None,
    ) -> None:
        self._factories = factories if factories is not None else default_factories()
        self._preferences = preferences or ModelPreferences()
        self._entries: dict[str, RegistryEntry] = {}
        self._backends: dict[str, ModelBackend] = {}
        self._retired: list[ModelBackend] = []
        self._enabled: set[str] = set()
        self._health: dict[str, HealthStatus] = {}
        self._costs: dict[str, deque[CostMetric]] = {}
        self._version_pins: dict[str, str] = {}
        self._update_policies: dict[str, UpdatePolicy] = {}

    @property
    def factories(self) -> BackendFactoryRegistry:
        return self._factories

    @property
    def preferences(self) -> ModelPreferences:
        return self._preferences

    # ── Registration ─────────────────────────────────────────────────

    def register(self, entry: RegistryEntry) -> None:
        """
        Register (or overwrite) an entry.

        The backend is built first, so an unknown provider rejects the
        registration without touching existing state.
        """
        try:
            backend = self._factories.create(entry)
        except ConfigurationError:
            logger.error("model_registration_rejected", model_id=entry.id, provider=entry.provider)
            raise

        previous = self._backends.get(entry.id)
        if previous is not None:
            self._retired.append(previous)
        self._entries[entry.id] = entry
        self._backends[entry.id] = backend
        if entry.enabled:
            self._enabled.add(entry.id)
        else:
            self._enabled.discard(entry.id)
        self._health[entry.id] = HealthStatus(model_id=entry.id)
        self._costs[entry.id] = deque(maxlen=MAX_COST_METRICS)

        logger.info(
            "model_registered",
            model_id=entry.id,
            provider=entry.provider,
            location=entry.location.value,
            capabilities=entry.capabilities.enabled_names(),
        )

    def unregister(self, model_id: str) -> None:
        """Remove an entry and every piece of state keyed by it."""
        self._entries.pop(model_id, None)
        backend = self._backends.pop(model_id, None)
        if backend is not None:
            self._retired.append(backend)
        self._enabled.discard(model_id)
        self._health.pop(model_id, None)
        self._costs.pop(model_id, None)
        self._version_pins.pop(model_id, None)
        self._update_policies.pop(model_id, None)
        logger.info("model_unregistered", model_id=model_id)

    def enable(self, model_id: str) -> None:
        if model_id in self._entries:
            self._enabled.add(model_id)
            logger.info("model_enabled", model_id=model_id)

    def disable(self, model_id: str) -> None:
        self._enabled.discard(model_id)
        logger.info("model_disabled", model_id=model_id)

    # ── Queries ──────────────────────────────────────────────────────

    def get_entry(self, model_id: str) -> RegistryEntry | None:
        return self._entries.get(model_id)

    def get_backend(self, model_id: str) -> ModelBackend | None:
        return self._backends.get(model_id)

    def health(self, model_id: str) -> HealthStatus | None:
        return self._health.get(model_id)

    def entries(self) -> list[RegistryEntry]:
        return list(self._entries.values())

    def entry_ids(self) -> list[str]:
        return list(self._entries)

    def enabled_ids(self) -> list[str]:
        return [mid for mid in self._entries if mid in self._enabled]

    def is_enabled(self, model_id: str) -> bool:
        return model_id in self._enabled

    def is_healthy(self, model_id: str) -> bool:
        status = self._health.get(model_id)
        return status is not None and status.status == HealthState.HEALTHY

    def has_model(self, model_id: str) -> bool:
        """Registered and enabled."""
        return model_id in self._entries and model_id in self._enabled

    def providers(self) -> list[str]:
        return list(dict.fromkeys(e.provider for e in self._entries.values()))

    @staticmethod
    def required_capabilities(task_type: str) -> tuple[str, ...]:
        return required_capabilities(task_type)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, model_id: object) -> bool:
        return model_id in self._entries

    # ── Resolution ───────────────────────────────────────────────────

    def resolve(self, model_id: str | None = None) -> ModelBackend:
        """Backend for ``resolve_id(model_id)``."""
        return self._backends[self.resolve_id(model_id)]

    def resolve_id(self, model_id: str | None = None) -> str:
        """
        Pick the entry id to serve a request for ``model_id``.

        Order: the requested id (or default provider, or "openai") when
        enabled and healthy; then the fallback provider (default "ollama")
        when enabled; then the first enabled, healthy entry. Names that
        are not entry ids match the first entry of that provider.
        """
        requested = model_id or self._preferences.default_provider or DEFAULT_REQUESTED
        match = self._match(requested)
        if match is not None and self.is_healthy(match):
            return match

        fallback = self._preferences.fallback_provider or DEFAULT_FALLBACK
        fallback_match = self._match(fallback)
        if fallback_match is not None:
            logger.warning("using_fallback_model", requested=requested, fallback=fallback_match)
            return fallback_match

        for mid in self.enabled_ids():
            if self.is_healthy(mid):
                logger.warning("using_available_model", requested=requested, model_id=mid)
                return mid

        raise NoModelAvailableError(
            f"No model available. Requested: {requested}, Fallback: {fallback}",
            requested=requested,
            fallback=fallback,
        )

    def _match(self, name: str) -> str | None:
        """Enabled entry with this id, else the first enabled entry of this provider."""
        if name in self._entries:
            return name if name in self._enabled else None
        for mid in self.enabled_ids():
            if self._entries[mid].provider == name:
                return mid
        return None

    def resolve_for_task(self, options: TaskRoutingOptions) -> str:
        """
        Entry id for a task using registry-level selection rules.

        Privacy (requested or preferred) restricts selection to local,
        offline-capable, healthy entries and fails if there are none.
        """
        if options.requires_privacy or self._preferences.require_privacy:
            local = self.best_local()
            if local is None:
                raise NoModelAvailableError("No local model available for privacy-required task")
            return local

        candidates = self.candidates_for_task(options)
        if not candidates:
            raise NoModelAvailableError(f"No model available for task type: {options.type}")

        if options.cost_optimization or self._preferences.cost_optimization:
            return self.select_cheapest(candidates)
        if options.speed_optimization or self._preferences.speed_optimization:
            return self.select_fastest(candidates)
        return self.select_by_priority(candidates)

    def candidates_for_task(self, options: TaskRoutingOptions) -> list[str]:
        needed = (*required_capabilities(options.type), *options.capabilities)
        result = []
        for mid in self.enabled_ids():
            entry = self._entries[mid]
            if options.context_length and entry.max_context_length < options.context_length:
                continue
            if not entry.capabilities.supports_all(needed):
                continue
            if options.preferred_provider and entry.provider != options.preferred_provider:
                continue
            if self.is_healthy(mid):
                result.append(mid)
        return result

    def best_local(self) -> str | None:
        """Lowest-priority-number local, offline-capable, healthy entry."""
        local = [
            mid
            for mid in self.enabled_ids()
            if self._entries[mid].location == Location.LOCAL
            and self._entries[mid].offline_capable
            and self.is_healthy(mid)
        ]
        return self.select_by_priority(local) if local else None

    def best_for(
        self,
        *,
        location: Location | str | None = None,
        capabilities: Iterable[str] | None = None,
        cost_optimization: bool = False,
        speed_optimization: bool = False,
    ) -> str:
        """Best enabled, healthy entry matching a location and capability set."""
        needed = tuple(capabilities or ())
        candidates = [
            mid
            for mid in self.enabled_ids()
            if (location is None or self._entries[mid].location == location)
            and self._entries[mid].capabilities.supports_all(needed)
            and self.is_healthy(mid)
        ]
        if not candidates:
            raise NoModelAvailableError("No model available matching criteria")
        if cost_optimization:
            return self.select_cheapest(candidates)
        if speed_optimization:
            return self.select_fastest(candidates)
        return self.select_by_priority(candidates)

    # ── Selection Strategies ─────────────────────────────────────────

    def select_by_priority(self, candidates: list[str]) -> str:
        return min(candidates, key=lambda mid: self._entries[mid].effective_priority)

    def select_cheapest(self, candidates: list[str]) -> str:
        """Lowest average token price; entries without cost data are skipped."""
        priced = [mid for mid in candidates if self._entries[mid].cost is not None]
        if not priced:
            return self.select_by_priority(candidates)
        return min(priced, key=lambda mid: self._entries[mid].cost.average)

    def select_fastest(self, candidates: list[str]) -> str:
        """Lowest measured health latency."""
        measured = [mid for mid in candidates if mid in self._health]
        if not measured:
            return self.select_by_priority(candidates)
        return min(measured, key=lambda mid: self._health[mid].latency_ms)

    # ── Health ───────────────────────────────────────────────────────

    def update_health(self, model_id: str, **changes: Any) -> HealthStatus | None:
        """
        Merge fields into an entry's health snapshot and stamp last_check.

        Unknown ids are ignored.
        """
        current = self._health.get(model_id)
        if current is None:
            return None
        if "status" in changes:
            changes["status"] = HealthState(changes["status"])
        updated = replace(current, **changes, last_check=datetime.now(UTC))
        self._health[model_id] = updated
        return updated

    # ── Cost Tracking ────────────────────────────────────────────────

    def record_cost(self, metric: CostMetric) -> None:
        """Append a cost record; only the newest 1000 per entry are kept."""
        history = self._costs.get(metric.model_id)
        if history is None:
            history = self._costs[metric.model_id] = deque(maxlen=MAX_COST_METRICS)
        history.append(metric)

    def cost_metrics(self, model_id: str, limit: int | None = None) -> list[CostMetric]:
        history = list(self._costs.get(model_id, ()))
        return history[-limit:] if limit else history

    def total_costs(
        self,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> dict[str, float]:
        """Summed cost per entry, optionally restricted to [start, end]."""
        totals: dict[str, float] = {}
        for mid, history in self._costs.items():
            totals[mid] = sum(
                m.cost.total
                for m in history
                if (start is None or m.timestamp >= start)
                and (end is None or m.timestamp <= end)
            )
        return totals

    # ── Preferences / Versioning ─────────────────────────────────────

    def set_preferences(self, **preferences: Any) -> ModelPreferences:
        unknown = set(preferences) - _PREFERENCE_FIELDS
        if unknown:
            raise ConfigurationError(f"Unknown preference fields: {sorted(unknown)}")
        self._preferences = replace(self._preferences, **preferences)
        logger.info("model_preferences_updated", **preferences)
        return self._preferences

    def pin_version(self, model_id: str, version: str) -> None:
        """Record a version pin. Selection does not consult it."""
        self._version_pins[model_id] = version
        logger.info("model_version_pinned", model_id=model_id, version=version)

    def set_update_policy(self, model_id: str, policy: UpdatePolicy | str) -> None:
        """Record an update policy. Selection does not consult it."""
        self._update_policies[model_id] = UpdatePolicy(policy)
        logger.info("model_update_policy_set", model_id=model_id, policy=str(policy))

    def version_pin(self, model_id: str) -> str | None:
        return self._version_pins.get(model_id)

    def update_policy(self, model_id: str) -> UpdatePolicy | None:
        return self._update_policies.get(model_id)

    # ── Lifecycle ────────────────────────────────────────────────────

    async def aclose(self) -> None:
        """Close every backend client, including those of replaced or removed entries."""
        retired, self._retired = self._retired, []
        for backend in [*retired, *self._backends.values()]:
            await backend.aclose()

    def describe(self) -> list[dict[str, Any]]:
        """JSON-serializable snapshot of every entry and its state."""
        out = []
        for mid, entry in self._entries.items():
            health = self._health.get(mid)
            out.append({
                "id": mid,
                "provider": entry.provider,
                "name": entry.display_name,
                "location": entry.location.value,
                "priority": entry.effective_priority,
                "capabilities": entry.capabilities.enabled_names(),
                "enabled": mid in self._enabled,
                "health": health.to_dict() if health else None,
                "version_pin": self._version_pins.get(mid),
                "update_policy": str(self._update_policies[mid]) if mid in self._update_policies else None,
            })
        return out
