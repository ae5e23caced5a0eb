"""Exception classes for the Switchyard control plane.

Includes:
- Base exception with API serialization
- Registry / routing errors surfaced to callers
- Per-item failures captured by pipelines, probes and agent coordination
- Retry configuration and decorator with exponential backoff
"""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, TypeVar

logger = logging.getLogger(__name__)
T = TypeVar("T")


class SwitchyardError(Exception):
    """Base exception for all Switchyard errors."""

    def __init__(
        self, detail: str, status_code: int = 500, error_code: str = "INTERNAL_ERROR"
    ):
        self.detail = detail
        self.status_code = status_code
        self.error_code = error_code
        self.timestamp = datetime.now(UTC).isoformat()
        super().__init__(detail)

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for API response."""
        return {
            "error": self.error_code,
            "detail": self.detail,
            "status_code": self.status_code,
            "timestamp": self.timestamp,
        }


class ConfigurationError(SwitchyardError):
    """Raised when an entry or config cannot be accepted (e.g. unknown provider)."""

    def __init__(self, detail: str):
        super().__init__(
            detail=detail, status_code=400, error_code="CONFIGURATION_ERROR"
        )


class ModelNotFoundError(SwitchyardError):
    """Raised when a model id is not registered."""

    def __init__(self, model_id: str):
        super().__init__(
            detail=f"Model with ID {model_id} not found",
            status_code=404,
            error_code="MODEL_NOT_FOUND",
        )
        self.model_id = model_id


class NoModelAvailableError(SwitchyardError):
    """Raised when no entry satisfies the task constraints."""

    def __init__(
        self,
        detail: str = "No model available",
        *,
        requested: str | None = None,
        fallback: str | None = None,
    ):
        super().__init__(
            detail=detail, status_code=503, error_code="NO_MODEL_AVAILABLE"
        )
        self.requested = requested
        self.fallback = fallback

    def to_dict(self) -> dict[str, Any]:
        base = super().to_dict()
        if self.requested is not None:
            base["requested"] = self.requested
        if self.fallback is not None:
            base["fallback"] = self.fallback
        return base


class UnsupportedOperation(SwitchyardError):
    """Backend does not implement an optional capability."""

    def __init__(self, operation: str, provider: str):
        super().__init__(
            detail=f"Provider '{provider}' does not support {operation}",
            status_code=501,
            error_code="UNSUPPORTED_OPERATION",
        )
        self.operation = operation
        self.provider = provider


class BackendError(SwitchyardError):
    """Transport or protocol failure inside a backend client."""

    def __init__(self, detail: str, provider: str, status_code: int = 502):
        super().__init__(
            detail=f"Backend '{provider}' failed: {detail}",
            status_code=status_code,
            error_code="BACKEND_ERROR",
        )
        self.provider = provider


class ProbeFailure(SwitchyardError):
    """Health probe failed. Recorded as ``down``, never surfaced to callers."""

    def __init__(self, model_id: str, detail: str):
        super().__init__(
            detail=f"Health probe for {model_id} failed: {detail}",
            status_code=503,
            error_code="PROBE_FAILURE",
        )
        self.model_id = model_id


# =============================================================================
# PER-ITEM FAILURES (captured into structured results)
# =============================================================================


class StepFailure(SwitchyardError):
    """Pipeline step error with retry metadata."""

    def __init__(
        self,
        detail: str,
        step_id: str = "unknown",
        original_error: Exception | None = None,
        retryable: bool = True,
    ):
        super().__init__(
            detail=detail, status_code=500, error_code="PIPELINE_STEP_ERROR"
        )
        self.step_id = step_id
        self.original_error = original_error
        self.retryable = retryable

    def to_dict(self) -> dict[str, Any]:
        base = super().to_dict()
        base.update({"step_id": self.step_id, "retryable": self.retryable})
        return base


class PipelineGraphError(StepFailure):
    """Circular dependency or missing step in a pipeline graph."""

    def __init__(self, pending: list[str]):
        super().__init__(
            detail=f"Circular dependency or missing step: {', '.join(pending)}",
            step_id=pending[0] if pending else "unknown",
            retryable=False,
        )
        self.error_code = "PIPELINE_GRAPH_ERROR"
        self.pending = pending


class AgentFailure(SwitchyardError):
    """Per-role error during multi-agent coordination."""

    def __init__(
        self,
        detail: str,
        provider: str,
        role: str,
        original_error: Exception | None = None,
    ):
        super().__init__(detail=detail, status_code=500, error_code="AGENT_FAILURE")
        self.provider = provider
        self.role = role
        self.original_error = original_error


# =============================================================================
# RETRY CONFIGURATION
# =============================================================================


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""

    max_attempts: int = 3
    initial_delay: float = 1.0
    max_delay: float = 10.0
    exponential_base: float = 2.0
    jitter: bool = False
    jitter_factor: float = 0.25
    non_retryable_exceptions: tuple = field(
        default_factory=lambda: (
            ConfigurationError,
            NoModelAvailableError,
            UnsupportedOperation,
        )
    )


DEFAULT_RETRY_CONFIG = RetryConfig()


def compute_retry_delay(cfg: RetryConfig, attempt: int) -> float:
    """Compute delay for a retry attempt with optional jitter."""
    delay = min(
        cfg.initial_delay * (cfg.exponential_base ** (attempt - 1)),
        cfg.max_delay,
    )
    if cfg.jitter:
        delay += delay * cfg.jitter_factor * random.random()
    return delay


async def retry_async(
    fn: Callable[[], Awaitable[T]],
    config: RetryConfig | None = None,
    on_retry: Callable[[int, Exception, float], None] | None = None,
) -> T:
    """
    Run ``fn`` until it succeeds or attempts are exhausted.

    The last exception is re-raised unchanged. Exceptions listed in
    ``non_retryable_exceptions`` and non-retryable StepFailures are raised
    immediately.
    """
    cfg = config or DEFAULT_RETRY_CONFIG
    attempt = 1
    while True:
        try:
            return await fn()
        except cfg.non_retryable_exceptions:
            raise
        except Exception as exc:
            if isinstance(exc, StepFailure) and not exc.retryable:
                raise
            if attempt >= cfg.max_attempts:
                raise
            delay = compute_retry_delay(cfg, attempt)
            name = getattr(fn, "__name__", "call")
            logger.warning(
                "[Retry] %s attempt %d/%d failed: %s. Retrying in %.2fs",
                name, attempt, cfg.max_attempts, exc, delay,
            )
            if on_retry:
                on_retry(attempt, exc, delay)
            await asyncio.sleep(delay)
            attempt += 1
