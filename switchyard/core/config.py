"""
Configuration Objects
======================

Dataclass configuration for every component, with environment overrides.

Each config has a ``from_env()`` classmethod that reads ``SWITCHYARD_*``
variables and falls back to the dataclass defaults. Components accept
a config instance and never read the environment themselves.

Usage:
    config = ManagerConfig.from_env()
    manager = RegistryManager(config)
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field

_PREFIX = "SWITCHYARD_"

def _env_str(name: str, default: str) -> str:
    return os.getenv(_PREFIX + name, default)

def _env_int(name: str, default: int) -> int:
    raw = os.getenv(_PREFIX + name)
    return int(raw) if raw not in (None, "") else default

def _env_float(name: str, default: float) -> float:
    raw = os.getenv(_PREFIX + name)
    return float(raw) if raw not in (None, "") else default

def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(_PREFIX + name)
    if raw in (None, ""):
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")

@dataclass
class CacheConfig:
    """Response cache configuration. TTLs are in milliseconds."""

    memory_cache_size: int = 1000
    memory_cache_ttl_ms: int = 60_000
    embedding_cache_enabled: bool = True
    rag_cache_enabled: bool = True
    rag_cache_ttl_ms: int = 3_600_000
    cleanup_interval_s: float = 60.0
    disk_cache_enabled: bool = False
    disk_cache_path: str = ".cache"

    def __post_init__(self) -> None:
        if self.memory_cache_size < 1:
            raise ValueError("memory_cache_size must be >= 1")

    @classmethod
    def from_env(cls) -> CacheConfig:
        return cls(
            memory_cache_size=_env_int("CACHE_SIZE", cls.memory_cache_size),
            memory_cache_ttl_ms=_env_int("CACHE_TTL_MS", cls.memory_cache_ttl_ms),
            embedding_cache_enabled=_env_bool("EMBEDDING_CACHE", cls.embedding_cache_enabled),
            rag_cache_enabled=_env_bool("RAG_CACHE", cls.rag_cache_enabled),
            rag_cache_ttl_ms=_env_int("RAG_CACHE_TTL_MS", cls.rag_cache_ttl_ms),
            cleanup_interval_s=_env_float("CACHE_CLEANUP_INTERVAL_S", cls.cleanup_interval_s),
            disk_cache_enabled=_env_bool("DISK_CACHE", cls.disk_cache_enabled),
            disk_cache_path=_env_str("DISK_CACHE_PATH", cls.disk_cache_path),
        )

@dataclass
class HealthMonitorConfig:
    """Health monitor configuration."""

    check_interval_s: float = 60.0
    timeout_s: float = 5.0
    degraded_latency_ms: float = 5000.0
    max_concurrent_probes: int = 16

    @classmethod
    def from_env(cls) -> HealthMonitorConfig:
        return cls(
            check_interval_s=_env_float("HEALTH_INTERVAL_S", cls.check_interval_s),
            timeout_s=_env_float("HEALTH_TIMEOUT_S", cls.timeout_s),
            degraded_latency_ms=_env_float("HEALTH_DEGRADED_MS", cls.degraded_latency_ms),
            max_concurrent_probes=_env_int("HEALTH_MAX_PROBES", cls.max_concurrent_probes),
        )

@dataclass
class RouterConfig:
    """Default routing preferences applied to every route_task call."""

    prefer_local: bool = False
    prefer_cloud: bool = False
    cost_optimization: bool = False
    speed_optimization: bool = False
    history_size: int = 10_000

    @classmethod
    def from_env(cls) -> RouterConfig:
        return cls(
            prefer_local=_env_bool("PREFER_LOCAL", cls.prefer_local),
            prefer_cloud=_env_bool("PREFER_CLOUD", cls.prefer_cloud),
            cost_optimization=_env_bool("COST_OPTIMIZATION", cls.cost_optimization),
            speed_optimization=_env_bool("SPEED_OPTIMIZATION", cls.speed_optimization),
        )

@dataclass
class WorkerConfig:
    """Worker pool configuration."""

    max_workers: int = 16
    worker_timeout_s: float | None = None
    drain_timeout_s: float = 30.0

    @classmethod
    def from_env(cls) -> WorkerConfig:
        timeout = _env_float("WORKER_TIMEOUT_S", 0.0)
        return cls(
            max_workers=_env_int("MAX_WORKERS", cls.max_workers),
            worker_timeout_s=timeout or None,
            drain_timeout_s=_env_float("DRAIN_TIMEOUT_S", cls.drain_timeout_s),
        )

@dataclass
class ManagerConfig:
    """Top-level façade configuration."""

    enable_cache: bool = True
    enable_health_monitoring: bool = True
    cache: CacheConfig = field(default_factory=CacheConfig)
    health: HealthMonitorConfig = field(default_factory=HealthMonitorConfig)
    router: RouterConfig = field(default_factory=RouterConfig)
    workers: WorkerConfig = field(default_factory=WorkerConfig)
    log_level: str = "INFO"
    tracing_exporter: str = "none"

    @classmethod
    def from_env(cls) -> ManagerConfig:
        return cls(
            enable_cache=_env_bool("ENABLE_CACHE", True),
            enable_health_monitoring=_env_bool("ENABLE_HEALTH", True),
            cache=CacheConfig.from_env(),
            health=HealthMonitorConfig.from_env(),
            router=RouterConfig.from_env(),
            workers=WorkerConfig.from_env(),
            log_level=_env_str("LOG_LEVEL", "INFO"),
            tracing_exporter=_env_str("TRACING_EXPORTER", "none"),
        )
