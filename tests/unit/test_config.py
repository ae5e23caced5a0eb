"""
Configuration — Unit Tests
===========================
"""

import pytest

from switchyard.core.config import (
    CacheConfig,
    HealthMonitorConfig,
    ManagerConfig,
    RouterConfig,
    WorkerConfig,
)


class TestDefaults:
    def test_manager_defaults(self):
        config = ManagerConfig()
        assert config.enable_cache is True
        assert config.enable_health_monitoring is True
        assert config.cache.memory_cache_size == 1000
        assert config.cache.memory_cache_ttl_ms == 60_000
        assert config.health.check_interval_s == 60.0
        assert config.workers.max_workers == 16

    def test_cache_size_must_be_positive(self):
        with pytest.raises(ValueError):
            CacheConfig(memory_cache_size=0)


class TestFromEnv:
    def test_unset_variables_keep_defaults(self, monkeypatch):
        for name in ("CACHE_SIZE", "HEALTH_INTERVAL_S", "PREFER_LOCAL", "MAX_WORKERS"):
            monkeypatch.delenv(f"SWITCHYARD_{name}", raising=False)
        assert CacheConfig.from_env() == CacheConfig()
        assert RouterConfig.from_env() == RouterConfig()

    def test_overrides(self, monkeypatch):
        monkeypatch.setenv("SWITCHYARD_CACHE_SIZE", "50")
        monkeypatch.setenv("SWITCHYARD_CACHE_TTL_MS", "1500")
        monkeypatch.setenv("SWITCHYARD_DISK_CACHE", "yes")
        monkeypatch.setenv("SWITCHYARD_DISK_CACHE_PATH", "/tmp/sw-cache")
        monkeypatch.setenv("SWITCHYARD_HEALTH_INTERVAL_S", "2.5")
        monkeypatch.setenv("SWITCHYARD_HEALTH_MAX_PROBES", "4")
        monkeypatch.setenv("SWITCHYARD_COST_OPTIMIZATION", "true")
        monkeypatch.setenv("SWITCHYARD_MAX_WORKERS", "8")
        monkeypatch.setenv("SWITCHYARD_WORKER_TIMEOUT_S", "30")
        monkeypatch.setenv("SWITCHYARD_ENABLE_HEALTH", "off")
        monkeypatch.setenv("SWITCHYARD_LOG_LEVEL", "DEBUG")
        monkeypatch.setenv("SWITCHYARD_TRACING_EXPORTER", "console")

        config = ManagerConfig.from_env()

        assert config.cache.memory_cache_size == 50
        assert config.cache.memory_cache_ttl_ms == 1500
        assert config.cache.disk_cache_enabled is True
        assert config.cache.disk_cache_path == "/tmp/sw-cache"
        assert config.health == HealthMonitorConfig(check_interval_s=2.5, max_concurrent_probes=4)
        assert config.router.cost_optimization is True
        assert config.router.prefer_local is False
        assert config.workers == WorkerConfig(max_workers=8, worker_timeout_s=30.0)
        assert config.enable_health_monitoring is False
        assert config.enable_cache is True
        assert config.log_level == "DEBUG"
        assert config.tracing_exporter == "console"

    @pytest.mark.parametrize("raw", ["1", "TRUE", " on ", "Yes"])
    def test_truthy_booleans(self, monkeypatch, raw):
        monkeypatch.setenv("SWITCHYARD_PREFER_CLOUD", raw)
        assert RouterConfig.from_env().prefer_cloud is True

    @pytest.mark.parametrize("raw", ["0", "false", "no", "maybe"])
    def test_falsy_booleans(self, monkeypatch, raw):
        monkeypatch.setenv("SWITCHYARD_PREFER_CLOUD", raw)
        assert RouterConfig.from_env().prefer_cloud is False

    def test_empty_value_means_default(self, monkeypatch):
        monkeypatch.setenv("SWITCHYARD_CACHE_SIZE", "")
        assert CacheConfig.from_env().memory_cache_size == 1000

    def test_zero_worker_timeout_means_none(self, monkeypatch):
        monkeypatch.setenv("SWITCHYARD_WORKER_TIMEOUT_S", "0")
        assert WorkerConfig.from_env().worker_timeout_s is None

    def test_invalid_number_raises(self, monkeypatch):
        monkeypatch.setenv("SWITCHYARD_CACHE_SIZE", "lots")
        with pytest.raises(ValueError):
            CacheConfig.from_env()
