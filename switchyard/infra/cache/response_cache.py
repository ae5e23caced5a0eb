"""
Response Cache — TTL + Capacity-Bounded Key/Value Store
=========================================================

In-memory cache for model responses, embeddings and retrieval contexts.

  - Memory tier: dict of CacheEntry, TTL per entry (default 60s)
  - Eviction: at capacity, drop the 10% least-recently-accessed entries
  - Embedding cache: 7-day TTL, keyed by a truncated text hash
  - RAG cache: configurable TTL (default 1h)
  - Optional disk tier: best-effort JSON write-through; every write
    returns a CacheWriteResult instead of raising
  - Background sweep purges expired entries every cleanup_interval_s

Concurrent identical requests are NOT de-duplicated: two callers missing
on the same key both compute, and the later ``set`` wins.

``get_stats()["hit_rate"]`` is (entries accessed at least once) divided
by (sum of access counts). That is an access-spread figure, not a hit
ratio; real hit/miss counts are reported as ``hits`` and ``misses``.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import math
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from switchyard.core.config import CacheConfig
from switchyard.infra.telemetry import get_logger, get_metrics

logger = get_logger(__name__)
metrics = get_metrics()

EMBEDDING_TTL_MS = 7 * 24 * 60 * 60 * 1000
EVICTION_FRACTION = 0.1

@dataclass(slots=True)
class CacheEntry:
    """One cached value. Times are epoch milliseconds."""

    key: str
    value: Any
    timestamp: float
    expires_at: float
    access_count: int = 0
    last_accessed: float = 0.0

    def is_expired(self, now_ms: float) -> bool:
        return self.expires_at < now_ms

@dataclass(frozen=True, slots=True)
class CacheWriteResult:
    """Outcome of a cache write, per tier."""

    success: bool
    key: str
    tier: str = "memory"
    error: str | None = None

@dataclass
class _Counters:
    hits: int = 0
    misses: int = 0
    evictions: int = 0
    expirations: int = 0
    disk_errors: int = 0

def _now_ms() -> float:
    return time.time() * 1000

def canonical_json(value: Any) -> str:
    """Sorted-key compact JSON; non-JSON values fall back to ``str``."""
    return json.dumps(value, sort_keys=True, separators=(",", ":"), default=str)

def hash_text(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()[:16]

class ResponseCache:
    """
    TTL cache with capacity-bounded, least-recently-accessed eviction.

    Usage:
        cache = ResponseCache(CacheConfig(memory_cache_size=500))
        key = cache.generate_key("gpt-4o", "reasoning", {"messages": msgs})
        if (hit := cache.get(key)) is None:
            cache.set(key, await compute())
    """

    def __init__(self, config: CacheConfig | None = None) -> None:
        self._config = config or CacheConfig()
        self._entries: dict[str, CacheEntry] = {}
        self._counters = _Counters()
        self._sweeper: asyncio.Task | None = None
        self._disk_path = Path(self._config.disk_cache_path)

        logger.info(
            "response_cache_initialized",
            memory_cache_size=self._config.memory_cache_size,
            memory_cache_ttl_ms=self._config.memory_cache_ttl_ms,
            disk_cache_enabled=self._config.disk_cache_enabled,
        )

    @property
    def config(self) -> CacheConfig:
        return self._config

    # ── Keys ─────────────────────────────────────────────────────────

    @staticmethod
    def generate_key(
        model: str,
        task: str,
        input: Any,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> str:
        """``{model}:{task}:{sha256 of the canonical request}``."""
        payload = canonical_json({
            "model": model,
            "task": task,
            "input": input,
            "temperature": temperature,
            "max_tokens": max_tokens,
        })
        digest = hashlib.sha256(payload.encode("utf-8")).hexdigest()
        return f"{model}:{task}:{digest}"

    # ── Core Operations ──────────────────────────────────────────────

    def get(self, key: str) -> Any | None:
        """Value for ``key``, or None on a miss or expiry."""
        now = _now_ms()
        entry = self._entries.get(key)

        if entry is not None and entry.is_expired(now):
            del self._entries[key]
            self._counters.expirations += 1
            entry = None

        if entry is None and self._config.disk_cache_enabled:
            entry = self._read_disk(key, now)
            if entry is not None:
                self._insert(entry)

        if entry is None:
            self._counters.misses += 1
            metrics.record_cache_access(cache_type=_cache_type(key), hit=False)
            return None

        entry.access_count += 1
        entry.last_accessed = now
        self._counters.hits += 1
        metrics.record_cache_access(cache_type=_cache_type(key), hit=True)
        logger.debug("cache_hit", key=key)
        return entry.value

    def set(self, key: str, value: Any, ttl_ms: int | None = None) -> CacheWriteResult:
        """
        Store ``value`` under ``key``.

        The memory write always succeeds. With the disk tier enabled the
        returned result reports the disk write-through instead.
        """
        ttl = ttl_ms or self._config.memory_cache_ttl_ms
        now = _now_ms()
        entry = CacheEntry(
            key=key,
            value=value,
            timestamp=now,
            expires_at=now + ttl,
            last_accessed=now,
        )
        self._insert(entry)
        logger.debug("cache_set", key=key, ttl_ms=ttl)

        if self._config.disk_cache_enabled:
            return self._write_disk(entry)
        return CacheWriteResult(success=True, key=key)

    def _insert(self, entry: CacheEntry) -> None:
        if len(self._entries) >= self._config.memory_cache_size:
            self._evict_oldest()
        self._entries[entry.key] = entry

    def _evict_oldest(self) -> int:
        count = max(1, math.floor(self._config.memory_cache_size * EVICTION_FRACTION))
        oldest = sorted(self._entries.values(), key=lambda e: e.last_accessed)[:count]
        for entry in oldest:
            del self._entries[entry.key]
        self._counters.evictions += len(oldest)
        metrics.record_cache_eviction(len(oldest), reason="capacity")
        logger.debug("cache_evicted", count=len(oldest))
        return len(oldest)

    def delete(self, key: str) -> bool:
        removed = self._entries.pop(key, None) is not None
        if self._config.disk_cache_enabled:
            self._disk_file(key).unlink(missing_ok=True)
        return removed

    def clear(self) -> None:
        self._entries.clear()
        logger.info("cache_cleared")

    def cleanup(self) -> int:
        """Purge every expired entry. Returns how many were removed."""
        now = _now_ms()
        expired = [k for k, e in self._entries.items() if e.is_expired(now)]
        for key in expired:
            del self._entries[key]
        if expired:
            self._counters.expirations += len(expired)
            metrics.record_cache_eviction(len(expired), reason="expired")
            logger.debug("cache_cleanup", count=len(expired))
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        entry = self._entries.get(key)  # type: ignore[arg-type]
        return entry is not None and not entry.is_expired(_now_ms())

    # ── Specialized Caches ───────────────────────────────────────────

    def cache_embedding(self, text: str, embedding: list[float]) -> CacheWriteResult | None:
        if not self._config.embedding_cache_enabled:
            return None
        return self.set(f"embedding:{hash_text(text)}", embedding, EMBEDDING_TTL_MS)

    def get_cached_embedding(self, text: str) -> list[float] | None:
        if not self._config.embedding_cache_enabled:
            return None
        return self.get(f"embedding:{hash_text(text)}")

    def cache_rag_context(self, query: str, context: str) -> CacheWriteResult | None:
        if not self._config.rag_cache_enabled:
            return None
        return self.set(f"rag:{hash_text(query)}", context, self._config.rag_cache_ttl_ms)

    def get_cached_rag_context(self, query: str) -> str | None:
        if not self._config.rag_cache_enabled:
            return None
        return self.get(f"rag:{hash_text(query)}")

    # ── Disk Tier ────────────────────────────────────────────────────

    def _disk_file(self, key: str) -> Path:
        return self._disk_path / f"{hashlib.sha256(key.encode('utf-8')).hexdigest()}.json"

    def _write_disk(self, entry: CacheEntry) -> CacheWriteResult:
        record = {
            "key": entry.key,
            "value": entry.value,
            "timestamp": entry.timestamp,
            "expires_at": entry.expires_at,
        }
        try:
            self._disk_path.mkdir(parents=True, exist_ok=True)
            self._disk_file(entry.key).write_text(json.dumps(record), encoding="utf-8")
        except (OSError, TypeError, ValueError) as e:
            self._counters.disk_errors += 1
            logger.warning("cache_disk_write_failed", key=entry.key, error=str(e))
            return CacheWriteResult(success=False, key=entry.key, tier="disk", error=str(e))
        return CacheWriteResult(success=True, key=entry.key, tier="disk")

    def _read_disk(self, key: str, now_ms: float) -> CacheEntry | None:
        path = self._disk_file(key)
        if not path.exists():
            return None
        try:
            record = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            self._counters.disk_errors += 1
            logger.warning("cache_disk_read_failed", key=key, error=str(e))
            return None
        if record.get("key") != key or record.get("expires_at", 0) < now_ms:
            path.unlink(missing_ok=True)
            return None
        return CacheEntry(
            key=key,
            value=record["value"],
            timestamp=record.get("timestamp", now_ms),
            expires_at=record["expires_at"],
            last_accessed=now_ms,
        )

    # ── Background Sweep ─────────────────────────────────────────────

    async def start(self) -> None:
        """Arm the periodic expiry sweep."""
        if self._sweeper is not None and not self._sweeper.done():
            return
        self._sweeper = asyncio.create_task(self._sweep_loop(), name="cache-sweeper")
        logger.info("cache_sweeper_started", interval_s=self._config.cleanup_interval_s)

    async def stop(self) -> None:
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        try:
            await self._sweeper
        except asyncio.CancelledError:
            pass
        self._sweeper = None
        logger.info("cache_sweeper_stopped")

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self._config.cleanup_interval_s)
            self.cleanup()

    # ── Stats ────────────────────────────────────────────────────────

    def get_stats(self) -> dict[str, Any]:
        total_accesses = 0
        accessed_entries = 0
        for entry in self._entries.values():
            total_accesses += entry.access_count
            if entry.access_count > 0:
                accessed_entries += 1

        return {
            "size": len(self._entries),
            "max_size": self._config.memory_cache_size,
            "hit_rate": accessed_entries / total_accesses if total_accesses else 0.0,
            "entries": len(self._entries),
            "hits": self._counters.hits,
            "misses": self._counters.misses,
            "evictions": self._counters.evictions,
            "expirations": self._counters.expirations,
            "disk_errors": self._counters.disk_errors,
        }

def _cache_type(key: str) -> str:
    prefix = key.split(":", 1)[0]
    return prefix if prefix in ("embedding", "rag") else "response"
