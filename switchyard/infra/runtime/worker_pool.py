"""
Worker Pool — Bounded Concurrency for Backend Calls
=====================================================

Caps how many backend calls run at once. Parallel pipeline steps and
health sweeps share one pool, so a large fan-out waits for a free slot
instead of opening one connection per item.

  - Slot limit from WorkerConfig.max_workers (default 16)
  - Optional per-call timeout
  - Drain on shutdown, bounded by drain_timeout_s
  - Counters per kind of work ("health_probe", "pipeline_step", ...)
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from typing import Any

from switchyard.core.config import WorkerConfig
from switchyard.infra.telemetry import get_logger

logger = get_logger(__name__)

CoroFactory = Callable[[], Awaitable[Any]]

@dataclass
class KindStats:
    completed: int = 0
    failed: int = 0
    timed_out: int = 0
    total_ms: float = 0.0

    @property
    def avg_ms(self) -> float:
        done = self.completed + self.failed
        return self.total_ms / done if done else 0.0

class WorkerPool:
    """
    Semaphore-bounded pool for coroutine factories.

    Usage:
        pool = WorkerPool(WorkerConfig(max_workers=4))
        await pool.start()

        text = await pool.submit(lambda: backend.chat_completion(messages))
        outcomes = await pool.map([probe_a, probe_b], kind="health_probe")

        await pool.shutdown()
    """

    def __init__(self, config: WorkerConfig | None = None) -> None:
        self._config = config or WorkerConfig()
        if self._config.max_workers < 1:
            raise ValueError("max_workers must be >= 1")
        self._slots = asyncio.Semaphore(self._config.max_workers)
        self._idle = asyncio.Event()
        self._idle.set()
        self._active = 0
        self._peak = 0
        self._running = False
        self._kinds: dict[str, KindStats] = {}

    @property
    def running(self) -> bool:
        return self._running

    @property
    def active_count(self) -> int:
        return self._active

    @property
    def available_count(self) -> int:
        return self._config.max_workers - self._active

    async def start(self) -> None:
        self._running = True
        logger.info("worker_pool_started", max_workers=self._config.max_workers)

    async def shutdown(self, *, drain: bool = True) -> None:
        """Stop accepting work; with ``drain`` wait for in-flight calls."""
        self._running = False
        if drain and self._active:
            try:
                await asyncio.wait_for(self._idle.wait(), timeout=self._config.drain_timeout_s)
            except TimeoutError:
                logger.warning("worker_pool_drain_timeout", remaining=self._active)

        logger.info(
            "worker_pool_shutdown",
            completed=sum(s.completed for s in self._kinds.values()),
            failed=sum(s.failed for s in self._kinds.values()),
        )

    async def submit(
        self,
        coro_factory: CoroFactory,
        *,
        timeout_s: float | None = None,
        kind: str = "task",
    ) -> Any:
        """
        Run one call in a free slot, waiting for one if all are busy.

        Exceptions from the call propagate. ``timeout_s`` overrides
        ``WorkerConfig.worker_timeout_s``.
        """
        if not self._running:
            raise RuntimeError("Worker pool is not running")

        stats = self._kinds.setdefault(kind, KindStats())
        timeout = timeout_s or self._config.worker_timeout_s

        async with self._slots:
            self._enter()
            start = time.perf_counter()
            try:
                result = await asyncio.wait_for(coro_factory(), timeout=timeout)
            except TimeoutError:
                stats.failed += 1
                stats.timed_out += 1
                raise
            except Exception:
                stats.failed += 1
                raise
            else:
                stats.completed += 1
                return result
            finally:
                stats.total_ms += (time.perf_counter() - start) * 1000
                self._leave()

    async def map(
        self,
        coro_factories: Iterable[CoroFactory],
        *,
        timeout_s: float | None = None,
        kind: str = "task",
    ) -> list[Any]:
        """
        Run many calls through the pool.

        Returns one item per factory, in order: the result, or the
        exception it raised. One failure never cancels the others.
        """
        return await asyncio.gather(
            *(self.submit(f, timeout_s=timeout_s, kind=kind) for f in coro_factories),
            return_exceptions=True,
        )

    def _enter(self) -> None:
        self._active += 1
        self._peak = max(self._peak, self._active)
        self._idle.clear()

    def _leave(self) -> None:
        self._active -= 1
        if self._active == 0:
            self._idle.set()

    def get_stats(self) -> dict[str, Any]:
        return {
            "max_workers": self._config.max_workers,
            "active": self._active,
            "available": self.available_count,
            "peak": self._peak,
            "running": self._running,
            "total_completed": sum(s.completed for s in self._kinds.values()),
            "total_failed": sum(s.failed for s in self._kinds.values()),
            "kinds": {
                name: {
                    "completed": s.completed,
                    "failed": s.failed,
                    "timed_out": s.timed_out,
                    "avg_ms": round(s.avg_ms, 1),
                }
                for name, s in self._kinds.items()
            },
        }
