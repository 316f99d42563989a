"""Background maintenance for a long-running engine.

An asyncio task that periodically prunes aged state, samples process memory,
re-mines patterns and saves snapshots. Blocking work runs in a worker thread
via ``asyncio.to_thread`` so the event loop stays responsive.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import psutil

from ostinato.core.config import MaintenanceConfig
from ostinato.core.logging import get_logger
from ostinato.utils.tasks import log_failure_callback

if TYPE_CHECKING:
    from ostinato.learning.engine import LearningEngine

_logger = get_logger("maintenance")


def process_memory_mb() -> float | None:
    """RSS of the current process in MB, or None if psutil cannot read it."""
    try:
        return psutil.Process().memory_info().rss / (1024 * 1024)
    except psutil.Error:
        _logger.debug("maintenance.memory_probe_failed", exc_info=True)
        return None


@dataclass
class MaintenanceStats:
    """Counters exposed for inspection and tests."""

    cycles: int = 0
    runs: dict[str, int] = field(default_factory=dict)
    last_memory_mb: float | None = None
    consecutive_failures: int = 0


class MaintenanceLoop:
    """Periodic maintenance jobs for one LearningEngine."""

    def __init__(
        self,
        engine: LearningEngine,
        config: MaintenanceConfig | None = None,
        memory_probe: Callable[[], float | None] = process_memory_mb,
    ) -> None:
        self._engine = engine
        self._config = config or engine.config.maintenance
        self._memory_probe = memory_probe
        self._task: asyncio.Task[None] | None = None
        self._stop_event: asyncio.Event | None = None
        self._next_due: dict[str, float] = {}
        self.stats = MaintenanceStats()

        self._jobs: dict[str, tuple[float, Callable[[], None]]] = {
            "gc": (self._config.gc_interval_seconds, self._collect_garbage),
            "memory": (self._config.memory_interval_seconds, self._sample_memory),
            "mining": (self._config.mining_interval_seconds, self._mine),
            "save": (self._config.save_interval_seconds, self._save),
        }

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Start the loop; a second call while running is a no-op."""
        if self.running:
            return
        now = time.monotonic()
        self._next_due = {name: now + interval for name, (interval, _) in self._jobs.items()}
        # sample memory on the first cycle
        self._next_due["memory"] = now
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._loop(), name="ostinato-maintenance")
        self._task.add_done_callback(
            log_failure_callback(_logger, "maintenance.loop_died_unexpectedly")
        )
        _logger.info(
            "maintenance.started",
            intervals={name: interval for name, (interval, _) in self._jobs.items()},
        )

    async def stop(self) -> None:
        """Signal the loop and wait for the cycle in progress to finish."""
        if self._task is None or self._stop_event is None:
            return
        self._stop_event.set()
        try:
            await self._task
        except Exception:
            # already logged by the done callback
            pass
        self._task = None
        _logger.info("maintenance.stopped", cycles=self.stats.cycles)

    async def run_cycle(self, force: bool = False) -> list[str]:
        """Run every job that is due (or all of them with ``force``)."""
        now = time.monotonic()
        ran: list[str] = []
        for name, (interval, job) in self._jobs.items():
            if not force and now < self._next_due.get(name, 0.0):
                continue
            try:
                await asyncio.to_thread(job)
            finally:
                # a failing job still waits a full interval before retrying
                self._next_due[name] = time.monotonic() + interval
            self.stats.runs[name] = self.stats.runs.get(name, 0) + 1
            ran.append(name)
        self.stats.cycles += 1
        return ran

    async def _loop(self) -> None:
        assert self._stop_event is not None
        while not self._stop_event.is_set():
            try:
                await self.run_cycle()
                if self.stats.consecutive_failures:
                    _logger.info(
                        "maintenance.recovered",
                        after_failures=self.stats.consecutive_failures,
                    )
                self.stats.consecutive_failures = 0
            except Exception:
                self.stats.consecutive_failures += 1
                _logger.exception(
                    "maintenance.cycle_failed",
                    consecutive_failures=self.stats.consecutive_failures,
                )
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._sleep_seconds())
            except TimeoutError:
                pass

    def _sleep_seconds(self) -> float:
        if not self._next_due:
            return min(interval for interval, _ in self._jobs.values())
        return max(0.0, min(self._next_due.values()) - time.monotonic())

    # ─── Jobs (run in a worker thread) ────────────────────────────────

    def _collect_garbage(self) -> None:
        self._engine.collect_garbage()

    def _sample_memory(self) -> None:
        memory_mb = self._memory_probe()
        self.stats.last_memory_mb = memory_mb
        if memory_mb is None:
            return
        if memory_mb > self._config.memory_warning_mb:
            _logger.warning(
                "maintenance.memory_high",
                usage_mb=round(memory_mb, 1),
                limit_mb=self._config.memory_warning_mb,
            )
            self._engine.collect_garbage()
        else:
            _logger.debug("maintenance.memory_sampled", usage_mb=round(memory_mb, 1))

    def _mine(self) -> None:
        self._engine.mine_patterns()
        self._engine.cluster_workflows()

    def _save(self) -> None:
        self._engine.save()
