"""Fixed-interval scan driver that never overlaps ticks."""

from __future__ import annotations

import asyncio
from typing import Protocol

import structlog

from rankzone.lifecycle.manager import TickReport
from rankzone.lifecycle.state import ZoneInvariantError
from rankzone.monitoring.metrics import Metrics

log = structlog.get_logger(__name__)


class TickRunner(Protocol):
    name: str

    async def run_tick(self) -> TickReport | None: ...


class ScanScheduler:
    """Drive ``tracker.run_tick`` every ``interval_sec`` seconds.

    A tick that comes due while the previous one is still running is dropped,
    not queued. Ticks are never cancelled half way: :meth:`stop` waits for an
    in-flight tick to finish.
    """

    def __init__(
        self,
        tracker: TickRunner,
        interval_sec: float,
        metrics: Metrics | None = None,
    ) -> None:
        if interval_sec <= 0:
            raise ValueError("interval_sec must be positive")
        self.tracker = tracker
        self.interval_sec = interval_sec
        self.metrics = metrics
        self.ticks_run = 0
        self.ticks_skipped = 0
        self._lock = asyncio.Lock()
        self._loop_task: asyncio.Task | None = None
        self._inflight: asyncio.Task | None = None
        self._fatal: BaseException | None = None

    @property
    def name(self) -> str:
        return self.tracker.name

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    @property
    def running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    def _skip(self) -> None:
        self.ticks_skipped += 1
        if self.metrics:
            self.metrics.scan_ticks_skipped_total.labels(tracker=self.name).inc()
        log.debug("tick_skipped_busy", tracker=self.name)

    async def trigger(self) -> TickReport | None:
        """Run one tick now, or skip it if a tick is already running."""
        if self._lock.locked():
            self._skip()
            return None
        async with self._lock:
            self.ticks_run += 1
            try:
                return await self.tracker.run_tick()
            except ZoneInvariantError:
                log.exception("tick_invariant_violation", tracker=self.name)
                raise
            except Exception:
                log.exception("tick_failed", tracker=self.name)
                return None

    def _on_tick_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if isinstance(exc, ZoneInvariantError):
            self._fatal = exc

    async def run(self) -> None:
        """Scheduling loop; returns only on cancellation or a fatal invariant error."""
        loop = asyncio.get_running_loop()
        next_due = loop.time()
        log.info("scheduler_started", tracker=self.name, interval_sec=self.interval_sec)
        while True:
            if self._fatal is not None:
                raise self._fatal
            if self._lock.locked():
                self._skip()
            else:
                self._inflight = asyncio.create_task(self.trigger())
                self._inflight.add_done_callback(self._on_tick_done)
            next_due += self.interval_sec
            now = loop.time()
            if next_due < now:
                # Fell behind by whole intervals; realign instead of bursting.
                next_due = now + self.interval_sec
            await asyncio.sleep(next_due - now)

    def start(self) -> asyncio.Task:
        if not self.running:
            self._loop_task = asyncio.create_task(self.run(), name=f"scan:{self.name}")
        return self._loop_task

    async def stop(self) -> None:
        loop_task, self._loop_task = self._loop_task, None
        # A loop that already ended keeps its outcome for whoever awaited start().
        if loop_task is not None and not loop_task.done():
            loop_task.cancel()
            try:
                await loop_task
            except asyncio.CancelledError:
                pass
        if self._inflight is not None and not self._inflight.done():
            await asyncio.wait({self._inflight})
        log.info("scheduler_stopped", tracker=self.name, ticks=self.ticks_run, skipped=self.ticks_skipped)
