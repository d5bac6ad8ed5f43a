"""Tests for the scan scheduler."""

import asyncio

import pytest

from rankzone.lifecycle import ZoneInvariantError
from rankzone.monitoring import Metrics
from rankzone.scheduler import ScanScheduler


class GatedTracker:
    """Tick runner that blocks until released and records overlap."""

    name = "gated"

    def __init__(self) -> None:
        self.gate = asyncio.Event()
        self.started = 0
        self.active = 0
        self.max_active = 0

    async def run_tick(self):
        self.started += 1
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await self.gate.wait()
        finally:
            self.active -= 1
        return {"tick": self.started}


class SlowTracker(GatedTracker):
    name = "slow"

    def __init__(self, duration: float) -> None:
        super().__init__()
        self.duration = duration
        self.gate.set()

    async def run_tick(self):
        result = await super().run_tick()
        await asyncio.sleep(self.duration)
        return result


class FailingTracker:
    name = "failing"

    def __init__(self, exc: Exception) -> None:
        self.exc = exc

    async def run_tick(self):
        raise self.exc


@pytest.mark.asyncio
async def test_trigger_skips_while_tick_in_flight() -> None:
    """Test that a trigger is skipped while a tick runs."""
    tracker = GatedTracker()
    metrics = Metrics()
    scheduler = ScanScheduler(tracker, interval_sec=1.0, metrics=metrics)

    first = asyncio.create_task(scheduler.trigger())
    await asyncio.sleep(0)
    assert scheduler.busy

    assert await scheduler.trigger() is None
    assert scheduler.ticks_skipped == 1
    assert metrics.registry.get_sample_value("scan_ticks_skipped_total", {"tracker": "gated"}) == 1.0

    tracker.gate.set()
    assert await first == {"tick": 1}
    assert scheduler.ticks_run == 1
    assert tracker.max_active == 1
    assert not scheduler.busy


@pytest.mark.asyncio
async def test_loop_never_overlaps_ticks() -> None:
    """Test that the loop never runs two ticks at once."""
    tracker = SlowTracker(duration=0.05)
    scheduler = ScanScheduler(tracker, interval_sec=0.01)

    scheduler.start()
    assert scheduler.running
    await asyncio.sleep(0.2)
    await scheduler.stop()

    assert not scheduler.running
    assert tracker.max_active == 1
    assert scheduler.ticks_run >= 2
    assert scheduler.ticks_skipped >= 1
    assert tracker.active == 0


@pytest.mark.asyncio
async def test_stop_waits_for_in_flight_tick() -> None:
    """Test that stop waits for the running tick."""
    tracker = GatedTracker()
    scheduler = ScanScheduler(tracker, interval_sec=10.0)
    scheduler.start()
    await asyncio.sleep(0.01)
    assert scheduler.busy

    stopping = asyncio.create_task(scheduler.stop())
    await asyncio.sleep(0.01)
    assert not stopping.done()

    tracker.gate.set()
    await stopping
    assert tracker.active == 0
    assert scheduler.ticks_run == 1


@pytest.mark.asyncio
async def test_tick_error_is_logged_and_swallowed_by_trigger() -> None:
    """Test that an ordinary tick error is logged, not raised."""
    scheduler = ScanScheduler(FailingTracker(RuntimeError("boom")), interval_sec=1.0)
    assert await scheduler.trigger() is None
    assert scheduler.ticks_run == 1
    assert not scheduler.busy


@pytest.mark.asyncio
async def test_invariant_violation_propagates() -> None:
    """Test that an invariant violation is raised from trigger."""
    scheduler = ScanScheduler(FailingTracker(ZoneInvariantError("overlap")), interval_sec=1.0)
    with pytest.raises(ZoneInvariantError):
        await scheduler.trigger()


@pytest.mark.asyncio
async def test_invariant_violation_ends_loop() -> None:
    """Test that an invariant violation ends the loop."""
    scheduler = ScanScheduler(FailingTracker(ZoneInvariantError("overlap")), interval_sec=0.01)
    task = scheduler.start()
    with pytest.raises(ZoneInvariantError):
        await asyncio.wait_for(task, timeout=1.0)
    await scheduler.stop()


def test_interval_must_be_positive() -> None:
    """Test that a non-positive interval is rejected."""
    with pytest.raises(ValueError):
        ScanScheduler(GatedTracker(), interval_sec=0)
