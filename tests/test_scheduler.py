"""Tests for the sliding-window commit scheduler."""

import asyncio
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from git_autocommit.scheduler import CommitScheduler

ROOT = Path("/workspace/project")


class Recorder:
    """Callback double that records firings and their timing."""

    def __init__(self, duration: float = 0.0):
        self.duration = duration
        self.calls: list[Path] = []
        self.active = 0
        self.max_active = 0

    async def __call__(self, root: Path) -> None:
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        self.calls.append(root)
        await asyncio.sleep(self.duration)
        self.active -= 1


@pytest.mark.asyncio
async def test_burst_fires_once_after_last_change() -> None:
    """Verifies a burst of schedules collapses into a single firing."""
    recorder = Recorder()
    scheduler = CommitScheduler(recorder, delay_ms=50)

    for _ in range(5):
        scheduler.schedule(ROOT)
        await asyncio.sleep(0.01)

    assert recorder.calls == []
    await asyncio.sleep(0.1)
    await scheduler.wait_idle()

    assert recorder.calls == [ROOT]
    assert not scheduler.pending


@pytest.mark.asyncio
async def test_each_schedule_restarts_the_window() -> None:
    """Verifies the delay is measured from the most recent change."""
    recorder = Recorder()
    scheduler = CommitScheduler(recorder, delay_ms=60)

    scheduler.schedule(ROOT)
    await asyncio.sleep(0.04)
    scheduler.schedule(ROOT)
    await asyncio.sleep(0.04)

    # 80ms after the first change, but only 40ms after the last one.
    assert recorder.calls == []
    assert scheduler.pending

    await asyncio.sleep(0.06)
    await scheduler.wait_idle()
    assert len(recorder.calls) == 1


@pytest.mark.asyncio
async def test_cancel_prevents_firing() -> None:
    """Verifies a cancelled timer never fires."""
    recorder = Recorder()
    scheduler = CommitScheduler(recorder, delay_ms=20)

    scheduler.schedule(ROOT)
    scheduler.cancel()
    await asyncio.sleep(0.05)

    assert recorder.calls == []
    assert not scheduler.pending


@pytest.mark.asyncio
async def test_firings_never_overlap() -> None:
    """Verifies a timer expiring during an attempt waits for it to finish."""
    recorder = Recorder(duration=0.08)
    scheduler = CommitScheduler(recorder, delay_ms=10)

    scheduler.schedule(ROOT)
    await asyncio.sleep(0.03)  # First attempt now in flight
    assert scheduler.running
    scheduler.schedule(ROOT)
    await asyncio.sleep(0.03)  # Second timer expired while the first runs

    await scheduler.wait_idle()

    assert len(recorder.calls) == 2
    assert recorder.max_active == 1


@pytest.mark.asyncio
async def test_cancel_does_not_abort_running_attempt() -> None:
    """Verifies cancel() only drops the pending timer."""
    recorder = Recorder(duration=0.05)
    scheduler = CommitScheduler(recorder, delay_ms=10)

    scheduler.schedule(ROOT)
    await asyncio.sleep(0.03)
    scheduler.cancel()
    await scheduler.wait_idle()

    assert len(recorder.calls) == 1
    assert recorder.active == 0


@pytest.mark.asyncio
async def test_cancel_drops_firing_waiting_for_lock() -> None:
    """Verifies a firing queued behind a running attempt can still be cancelled."""
    recorder = Recorder(duration=0.1)
    scheduler = CommitScheduler(recorder, delay_ms=10)

    scheduler.schedule(ROOT)
    await asyncio.sleep(0.03)  # First attempt now in flight
    scheduler.schedule(ROOT)
    await asyncio.sleep(0.03)  # Second timer expired, waiting on the lock
    assert scheduler.pending

    scheduler.cancel()
    await scheduler.wait_idle()

    assert len(recorder.calls) == 1
    assert not scheduler.pending


@pytest.mark.asyncio
async def test_callback_errors_are_logged(caplog: MagicMock) -> None:
    """Verifies a crashing callback is logged and the scheduler stays usable."""

    async def boom(root: Path) -> None:
        raise RuntimeError("kaboom")

    scheduler = CommitScheduler(boom, delay_ms=10)
    scheduler.schedule(ROOT)
    await asyncio.sleep(0.03)
    await scheduler.wait_idle()

    assert "SCHEDULER ERROR" in caplog.text
    assert not scheduler.running


@pytest.mark.asyncio
async def test_new_delay_applies_to_next_schedule() -> None:
    """Verifies a changed delay takes effect when the timer is next armed."""
    recorder = Recorder()
    scheduler = CommitScheduler(recorder, delay_ms=500)

    scheduler.delay_ms = 10
    scheduler.schedule(ROOT)
    await asyncio.sleep(0.05)
    await scheduler.wait_idle()

    assert recorder.calls == [ROOT]
