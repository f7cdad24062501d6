"""Tests for the PeriodicTask loop base."""

from __future__ import annotations

import asyncio

import pytest

from albion_bb.services.periodic import PeriodicTask

pytestmark = pytest.mark.asyncio


class CountingTask(PeriodicTask):
    name = "counting"

    def __init__(self, fail_first: int = 0, **kwargs):
        super().__init__(**kwargs)
        self.calls = 0
        self.fail_first = fail_first

    async def run_once(self) -> int:
        self.calls += 1
        if self.calls <= self.fail_first:
            raise RuntimeError("transient")
        return self.calls


class TestPeriodicTask:
    """Tests for PeriodicTask."""

    async def test_first_iteration_runs_immediately(self) -> None:
        """Test that the loop does not wait an interval before running."""
        task = CountingTask(interval_seconds=3600)
        task.start()
        await asyncio.sleep(0.05)

        assert task.calls == 1
        assert task.is_running

        await task.stop()
        assert not task.is_running

    async def test_errors_are_retried(self) -> None:
        """Test that an iteration error is logged and the loop continues."""
        task = CountingTask(
            fail_first=2,
            interval_seconds=3600,
            error_backoff_seconds=0.01,
            max_error_backoff_seconds=0.02,
        )
        task.start()
        for _ in range(100):
            if task.iterations:
                break
            await asyncio.sleep(0.01)
        await task.stop()

        assert task.calls == 3
        assert task.iterations == 1
        assert task.consecutive_errors == 0

    async def test_start_twice_rejected(self) -> None:
        """Test that a running task cannot be started again."""
        task = CountingTask(interval_seconds=3600)
        task.start()
        try:
            with pytest.raises(RuntimeError, match="already running"):
                task.start()
        finally:
            await task.stop()

    async def test_stop_when_not_started(self) -> None:
        """Test that stop() on an idle task is a no-op."""
        task = CountingTask(interval_seconds=1)

        await task.stop()

        assert not task.is_running

    async def test_base_run_once_not_implemented(self) -> None:
        """Test that subclasses must implement run_once."""
        with pytest.raises(NotImplementedError):
            await PeriodicTask(interval_seconds=1).run_once()
