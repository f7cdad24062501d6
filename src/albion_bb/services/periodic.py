"""
Periodic background task base.

Each timer loop in the service (kill feed, retention cleanup, battle
discovery) runs one iteration via run_once(), then sleeps for its
interval. Iteration errors are logged and retried with backoff; only
cancellation stops the loop.
"""

from __future__ import annotations

import asyncio
from typing import Any

from ..core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_ERROR_BACKOFF_SECONDS = 5.0
DEFAULT_MAX_ERROR_BACKOFF_SECONDS = 300.0


class PeriodicTask:
    """
    Background task that runs run_once() on a fixed interval.

    Subclasses implement run_once(). Tests call run_once() directly to
    drive a single iteration deterministically.
    """

    name = "periodic"

    def __init__(
        self,
        interval_seconds: float,
        error_backoff_seconds: float = DEFAULT_ERROR_BACKOFF_SECONDS,
        max_error_backoff_seconds: float = DEFAULT_MAX_ERROR_BACKOFF_SECONDS,
    ):
        self.interval_seconds = interval_seconds
        self.error_backoff_seconds = error_backoff_seconds
        self.max_error_backoff_seconds = max_error_backoff_seconds
        self._running = False
        self._task: asyncio.Task | None = None
        self.iterations = 0
        self.consecutive_errors = 0

    async def run_once(self) -> Any:
        raise NotImplementedError

    async def run(self) -> None:
        """
        Run the loop continuously.

        Runs until cancelled. The first iteration runs immediately.
        """
        self._running = True
        backoff = self.error_backoff_seconds

        logger.info("%s task started (interval=%.0fs)", self.name, self.interval_seconds)

        while self._running:
            try:
                await self.run_once()
                self.iterations += 1
                self.consecutive_errors = 0
                backoff = self.error_backoff_seconds
                await asyncio.sleep(self.interval_seconds)

            except asyncio.CancelledError:
                logger.info("%s task cancelled", self.name)
                break

            except Exception as e:
                self.consecutive_errors += 1
                logger.error(
                    "%s task error (consecutive=%d), retrying in %.0fs: %s",
                    self.name,
                    self.consecutive_errors,
                    backoff,
                    e,
                    exc_info=True,
                )
                try:
                    await asyncio.sleep(backoff)
                except asyncio.CancelledError:
                    break
                backoff = min(backoff * 2, self.max_error_backoff_seconds)

        self._running = False
        logger.info("%s task stopped", self.name)

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> asyncio.Task:
        """
        Start the loop as a background task.

        Returns:
            The asyncio Task running the loop
        """
        if self.is_running:
            raise RuntimeError(f"{self.name} task already running")

        self._task = asyncio.create_task(self.run(), name=f"albion-{self.name}")
        return self._task

    async def stop(self, timeout: float = 5.0) -> None:
        """
        Stop the loop gracefully.

        Args:
            timeout: How long to wait for the task to finish
        """
        self._running = False
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await asyncio.wait_for(self._task, timeout=timeout)
            except asyncio.TimeoutError:
                logger.warning("%s task did not stop within timeout", self.name)
            except asyncio.CancelledError:
                pass
        self._task = None
