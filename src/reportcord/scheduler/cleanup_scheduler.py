"""Periodic purge of expired report cooldowns and stale adjudication records."""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Tuple

from reportcord.util.logger import get_logger

logger = get_logger("cleanup_scheduler")

DEFAULT_CLEANUP_INTERVAL_SECONDS = 600.0


class CleanupScheduler:
    """
    Background task that calls a sweep callable on a fixed interval.

    Args:
        sweep: Callable purging expired state; returns the counts removed.
        get_interval: Callable returning the interval in seconds (called at start).
        flush: Optional coroutine function run after each sweep, e.g. persisting the store.
    """

    def __init__(
        self,
        sweep: Callable[[], Tuple[int, ...]],
        get_interval: Callable[[], float] = lambda: DEFAULT_CLEANUP_INTERVAL_SECONDS,
        flush: Callable[[], Awaitable[Any]] | None = None,
    ) -> None:
        self._sweep = sweep
        self._get_interval = get_interval
        self._flush = flush
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def run_once(self) -> Tuple[int, ...]:
        """Run a single sweep, logging instead of raising on failure."""
        try:
            return self._sweep()
        except Exception as exc:
            logger.error("[CLEANUP] Sweep failed: %s", exc)
            return ()

    async def _run_flush(self) -> None:
        if self._flush is None:
            return
        try:
            await self._flush()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("[CLEANUP] Flush after sweep failed: %s", exc)

    async def _run_loop(self, interval: float) -> None:
        """Infinite loop: sleep, sweep, repeat."""
        logger.info("[CLEANUP] Starting periodic cleanup (interval=%.1fs)", interval)
        try:
            while True:
                await asyncio.sleep(interval)
                self.run_once()
                await self._run_flush()
        except asyncio.CancelledError:
            logger.info("[CLEANUP] Periodic cleanup cancelled")
            raise

    def start(self) -> None:
        """Start the background cleanup task if not already running."""
        if self.running:
            logger.warning("[CLEANUP] Cleanup task already running")
            return
        interval = self._get_interval()
        if interval <= 0:
            raise ValueError(f"cleanup interval must be positive, got {interval}")
        self._task = asyncio.create_task(self._run_loop(interval))

    async def shutdown(self) -> None:
        """Cancel the background task and wait for it to finish."""
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        logger.info("[CLEANUP] Scheduler shutdown complete")
