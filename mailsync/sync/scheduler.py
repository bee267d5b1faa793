"""
Auto-sync scheduler.

Background task that periodically runs a sync cycle.
"""

import asyncio
import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .orchestrator import SyncOrchestrator, SyncResult


logger = logging.getLogger(__name__)


class SyncScheduler:
    """
    Recurring sync timer.

    Each cycle runs as its own task, so stopping or rescheduling the timer
    only interrupts the wait between cycles. A cycle that has started always
    runs to completion.
    """

    def __init__(self, orchestrator: "SyncOrchestrator", interval_minutes: float = 30):
        self.orchestrator = orchestrator
        self._interval_minutes = interval_minutes
        self._task: asyncio.Task | None = None
        self._cycle: asyncio.Task | None = None

    @property
    def interval_minutes(self) -> float:
        return self._interval_minutes

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def cycle_running(self) -> bool:
        return self._cycle is not None and not self._cycle.done()

    async def start(self):
        """Start the auto-sync timer."""
        if self.is_running:
            return

        if self._interval_minutes <= 0:
            logger.info("Auto-sync disabled (interval is 0)")
            return

        self._task = asyncio.create_task(self._poll_loop())
        logger.info(f"Email sync: auto-sync started (interval: {self._interval_minutes}m)")

    async def stop(self):
        """Stop the auto-sync timer and wait for a cycle already under way."""
        await self._cancel_timer()

        cycle = self._cycle
        if cycle is not None and not cycle.done():
            logger.info("Email sync: waiting for the running cycle to finish")
            await cycle

        logger.info("Email sync: auto-sync stopped")

    async def restart(self):
        """Restart the timer with the current interval."""
        await self._cancel_timer()
        await self.start()

    async def set_interval(self, minutes: float):
        """Tear down and reschedule the timer with a new interval."""
        self._interval_minutes = minutes
        await self.restart()

    async def sync_now(self) -> "SyncResult":
        """Trigger an immediate sync (manual "sync now")."""
        logger.info("Triggering immediate email sync")
        return await self.orchestrator.sync()

    async def _cancel_timer(self):
        task, self._task = self._task, None

        if task:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def _poll_loop(self):
        """Main polling loop."""
        while True:
            await asyncio.sleep(self._interval_minutes * 60)

            if self.cycle_running:
                logger.info("Email sync: previous auto-sync still running. Skipping.")
                continue

            self._cycle = asyncio.create_task(self._run_cycle())
            # Cancelling the timer must not cancel the cycle
            await asyncio.shield(self._cycle)

    async def _run_cycle(self):
        try:
            result = await self.orchestrator.sync()
            if result.ran:
                logger.debug(
                    f"Auto-sync finished: {result.new_notes} new, {result.errors} errors"
                )
        except Exception as e:
            logger.exception(f"Error in email sync loop: {e}")
