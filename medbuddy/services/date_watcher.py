"""Local-date watcher for the medication tracker."""

import asyncio
from typing import Optional

from medbuddy.config import settings
from medbuddy.services.adherence import AdherenceLedger
from medbuddy.utils import logger


class LocalDateWatcher:
    """Background task that moves a ledger to the new day after midnight.

    Every interval_seconds it asks the ledger to re-read its clock; the
    ledger re-subscribes to the new date's log entries when the date changed.
    """

    def __init__(
        self,
        ledger: AdherenceLedger,
        interval_seconds: Optional[float] = None,
    ):
        """Initialize date watcher.

        Args:
            ledger: Ledger whose date window is kept current
            interval_seconds: Check interval (default: DATE_CHECK_INTERVAL_SECONDS)
        """
        self.ledger = ledger
        self.interval_seconds = (
            interval_seconds
            if interval_seconds is not None
            else settings.date_check_interval_seconds
        )

        self._running = False
        self._task: Optional[asyncio.Task] = None

        logger.info("LocalDateWatcher initialized")

    @property
    def running(self) -> bool:
        return self._running

    async def start(self):
        """Start the watcher loop."""
        if self._running:
            logger.warning("Date watcher already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._watch_loop())
        logger.info("Date watcher started")

    async def stop(self):
        """Stop the watcher gracefully."""
        if not self._running:
            logger.warning("Date watcher not running")
            return

        self._running = False

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        logger.info("Date watcher stopped")

    async def _watch_loop(self):
        """Main loop that runs every interval_seconds."""
        logger.info(f"Date watcher loop started (interval: {self.interval_seconds}s)")

        while self._running:
            await asyncio.sleep(self.interval_seconds)
            try:
                await self.ledger.refresh_date()
            except Exception as e:
                logger.error(f"Error checking local date: {e}")
