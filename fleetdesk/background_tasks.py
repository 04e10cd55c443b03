"""
Background task manager for periodic jobs
Runs the reservation expiration sweep for as long as the service is up
"""
import asyncio
import logging
from typing import Optional

from .exceptions import SweepError
from .models import SweepTrigger
from .sweeper import ExpirationSweeper
from .utils import format_duration

logger = logging.getLogger(__name__)


class BackgroundTaskManager:
    """
    Owns the periodic expiration sweep

    start() runs a sweep immediately and then every ``interval_seconds``.
    stop() ends the wait between sweeps; a sweep already in flight is allowed
    to finish, up to ``timeout`` seconds, before it is cancelled.
    """

    def __init__(self, sweeper: ExpirationSweeper, interval_seconds: int = 60):
        self.sweeper = sweeper
        self.interval_seconds = interval_seconds
        self.running = False
        self.cycles = 0
        self._reservation_expiry_task: Optional[asyncio.Task] = None
        self._wake: Optional[asyncio.Event] = None

    async def start(self):
        """Start background task manager"""
        if self.running:
            return

        self.running = True
        self._wake = asyncio.Event()
        self._reservation_expiry_task = asyncio.create_task(self._reservation_expiry_loop())
        logger.info(f"Started reservation expiry task (every {self.interval_seconds}s)")

    async def stop(self, timeout: float = 30.0):
        """Stop background task manager"""
        if not self.running:
            return

        logger.info("Stopping background task manager...")
        self.running = False
        self._wake.set()

        if self._reservation_expiry_task:
            try:
                await asyncio.wait_for(self._reservation_expiry_task, timeout)
            except asyncio.TimeoutError:
                logger.warning(f"Expiration sweep still running after {timeout}s, cancelled")
            self._reservation_expiry_task = None

        logger.info("Background task manager stopped")

    async def _reservation_expiry_loop(self):
        """
        Sweep once on start, then once per interval
        A failed cycle is logged and retried from scratch on the next tick
        """
        while self.running:
            try:
                result = await self.sweeper.sweep(trigger=SweepTrigger.INTERVAL)
                self.cycles += 1

                if result.cancelled:
                    logger.info(
                        f"Expired {result.cancelled} reservation(s): "
                        f"{', '.join(item.id for item in result.expired[:5])}"
                        f"{' ...' if result.cancelled > 5 else ''}"
                        f" in {format_duration(result.duration_seconds)}"
                    )

            except SweepError as e:
                self.cycles += 1
                logger.warning(f"Expiration sweep aborted, retrying next cycle: {e.message}")
            except Exception as e:
                self.cycles += 1
                logger.error(f"Reservation expiry loop error: {e}", exc_info=True)

            try:
                await asyncio.wait_for(self._wake.wait(), self.interval_seconds)
            except asyncio.TimeoutError:
                pass
