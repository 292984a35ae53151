"""
Recompute Scheduler

Fires the best-seller recompute once a day at a fixed UTC hour from an
asyncio task owned by the API process. The Prefect flow in
workflows/best_sellers.py is the orchestrated alternative.
"""

import asyncio
import contextlib
from datetime import datetime, timedelta
from typing import Callable, Optional

import structlog

from bestsellers.ranking.exceptions import BestSellersError, RecomputeInProgress
from bestsellers.ranking.recompute import RecomputeService
from bestsellers.ranking.schemas import RecomputeResult
from bestsellers.ranking.windows import utcnow

logger = structlog.get_logger(__name__)


class RecomputeScheduler:
    """
    Daily trigger for a RecomputeService.

    Example:
        scheduler = RecomputeScheduler(recompute, hour_utc=0)
        scheduler.start()
        ...
        await scheduler.stop()
    """

    def __init__(
        self,
        recompute: RecomputeService,
        hour_utc: int = 0,
        timeout: Optional[float] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.recompute = recompute
        self.hour_utc = hour_utc
        self.timeout = timeout
        self._clock = clock
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def seconds_until_next_run(self, now: Optional[datetime] = None) -> float:
        """Seconds from now to the next occurrence of hour_utc:00"""
        now = now or self._clock()
        next_run = now.replace(hour=self.hour_utc, minute=0, second=0, microsecond=0)
        if next_run <= now:
            next_run += timedelta(days=1)
        return (next_run - now).total_seconds()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name="best-seller-recompute")
        logger.info("Recompute scheduler started", hour_utc=self.hour_utc)

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return

        if task.done():
            if not task.cancelled() and task.exception() is not None:
                logger.error(
                    "Recompute scheduler had already exited",
                    error=str(task.exception()),
                    error_type=type(task.exception()).__name__,
                )
        else:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        logger.info("Recompute scheduler stopped")

    async def trigger(self) -> Optional[RecomputeResult]:
        """
        Run one recompute, logging instead of raising.

        Returns:
            The run result, or None if the run was rejected or failed
        """
        try:
            return await self.recompute.run(timeout=self.timeout)
        except RecomputeInProgress:
            logger.warning("Scheduled recompute skipped, a run is already in progress")
        except BestSellersError as e:
            logger.error(
                "Scheduled recompute failed",
                error=str(e),
                error_type=type(e).__name__,
            )
        return None

    async def _loop(self) -> None:
        while True:
            delay = self.seconds_until_next_run()
            logger.info("Next recompute scheduled", in_seconds=round(delay))
            await asyncio.sleep(delay)
            try:
                await self.trigger()
            except Exception:
                # keep the daily cadence; the next tick retries
                logger.exception("Scheduled recompute crashed")
