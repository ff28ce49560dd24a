"""
Polling Scheduler - One timer per shot context, running while jobs are pending
"""

import asyncio
from typing import Any, Awaitable, Callable, Optional

from shotdesk.config.settings import settings
from shotdesk.services.observability import logger


class PollHandle:
    """Returned by :meth:`PollingScheduler.start`; the owning context calls ``cancel()`` on teardown"""

    def __init__(self, scheduler: "PollingScheduler"):
        self._scheduler = scheduler

    @property
    def active(self) -> bool:
        return self._scheduler.running

    def cancel(self) -> None:
        self._scheduler.stop()


class PollingScheduler:
    """
    Fixed-interval poller for one shot context

    Every interval a tick is started unless the previous one is still running.
    After each tick the scheduler stops itself once ``has_pending()`` is false.
    Tick errors are logged and polling continues.
    """

    def __init__(
        self,
        tick: Callable[[], Awaitable[Any]],
        has_pending: Callable[[], bool],
        interval_s: Optional[float] = None,
    ):
        """
        Initialize polling scheduler

        Args:
            tick: Coroutine function run each interval (usually ``JobTracker.refresh``)
            has_pending: Whether anything is still outstanding
            interval_s: Tick interval (defaults to settings.poll_interval_s)
        """
        self._tick = tick
        self._has_pending = has_pending
        self.interval_s = interval_s or settings.poll_interval_s

        self.shot_id: Optional[str] = None
        self.tick_count = 0
        self.skipped_ticks = 0
        self._timer: Optional[asyncio.Task] = None
        self._current_tick: Optional[asyncio.Task] = None
        self._handle = PollHandle(self)

    @property
    def running(self) -> bool:
        return self._timer is not None and not self._timer.done()

    def start(self, shot_id: Optional[str] = None) -> PollHandle:
        """
        Start polling; a no-op while already running

        Args:
            shot_id: Shot context, for logging

        Returns:
            Handle whose ``cancel()`` stops the timer
        """
        if self.running:
            return self._handle

        self.shot_id = shot_id or self.shot_id
        self._timer = asyncio.get_running_loop().create_task(self._run())
        logger.info("polling_started", shot_id=self.shot_id, interval_s=self.interval_s)
        return self._handle

    def stop(self) -> None:
        """
        Stop the timer; safe to call any number of times

        An in-flight tick is left to finish; its result is discarded by the
        tracker's liveness check if the context is gone.
        """
        timer, self._timer = self._timer, None
        if timer is None or timer.done():
            return
        timer.cancel()
        logger.info("polling_stopped", shot_id=self.shot_id, ticks=self.tick_count)

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_s)
            if self._current_tick is not None and not self._current_tick.done():
                self.skipped_ticks += 1
                logger.debug("poll_tick_skipped", shot_id=self.shot_id)
                continue
            self._current_tick = asyncio.get_running_loop().create_task(self._run_tick())

    async def _run_tick(self) -> None:
        self.tick_count += 1
        try:
            await self._tick()
        except Exception as e:
            logger.error("poll_tick_failed", shot_id=self.shot_id, error=str(e))

        if self.running and not self._has_pending():
            self.stop()
