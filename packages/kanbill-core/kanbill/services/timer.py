"""
Periodic timer driver.

Every interval, running task timers gain one interval of elapsed time.
The ticker only runs while a session is active.
"""

import asyncio
import logging
from typing import Optional

logger = logging.getLogger(__name__)


class TimerTicker:
    """
    Drives ``controller.tick`` on a fixed interval.

    To stop the ticker, call ``stop()`` (cancels the loop task).
    """

    def __init__(self, controller, interval: Optional[float] = None):
        self.controller = controller
        self.interval = float(interval if interval is not None else controller.config.tick_interval)
        if self.interval <= 0:
            raise ValueError("interval must be positive")
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start ticking. Calling it again while running does nothing."""
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())
        logger.debug(f"Timer ticker started ({self.interval}s)")

    async def stop(self) -> None:
        if self._task is None:
            return
        task, self._task = self._task, None
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.debug("Timer ticker stopped")

    async def _run(self) -> None:
        elapsed_ms = int(self.interval * 1000)
        while True:
            await asyncio.sleep(self.interval)
            try:
                self.controller.tick(elapsed_ms)
            except Exception:
                logger.exception("Timer tick failed")
