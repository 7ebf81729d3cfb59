from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from ..utils.time import format_ts, utcnow

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class PollLoop:
    """Re-runs one job every ``interval`` seconds until stopped.

    The first run happens one full interval after :meth:`start`; the caller is
    expected to have performed the initial load itself.
    """

    def __init__(self, interval: float, name: str = "poll", sleep: Optional[Sleep] = None) -> None:
        self.interval = interval
        self.name = name
        self._sleep = sleep or asyncio.sleep
        self._task: Optional[asyncio.Task] = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def start(self, job: Callable[[], Awaitable[object]]) -> asyncio.Task:
        if self._task is not None and not self._task.done():
            return self._task
        self._running = True
        self._task = asyncio.ensure_future(self._worker(job))
        return self._task

    async def stop(self) -> None:
        self._running = False
        task, self._task = self._task, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _worker(self, job: Callable[[], Awaitable[object]]) -> None:
        while self._running:
            await self._sleep(self.interval)
            if not self._running:
                break
            started = utcnow()
            try:
                result = await job()
            except asyncio.CancelledError:
                raise
            except Exception as exc:  # pylint: disable=broad-except
                logger.error("poll-error", extra={"loop": self.name, "error": str(exc)})
                continue
            elapsed = (utcnow() - started).total_seconds()
            logger.debug(
                "poll-cycle",
                extra={
                    "loop": self.name,
                    "started_at": format_ts(started),
                    "elapsed": elapsed,
                    "interval": self.interval,
                    "result": str(result),
                },
            )


__all__ = ["PollLoop", "Sleep"]
