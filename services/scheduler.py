"""Periodic task scheduling on the running event loop."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional, Protocol

from core.logging_setup import get_logger


PeriodicCallback = Callable[[], Awaitable[None]]


class ScheduledTask(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def call_every(self, interval_sec: float, callback: PeriodicCallback) -> ScheduledTask: ...


class _LoopTask:
    def __init__(self, task: asyncio.Task):
        self._task: Optional[asyncio.Task] = task

    def cancel(self) -> None:
        if self._task is not None:
            self._task.cancel()
        self._task = None

    @property
    def active(self) -> bool:
        return self._task is not None and not self._task.done()


class AsyncioScheduler:
    """Runs ``callback`` every ``interval_sec`` until cancelled.

    The first run happens one interval after scheduling. A failing callback
    is logged and does not stop the loop.
    """

    def __init__(self, sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        self._sleep = sleep
        self.logger = get_logger("scheduler")

    def call_every(self, interval_sec: float, callback: PeriodicCallback) -> _LoopTask:
        async def _loop():
            while True:
                await self._sleep(interval_sec)
                try:
                    await callback()
                except asyncio.CancelledError:
                    raise
                except Exception as exc:
                    self.logger.error("Periodic task failed: %s", exc)

        return _LoopTask(asyncio.ensure_future(_loop()))


__all__ = ["AsyncioScheduler", "PeriodicCallback", "ScheduledTask", "Scheduler"]
