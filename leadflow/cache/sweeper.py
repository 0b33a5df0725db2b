from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)


class PeriodicTask:
    """Runs ``action`` every ``interval`` seconds until ``stop()`` is awaited.

    The first run happens one interval after ``start()``. Errors from a run are
    logged and the ticker keeps going.
    """

    def __init__(
        self,
        name: str,
        action: Callable[[], Any | Awaitable[Any]],
        interval: float,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.name = name
        self.action = action
        self.interval = interval
        self._sleep = sleep
        self._task: asyncio.Task[None] | None = None
        self.runs = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name=f"periodic:{self.name}")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def _loop(self) -> None:
        while True:
            await self._sleep(self.interval)
            await self.run_once()

    async def run_once(self) -> None:
        try:
            result = self.action()
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("periodic task %s failed", self.name)
        self.runs += 1
