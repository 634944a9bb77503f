"""Fixed-interval ticker with graceful stop."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)


class PeriodicTask:
    """Runs ``fn`` every ``interval`` seconds until stopped.

    A tick that raises is logged and the loop carries on; ``stop`` waits for
    the tick in progress to finish.
    """

    def __init__(
        self,
        name: str,
        interval: float,
        fn: Callable[[], Awaitable[Any]],
        *,
        run_immediately: bool = True,
    ) -> None:
        self.name = name
        self._interval = interval
        self._fn = fn
        self._run_immediately = run_immediately
        self._stopping = asyncio.Event()
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._stopping.clear()
        self._task = asyncio.create_task(self.run(), name=f"periodic-{self.name}")
        logger.info("Periodic task %s started (every %.1fs)", self.name, self._interval)

    async def stop(self) -> None:
        self._stopping.set()
        if self._task is not None:
            await self._task
            self._task = None
        logger.info("Periodic task %s stopped", self.name)

    async def run(self) -> None:
        if not self._run_immediately and await self._wait():
            return
        while not self._stopping.is_set():
            try:
                await self._fn()
            except Exception:
                logger.exception("Periodic task %s failed", self.name)
            if await self._wait():
                return

    async def _wait(self) -> bool:
        """Sleep one interval; True when stop was requested meanwhile."""
        try:
            await asyncio.wait_for(self._stopping.wait(), timeout=self._interval)
        except asyncio.TimeoutError:
            return False
        return True
