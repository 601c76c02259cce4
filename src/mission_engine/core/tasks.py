from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class PeriodicTask:
    """Runs ``func`` every ``interval_seconds`` until ``stop`` is awaited.

    ``func`` may be sync or async. Exceptions are logged and the loop keeps
    going; a slow iteration delays the next one rather than overlapping it.
    """

    def __init__(
        self,
        name: str,
        interval_seconds: float,
        func: Callable[[], Awaitable[object] | object],
        run_immediately: bool = True,
    ):
        self.name = name
        self.interval_seconds = interval_seconds
        self._func = func
        self._run_immediately = run_immediately
        self._stop = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> asyncio.Task:
        if self.running:
            assert self._task is not None
            return self._task
        self._stop = asyncio.Event()
        self._task = asyncio.create_task(self._run(), name=self.name)
        return self._task

    async def stop(self) -> None:
        self._stop.set()
        task = self._task
        if task is None:
            return
        if not task.done():
            task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def _run(self) -> None:
        if not self._run_immediately and await self._wait():
            return
        while not self._stop.is_set():
            try:
                maybe = self._func()
                if asyncio.iscoroutine(maybe):
                    await maybe
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Periodic task %s failed", self.name)
            if await self._wait():
                return

    async def _wait(self) -> bool:
        try:
            await asyncio.wait_for(self._stop.wait(), timeout=self.interval_seconds)
        except asyncio.TimeoutError:
            return False
        return True
