"""Pausable per-word countdown running on the event loop."""

from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from typing import Awaitable, Callable, Optional


LOGGER = logging.getLogger(__name__)


class WordCountdown:
    """Calls ``on_expire`` once the time budget elapses without being paused or cancelled."""

    def __init__(self, budget_seconds: float, on_expire: Callable[[], Awaitable[None]]) -> None:
        if budget_seconds <= 0:
            raise ValueError("Countdown budget must be positive.")
        self._budget = budget_seconds
        self._remaining = budget_seconds
        self._on_expire = on_expire
        self._task: Optional[asyncio.Task[None]] = None
        self._started_at: Optional[float] = None
        self._paused = False
        self._done = False

    @property
    def remaining(self) -> float:
        if self._task is None or self._started_at is None:
            return self._remaining
        elapsed = asyncio.get_running_loop().time() - self._started_at
        return max(0.0, self._remaining - elapsed)

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def is_paused(self) -> bool:
        return self._paused

    @property
    def is_done(self) -> bool:
        return self._done

    def start(self) -> None:
        if self._done or self.is_running:
            return
        self._paused = False
        self._schedule()

    def pause(self) -> None:
        # A countdown that was never armed stays unarmed; the word is replayed instead.
        if self._done or self._paused or not self.is_running:
            return
        self._remaining = self.remaining
        self._paused = True
        self._stop_task()

    def resume(self) -> None:
        if self._done or not self._paused:
            return
        self._paused = False
        self._schedule()

    def cancel(self) -> None:
        self._done = True
        self._stop_task()

    async def wait(self) -> None:
        """Wait for the running countdown task, if any, to finish."""
        task = self._task
        if task is not None and task is not asyncio.current_task():
            with suppress(asyncio.CancelledError):
                await task

    def _schedule(self) -> None:
        loop = asyncio.get_running_loop()
        self._started_at = loop.time()
        self._task = loop.create_task(self._run(self._remaining))

    def _stop_task(self) -> None:
        task = self._task
        self._task = None
        self._started_at = None
        # The expiry callback may end up cancelling its own countdown.
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()

    async def _run(self, delay: float) -> None:
        await asyncio.sleep(delay)
        if self._paused or self._done:
            LOGGER.debug("Ignoring countdown expiry after pause or cancel.")
            return
        self._remaining = 0.0
        self._done = True
        await self._on_expire()
