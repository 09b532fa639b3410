"""Trailing-edge debounce on top of the asyncio event loop."""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Callable, Optional, Set

logger = logging.getLogger(__name__)


class Debouncer:
    """Collapse bursts of calls into one callback ``wait_seconds`` after the last.

    Calling the instance is synchronous and must happen on a running loop.
    Each call cancels the pending timer and arms a new one. Once the timer
    fires the callback runs as its own task; later calls never cancel it.
    """

    def __init__(self, callback: Callable[[], Any], wait_seconds: float = 1.0) -> None:
        self.callback = callback
        self.wait_seconds = wait_seconds
        self._timer: Optional[asyncio.TimerHandle] = None
        self._running: Set[asyncio.Task] = set()

    def __call__(self) -> None:
        loop = asyncio.get_running_loop()
        if self._timer is not None:
            self._timer.cancel()
        self._timer = loop.call_later(self.wait_seconds, self._fire, loop)

    @property
    def pending(self) -> bool:
        return self._timer is not None

    def _fire(self, loop: asyncio.AbstractEventLoop) -> None:
        self._timer = None
        task = loop.create_task(self._invoke())
        self._running.add(task)
        task.add_done_callback(self._running.discard)

    async def _invoke(self) -> None:
        try:
            result = self.callback()
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("Debounced callback %r failed", self.callback)

    def cancel(self) -> None:
        """Drop the armed timer (shutdown only); running callbacks continue."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    async def drain(self) -> None:
        """Wait for callbacks that already fired."""
        while self._running:
            await asyncio.gather(*list(self._running), return_exceptions=True)


__all__ = ["Debouncer"]
