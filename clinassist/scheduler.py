"""Single-timer debounce scheduler bound to the running event loop."""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Optional, Set

import structlog


logger = structlog.get_logger(__name__)


class DebouncedTask:
    """Run ``callback`` once input has been quiet for ``delay`` seconds.

    Each :meth:`schedule` call replaces the pending timer, so a burst of
    input produces one run.  :meth:`cancel` clears the pending timer; a run
    that already started is left to finish.
    """

    def __init__(self, callback: Callable[..., Awaitable[Any]], delay: float, *, name: str = "debounced") -> None:
        self._callback = callback
        self.delay = max(0.0, float(delay))
        self.name = name
        self._handle: Optional[asyncio.TimerHandle] = None
        self._running: Set[asyncio.Task] = set()
        self.fired = 0

    @property
    def pending(self) -> bool:
        return self._handle is not None

    @property
    def running(self) -> bool:
        return bool(self._running)

    def schedule(self, *args: Any) -> None:
        loop = asyncio.get_running_loop()
        self.cancel()
        self._handle = loop.call_later(self.delay, self._fire, args)

    def _fire(self, args: tuple) -> None:
        self._handle = None
        self.fired += 1
        task = asyncio.get_running_loop().create_task(self._run(args))
        self._running.add(task)
        task.add_done_callback(self._running.discard)

    async def _run(self, args: tuple) -> None:
        try:
            await self._callback(*args)
        except Exception:
            logger.error("debounced_task_failed", task=self.name, exc_info=True)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    async def drain(self) -> None:
        """Wait for runs that already started."""

        if self._running:
            await asyncio.gather(*list(self._running), return_exceptions=True)


__all__ = ["DebouncedTask"]
