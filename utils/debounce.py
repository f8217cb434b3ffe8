"""
Debounced task scheduling for asyncio

A DebouncedTask waits for a quiet period before running work. Scheduling
again before the timer fires supersedes the pending run. Work that already
started is never cancelled; instead every run receives a generation number
and callers check is_current(generation) before writing results.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Set

logger = logging.getLogger(__name__)

DebouncedWork = Callable[[int], Awaitable[None]]


class DebouncedTask:
    """Schedule / supersede-on-reschedule / cancel-on-teardown"""

    def __init__(self, delay_seconds: float, name: str = "debounced"):
        self.delay_seconds = max(0.0, float(delay_seconds))
        self.name = name
        self._generation = 0
        self._timer: Optional[asyncio.TimerHandle] = None
        self._inflight: Set[asyncio.Task] = set()
        self._idle: Optional[asyncio.Event] = None
        self._closed = False

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def pending(self) -> bool:
        """True while a timer is waiting to fire"""
        return self._timer is not None

    def is_current(self, generation: int) -> bool:
        return not self._closed and generation == self._generation

    def schedule(self, work: DebouncedWork) -> int:
        """
        Start a new debounce window for work

        Args:
            work: Coroutine function receiving the generation it was scheduled under

        Returns:
            The generation assigned to this run
        """
        if self._closed:
            raise RuntimeError(f"DebouncedTask '{self.name}' is closed")

        loop = asyncio.get_running_loop()
        self._cancel_timer()
        self._generation += 1
        generation = self._generation
        self._timer = loop.call_later(self.delay_seconds, self._fire, work, generation)
        self._mark_busy()
        logger.debug(f"⏳ {self.name}: scheduled generation {generation} in {self.delay_seconds:.3f}s")
        return generation

    def supersede(self) -> int:
        """Invalidate the pending timer and any in-flight run without scheduling new work"""
        self._cancel_timer()
        self._generation += 1
        self._update_idle()
        return self._generation

    def cancel(self) -> None:
        """Teardown: drop the pending timer and invalidate in-flight runs"""
        self.supersede()
        self._closed = True
        logger.debug(f"🛑 {self.name}: cancelled at generation {self._generation}")

    async def wait_idle(self) -> None:
        """Wait until no timer is pending and no run is in flight"""
        while self._timer is not None or self._inflight:
            if self._idle is None:
                self._idle = asyncio.Event()
            await self._idle.wait()

    def _fire(self, work: DebouncedWork, generation: int) -> None:
        self._timer = None
        if not self.is_current(generation):
            self._update_idle()
            return
        task = asyncio.ensure_future(work(generation))
        self._inflight.add(task)
        task.add_done_callback(self._on_done)

    def _on_done(self, task: asyncio.Task) -> None:
        self._inflight.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"❌ {self.name}: debounced run failed: {task.exception()!r}")
        self._update_idle()

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _mark_busy(self) -> None:
        if self._idle is not None:
            self._idle.clear()

    def _update_idle(self) -> None:
        if self._timer is None and not self._inflight:
            if self._idle is None:
                self._idle = asyncio.Event()
            self._idle.set()
