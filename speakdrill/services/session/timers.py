"""Cancellable timers used by the session controller."""

import asyncio
import inspect
import logging
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


class ScheduledTask:
    """
    Run a callback once after a fixed delay unless cancelled first.

    Example:
        task = ScheduledTask(2.0, on_elapsed, name="post-prompt delay")
        task.start()
        await task.cancel()  # callback never runs
    """

    def __init__(self, delay_seconds: float, callback: Callable[[], Any], name: str = "timer"):
        self.delay_seconds = delay_seconds
        self._callback = callback
        self.name = name
        self._task: Optional[asyncio.Task] = None
        self.fired = False

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._run())

    async def _run(self) -> None:
        try:
            await asyncio.sleep(self.delay_seconds)
        except asyncio.CancelledError:
            logger.debug(f"{self.name} cancelled")
            raise
        self.fired = True
        result = self._callback()
        if inspect.isawaitable(result):
            await result

    @property
    def pending(self) -> bool:
        """True while the delay is still running."""
        return self._task is not None and not self._task.done() and not self.fired

    @property
    def done(self) -> bool:
        return self._task is not None and self._task.done()

    async def cancel(self) -> bool:
        """
        Cancel the timer and wait until it has stopped.

        Returns:
            True if the callback was prevented from running
        """
        if self._task is None or self._task.done():
            return False
        prevented = not self.fired
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        return prevented

    async def wait(self) -> None:
        if self._task is not None:
            await self._task


class Countdown:
    """
    Deadline with periodic tick notifications.

    ``remaining`` is derived from the deadline on every read, so listeners
    that poll between ticks see an accurate value. The countdown finishes
    when the deadline passes or ``stop()`` is called.
    """

    def __init__(
        self,
        duration_seconds: float,
        tick_seconds: float = 1.0,
        on_tick: Optional[Callable[[float], None]] = None,
    ):
        self.duration_seconds = duration_seconds
        self.tick_seconds = tick_seconds
        self._on_tick = on_tick
        self._deadline: Optional[float] = None
        self._stopped_at: Optional[float] = None
        self._task: Optional[asyncio.Task] = None
        self._finished = asyncio.Event()
        self.stopped_early = False

    def start(self) -> None:
        loop = asyncio.get_running_loop()
        self._deadline = loop.time() + self.duration_seconds
        self._task = asyncio.create_task(self._run())
        logger.info(f"Countdown started: {self.duration_seconds:.2f}s")

    @property
    def deadline(self) -> Optional[float]:
        """Loop time at which the countdown reaches zero."""
        return self._deadline

    @property
    def remaining(self) -> float:
        """Seconds until the deadline (0 once finished)."""
        if self._deadline is None:
            return self.duration_seconds
        if self._finished.is_set():
            return 0.0
        now = asyncio.get_running_loop().time()
        return max(0.0, self._deadline - now)

    @property
    def finished(self) -> bool:
        return self._finished.is_set()

    async def _run(self) -> None:
        while True:
            remaining = self.remaining
            if self._on_tick is not None:
                self._on_tick(remaining)
            if remaining <= 0:
                break
            await asyncio.sleep(min(self.tick_seconds, remaining))
        self._finished.set()

    def stop(self) -> None:
        """Finish early."""
        if self._finished.is_set():
            return
        self.stopped_early = self.remaining > 0
        if self._task is not None:
            self._task.cancel()
        self._finished.set()

    async def cancel(self) -> None:
        """Stop ticking and wait for the ticker to exit."""
        if self._task is None:
            return
        if not self._task.done():
            self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass

    async def wait(self) -> None:
        """Wait until the deadline passes or the countdown is stopped."""
        await self._finished.wait()
