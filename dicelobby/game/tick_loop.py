"""Fixed-rate driver for the simulation."""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)

# Called with the measured wall-clock delta; returns False to stop the loop.
TickFn = Callable[[float], Awaitable[bool]]


class TickLoop:
    """Runs ``tick_fn`` every ``interval`` seconds until it asks to stop.

    Ticks are scheduled against deadlines rather than by sleeping a fixed
    amount after each tick, so time spent inside a tick does not stretch the
    period. If the loop falls more than one interval behind it re-anchors
    instead of bursting to catch up.
    """

    def __init__(self, interval: float, tick_fn: TickFn, name: str = "tick-loop"):
        if interval < 0:
            raise ValueError(f"Tick interval must not be negative, got {interval}")
        self.interval = interval
        self.name = name
        self._tick_fn = tick_fn
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> bool:
        """Start the loop. Returns False if it was already running."""
        if self.running:
            return False
        self._task = asyncio.create_task(self._run(), name=self.name)
        logger.info(f"[{self.name}] Animation loop started")
        return True

    async def stop(self) -> None:
        """Cancel the loop and wait for it to finish."""
        task = self._task
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info(f"[{self.name}] Animation loop cancelled")

    async def wait(self) -> None:
        """Wait until the loop stops on its own."""
        if self._task is not None:
            await asyncio.shield(self._task)

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        last = loop.time()
        deadline = last + self.interval
        try:
            while True:
                delay = deadline - loop.time()
                if delay > 0:
                    await asyncio.sleep(delay)
                else:
                    # Let other tasks (sends, throw requests) run between ticks
                    await asyncio.sleep(0)

                now = loop.time()
                real_dt = now - last
                last = now

                try:
                    keep_going = await self._tick_fn(real_dt)
                except Exception:
                    logger.exception(f"[{self.name}] Tick failed, stopping loop")
                    return

                if not keep_going:
                    logger.info(f"[{self.name}] Animation loop stopped")
                    return

                deadline += self.interval
                behind = loop.time() - deadline
                if behind > self.interval:
                    logger.debug(f"[{self.name}] Loop {behind * 1000:.1f}ms behind, re-anchoring")
                    deadline = loop.time()
        finally:
            self._task = None
