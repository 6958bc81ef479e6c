"""Table runtime: serializes controller access and drives the tick loop."""

import asyncio
import logging
import random
from typing import Awaitable, Callable, Optional

from ..config import AppConfig
from ..timing import timed_async, timed_sync
from .controller import RollController
from .models import (
    DiceSnapshot,
    Output,
    RollResult,
    TableState,
    ThrowAccepted,
    ThrowRequested,
    TickElapsed,
)
from .table import build_table
from .tick_loop import TickLoop

logger = logging.getLogger(__name__)

Publisher = Callable[[Output], Awaitable[None]]


async def _discard(output: Output) -> None:
    return None


class DiceTable:
    """One shared table.

    Every throw-reset and every tick runs under one lock, and the lock is
    released before outputs are published, so a slow observer never holds
    up the simulation.
    """

    def __init__(self, controller: RollController, tick_rate: float, publisher: Optional[Publisher] = None):
        self.controller = controller
        self.publisher: Publisher = publisher or _discard
        self._lock = asyncio.Lock()
        self._loop = TickLoop(1.0 / tick_rate, self._tick, name=controller.table_id)

    @property
    def table_id(self) -> str:
        return self.controller.table_id

    @property
    def state(self) -> TableState:
        return self.controller.state

    @property
    def rolling(self) -> bool:
        return self.controller.rolling

    @property
    def loop_running(self) -> bool:
        return self._loop.running

    @property
    def last_result(self) -> Optional[RollResult]:
        return self.controller.last_result

    def snapshot(self) -> DiceSnapshot:
        return self.controller.snapshot()

    def describe(self) -> dict:
        return self.controller.table.describe()

    async def throw(self, requested_by: Optional[str] = None) -> bool:
        """Request a roll. Returns True if a new roll started."""
        async with self._lock:
            outputs = self.controller.handle(ThrowRequested(requested_by))
        accepted = any(isinstance(output, ThrowAccepted) for output in outputs)
        if accepted:
            self._loop.start()
        await self._publish(outputs)
        return accepted

    async def wait_until_idle(self) -> None:
        """Wait for the tick loop to stop on its own."""
        await self._loop.wait()

    async def shutdown(self) -> None:
        """Stop scheduling ticks. Any roll in flight is abandoned."""
        await self._loop.stop()

    async def _tick(self, real_dt: float) -> bool:
        async with self._lock:
            try:
                with timed_sync("tick"):
                    outputs = self.controller.handle(TickElapsed(real_dt))
            except Exception:
                # Back to idle so the next throw starts a fresh roll
                logger.exception(f"[{self.table_id}] Tick failed")
                self.controller.abandon_roll()
                return False
        await self._publish(outputs)
        # A throw may have landed while we were publishing
        return self.controller.rolling

    async def _publish(self, outputs: list[Output]) -> None:
        for output in outputs:
            try:
                async with timed_async("broadcast"):
                    await self.publisher(output)
            except Exception as e:
                logger.error(f"[{self.table_id}] Failed to publish {type(output).__name__}: {e}")


def create_dice_table(
    config: AppConfig,
    publisher: Optional[Publisher] = None,
    rng: Optional[random.Random] = None,
) -> DiceTable:
    """Build world, controller and runtime from configuration."""
    table = build_table(config.table, config.physics)
    controller = RollController(
        table,
        config.roll,
        config.physics,
        rng=rng,
        table_id=config.server.table_id,
    )
    return DiceTable(controller, config.roll.tick_rate, publisher)
