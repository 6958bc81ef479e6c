"""Roll controller: the single writer of dice state.

The controller is a plain state machine. It receives commands
(``ThrowRequested``, ``TickElapsed``) and returns outputs (``ThrowAccepted``,
``SnapshotReady``, ``RollSettled``). It does no I/O and owns no timers;
scheduling and delivery belong to the table runtime.
"""

import logging
import random
from typing import Optional

from ..config import PhysicsConfig, RollConfig
from .faces import resolve_roll
from .models import (
    Command,
    DiceSnapshot,
    DieState,
    Output,
    RollResult,
    RollSession,
    RollSettled,
    SnapshotReady,
    TableState,
    ThrowAccepted,
    ThrowRequested,
    TickElapsed,
)
from .settle import is_settled
from .table import Table

logger = logging.getLogger(__name__)


class RollController:
    """Owns the table and the at-most-one roll in flight."""

    def __init__(
        self,
        table: Table,
        roll_config: RollConfig,
        physics_config: PhysicsConfig,
        rng: Optional[random.Random] = None,
        table_id: str = "lobby",
    ):
        self.table = table
        self.roll_config = roll_config
        self.physics_config = physics_config
        self.rng = rng or random.Random(roll_config.seed)
        self.table_id = table_id
        self.session: Optional[RollSession] = None
        self.last_result: Optional[RollResult] = None
        self.tick_count: int = 0

    @property
    def state(self) -> TableState:
        if self.session is not None and self.session.rolling:
            return TableState.ROLLING
        return TableState.IDLE

    @property
    def rolling(self) -> bool:
        return self.state is TableState.ROLLING

    def handle(self, command: Command) -> list[Output]:
        """Apply one command and return what it produced."""
        if isinstance(command, ThrowRequested):
            return self.request_throw(command.requested_by)
        if isinstance(command, TickElapsed):
            return self.tick(command.real_dt)
        raise TypeError(f"Unknown command: {command!r}")

    def request_throw(self, requested_by: Optional[str] = None) -> list[Output]:
        """Start a roll unless one is already in flight.

        A throw while rolling is ignored and leaves every body untouched.
        """
        who = requested_by or "anonymous"
        if self.rolling:
            logger.info(f"[{self.table_id}] Dice already rolling, ignoring throw from {who}")
            return []

        self._reset_for_throw()
        self.session = RollSession(start_time=self.table.world.time)
        logger.info(f"[{self.table_id}] Throwing dice requested by {who}")
        return [ThrowAccepted(requested_by=requested_by)]

    def _reset_for_throw(self) -> None:
        cfg = self.roll_config
        count = len(self.table.dice)
        size = self.table.dice_size
        half = self.table.half_extent
        radius = self.table.field_radius
        rng = self.rng

        for i, body in enumerate(self.table.dice):
            position = (
                (i - (count - 1) / 2) * size * 1.5,
                half + 0.5 + rng.random(),
                (rng.random() - 0.5) * radius * 0.5,
            )
            body.set_pose(position, self._random_quaternion())

            body.set_velocity((0.0, 0.0, 0.0), (0.0, 0.0, 0.0))
            linear = (
                (rng.random() - 0.5) * 2 * cfg.throw_jitter_x,
                rng.uniform(*cfg.throw_velocity_y),
                rng.uniform(*cfg.throw_velocity_z),
            )
            angular = tuple(rng.uniform(*cfg.spin) for _ in range(3))
            body.set_velocity(linear, angular)

    def _random_quaternion(self) -> tuple[float, float, float, float]:
        while True:
            q = tuple(self.rng.random() - 0.5 for _ in range(4))
            if sum(c * c for c in q) > 1e-12:
                return q

    def tick(self, real_dt: Optional[float] = None) -> list[Output]:
        """Advance the world one tick and report what happened."""
        world = self.table.world
        wall_clock = real_dt if self.roll_config.use_wall_clock_dt else None
        world.step(self.physics_config.fixed_dt, wall_clock, self.physics_config.max_sub_steps)
        self.tick_count += 1

        outputs: list[Output] = [SnapshotReady(self.snapshot())]

        if self.rolling:
            self.session.ticks += 1
            if self._settled():
                outputs.append(RollSettled(self._finish(forced=False)))
            elif self._overdue():
                outputs.append(RollSettled(self._finish(forced=True)))

        return outputs

    def snapshot(self) -> DiceSnapshot:
        """Copy every die's pose out of the world."""
        return DiceSnapshot(
            tick=self.tick_count,
            time=self.table.world.time,
            dice=tuple(
                DieState(
                    position=tuple(float(c) for c in body.position),
                    quaternion=tuple(float(c) for c in body.quaternion),
                )
                for body in self.table.dice
            ),
        )

    def _settled(self) -> bool:
        return is_settled(
            ((body.velocity, body.angular_velocity) for body in self.table.dice),
            self.roll_config.settle_threshold,
        )

    def _overdue(self) -> bool:
        limit = self.roll_config.max_roll_seconds
        if limit is None:
            return False
        return self.table.world.time - self.session.start_time >= limit

    def _finish(self, forced: bool) -> RollResult:
        session = self.session
        duration = self.table.world.time - session.start_time
        if forced:
            logger.warning(
                f"[{self.table_id}] Roll did not settle within {self.roll_config.max_roll_seconds}s, "
                f"forcing result from current pose"
            )
            for body in self.table.dice:
                body.sleep()

        result = resolve_roll(
            (body.quaternion for body in self.table.dice),
            forced=forced,
            ticks=session.ticks,
            duration=duration,
        )
        session.rolling = False
        self.session = None
        self.last_result = result
        logger.info(f"[{self.table_id}] Dice settled, results: {result}")
        return result

    def abandon_roll(self) -> None:
        """Drop the roll in flight without a result and stop the dice where they are."""
        if self.session is None:
            return
        logger.warning(f"[{self.table_id}] Abandoning roll after {self.session.ticks} ticks")
        for body in self.table.dice:
            body.sleep()
        self.session = None
