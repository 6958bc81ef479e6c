"""Value types for the dice table: snapshots, results, commands and outputs."""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union


class TableState(Enum):
    """Roll state of a table."""

    IDLE = "idle"
    ROLLING = "rolling"


@dataclass(frozen=True)
class DieState:
    """Pose of a single die at one tick."""

    position: tuple[float, float, float]
    quaternion: tuple[float, float, float, float]  # x, y, z, w

    def to_dict(self) -> dict:
        x, y, z = self.position
        qx, qy, qz, qw = self.quaternion
        return {
            "position": {"x": x, "y": y, "z": z},
            "quaternion": {"x": qx, "y": qy, "z": qz, "w": qw},
        }


@dataclass(frozen=True)
class DiceSnapshot:
    """Poses of every die, copied out of the world once per tick."""

    tick: int
    time: float  # simulated seconds
    dice: tuple[DieState, ...]

    def to_list(self) -> list[dict]:
        return [die.to_dict() for die in self.dice]


@dataclass(frozen=True)
class RollResult:
    """Final outcome of one roll."""

    individual: tuple[int, ...]
    total: int
    forced: bool = False  # True when the watchdog ended the roll
    ticks: int = 0
    duration: float = 0.0  # simulated seconds

    @classmethod
    def from_values(cls, values, forced: bool = False, ticks: int = 0, duration: float = 0.0) -> "RollResult":
        ordered = tuple(sorted(values))
        return cls(individual=ordered, total=sum(ordered), forced=forced, ticks=ticks, duration=duration)

    def to_dict(self) -> dict:
        return {"individual": list(self.individual), "total": self.total}

    def __str__(self) -> str:
        suffix = " (forced)" if self.forced else ""
        return f"[{', '.join(str(v) for v in self.individual)}] = {self.total}{suffix}"


@dataclass
class RollSession:
    """A roll in progress."""

    started_at: float = field(default_factory=time.time)
    start_time: float = 0.0  # simulated seconds at throw
    ticks: int = 0
    rolling: bool = True


# Commands

@dataclass(frozen=True)
class ThrowRequested:
    """A client asked for a new roll."""

    requested_by: Optional[str] = None


@dataclass(frozen=True)
class TickElapsed:
    """One tick of the loop. ``real_dt`` is measured wall-clock time, if any."""

    real_dt: Optional[float] = None


Command = Union[ThrowRequested, TickElapsed]


# Outputs

@dataclass(frozen=True)
class ThrowAccepted:
    """The table moved from idle to rolling."""

    requested_by: Optional[str] = None


@dataclass(frozen=True)
class SnapshotReady:
    snapshot: DiceSnapshot


@dataclass(frozen=True)
class RollSettled:
    result: RollResult


Output = Union[ThrowAccepted, SnapshotReady, RollSettled]
