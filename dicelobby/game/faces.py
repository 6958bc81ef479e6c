"""Reading a face value off a die's orientation.

Opposite faces sum to 7. The order below is also the tie-break order:
when two faces point up equally, the one listed first wins.
"""

from typing import Iterable, Sequence

import numpy as np

from ..physics import vecmath
from .models import RollResult

FACE_VECTORS: tuple[tuple[tuple[float, float, float], int], ...] = (
    ((0.0, 1.0, 0.0), 1),
    ((0.0, -1.0, 0.0), 6),
    ((1.0, 0.0, 0.0), 3),
    ((-1.0, 0.0, 0.0), 4),
    ((0.0, 0.0, 1.0), 2),
    ((0.0, 0.0, -1.0), 5),
)


def face_value(quaternion: Sequence[float]) -> int:
    """Return the value (1-6) of the face pointing most directly up.

    Args:
        quaternion: Orientation as (x, y, z, w). Normalized before use.

    Returns:
        Face value in 1..6
    """
    q = vecmath.normalize(np.asarray(quaternion, dtype=float))
    best_dot = -np.inf
    best_value = 0
    for direction, value in FACE_VECTORS:
        dot = float(np.dot(vecmath.rotate(q, np.array(direction)), vecmath.UP))
        if dot > best_dot:
            best_dot = dot
            best_value = value
    return best_value


def resolve_roll(
    quaternions: Iterable[Sequence[float]],
    forced: bool = False,
    ticks: int = 0,
    duration: float = 0.0,
) -> RollResult:
    """Resolve every die and build the sorted result."""
    values = [face_value(q) for q in quaternions]
    return RollResult.from_values(values, forced=forced, ticks=ticks, duration=duration)
