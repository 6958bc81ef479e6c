"""Deciding when a roll has come to rest."""

import math
from typing import Iterable, Sequence

DEFAULT_THRESHOLD = 0.05


def _magnitude(v: Sequence[float]) -> float:
    return math.sqrt(sum(c * c for c in v))


def is_at_rest(
    velocity: Sequence[float],
    angular_velocity: Sequence[float],
    threshold: float = DEFAULT_THRESHOLD,
) -> bool:
    """A die is at rest when neither speed exceeds the threshold. Ties count as rest."""
    return _magnitude(velocity) <= threshold and _magnitude(angular_velocity) <= threshold


def is_settled(
    velocities: Iterable[tuple[Sequence[float], Sequence[float]]],
    threshold: float = DEFAULT_THRESHOLD,
) -> bool:
    """True when every die is at rest in this observation.

    Args:
        velocities: (linear, angular) velocity pairs, one per die
        threshold: Speed at or below which a die counts as still
    """
    return all(is_at_rest(v, w, threshold) for v, w in velocities)
