"""Dice table mechanics: controller, tick loop, settle and face logic."""

from .controller import RollController
from .faces import FACE_VECTORS, face_value, resolve_roll
from .models import (
    DiceSnapshot,
    DieState,
    RollResult,
    RollSession,
    RollSettled,
    SnapshotReady,
    TableState,
    ThrowAccepted,
    ThrowRequested,
    TickElapsed,
)
from .runtime import DiceTable, create_dice_table
from .settle import is_at_rest, is_settled
from .table import Table, build_table
from .tick_loop import TickLoop

__all__ = [
    "RollController", "DiceTable", "create_dice_table", "TickLoop",
    "Table", "build_table",
    "FACE_VECTORS", "face_value", "resolve_roll", "is_at_rest", "is_settled",
    "DiceSnapshot", "DieState", "RollResult", "RollSession", "TableState",
    "ThrowRequested", "TickElapsed", "ThrowAccepted", "SnapshotReady", "RollSettled",
]
