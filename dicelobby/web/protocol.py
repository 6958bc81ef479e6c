"""Wire messages for the lobby WebSocket.

Every frame is a JSON object with a ``type`` field. The only client
message is ``throwDice``; the server sends ``connected`` once per
connection, ``diceStateUpdate`` every tick and ``diceResult`` once per roll.
"""

import json
from typing import Optional

from pydantic import BaseModel, ConfigDict, ValidationError

from ..game.models import DiceSnapshot, Output, RollResult, RollSettled, SnapshotReady

THROW_DICE = "throwDice"
CONNECTED = "connected"
DICE_STATE_UPDATE = "diceStateUpdate"
DICE_RESULT = "diceResult"
ERROR = "error"


class ProtocolError(ValueError):
    """A client frame that cannot be understood."""


class ClientMessage(BaseModel):
    """Incoming frame. Fields other than ``type`` are accepted and ignored."""

    model_config = ConfigDict(extra="allow")

    type: str


def parse_client_message(raw: Optional[str]) -> ClientMessage:
    """Parse a text frame.

    Raises:
        ProtocolError: If the frame is not a JSON object with a string ``type``
    """
    if raw is None:
        raise ProtocolError("Binary frames are not supported")
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ProtocolError(f"Invalid JSON: {e.msg}") from e
    if not isinstance(data, dict):
        raise ProtocolError("Message must be a JSON object")
    try:
        return ClientMessage.model_validate(data)
    except ValidationError as e:
        raise ProtocolError("Message needs a string 'type' field") from e


def snapshot_message(snapshot: DiceSnapshot) -> dict:
    return {
        "type": DICE_STATE_UPDATE,
        "dice": snapshot.to_list(),
        "tick": snapshot.tick,
        "time": snapshot.time,
    }


def result_message(result: RollResult) -> dict:
    return {"type": DICE_RESULT, **result.to_dict()}


def welcome_message(client_id: str, rolling: bool, snapshot: DiceSnapshot, last_result: Optional[RollResult]) -> dict:
    return {
        "type": CONNECTED,
        "client_id": client_id,
        "rolling": rolling,
        "dice": snapshot.to_list(),
        "last_result": last_result.to_dict() if last_result else None,
    }


def error_message(detail: str) -> dict:
    return {"type": ERROR, "detail": detail}


def output_to_message(output: Output) -> Optional[dict]:
    """Wire message for a controller output, or None if it is not broadcast."""
    if isinstance(output, SnapshotReady):
        return snapshot_message(output.snapshot)
    if isinstance(output, RollSettled):
        return result_message(output.result)
    return None
