"""Tests for wire messages."""

import pytest

from dicelobby.game.models import DiceSnapshot, DieState, RollResult
from dicelobby.web.protocol import (
    THROW_DICE,
    ProtocolError,
    error_message,
    parse_client_message,
    result_message,
    snapshot_message,
    welcome_message,
)


def snapshot() -> DiceSnapshot:
    dice = tuple(
        DieState(position=(float(i), 0.25, -1.0), quaternion=(0.0, 0.0, 0.0, 1.0))
        for i in range(5)
    )
    return DiceSnapshot(tick=42, time=0.7, dice=dice)


class TestParseClientMessage:
    """Test incoming frame validation."""

    def test_throw_dice(self):
        """Test a throw request parses."""
        assert parse_client_message('{"type": "throwDice"}').type == THROW_DICE

    def test_extra_fields_allowed(self):
        """Test extra fields do not break parsing."""
        message = parse_client_message('{"type": "throwDice", "power": 3}')
        assert message.type == THROW_DICE

    @pytest.mark.parametrize("raw", [
        "not json",
        "[1, 2, 3]",
        '"throwDice"',
        "{}",
        '{"type": 5}',
        None,
    ])
    def test_malformed(self, raw):
        """Test malformed frames are rejected."""
        with pytest.raises(ProtocolError):
            parse_client_message(raw)


class TestServerMessages:
    """Test outgoing message shapes."""

    def test_snapshot_message(self):
        """Test the state update carries position and quaternion per die."""
        message = snapshot_message(snapshot())
        assert message["type"] == "diceStateUpdate"
        assert message["tick"] == 42
        assert message["time"] == 0.7
        assert len(message["dice"]) == 5
        assert message["dice"][3] == {
            "position": {"x": 3.0, "y": 0.25, "z": -1.0},
            "quaternion": {"x": 0.0, "y": 0.0, "z": 0.0, "w": 1.0},
        }

    def test_result_message(self):
        """Test the result carries sorted values and their total."""
        message = result_message(RollResult.from_values([5, 1, 4, 4, 2]))
        assert message == {"type": "diceResult", "individual": [1, 2, 4, 4, 5], "total": 16}

    def test_welcome_message(self):
        """Test the welcome frame includes the current poses."""
        message = welcome_message("abc", False, snapshot(), None)
        assert message["type"] == "connected"
        assert message["client_id"] == "abc"
        assert message["rolling"] is False
        assert len(message["dice"]) == 5
        assert message["last_result"] is None

    def test_error_message(self):
        """Test the error frame."""
        assert error_message("bad") == {"type": "error", "detail": "bad"}
