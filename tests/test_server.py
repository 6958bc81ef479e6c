"""Tests for the HTTP and WebSocket surface."""

import random

import pytest
from fastapi import WebSocketDisconnect
from fastapi.testclient import TestClient

from conftest import SETTLE_TICKS, fast_config
from dicelobby.game.runtime import create_dice_table
from dicelobby.web.server import create_app


@pytest.fixture
def client():
    config = fast_config()
    table = create_dice_table(config, rng=random.Random(11))
    with TestClient(create_app(config=config, table=table)) as client:
        yield client


class TestRest:
    """Test REST endpoints."""

    def test_health(self, client):
        """Test the health check on an idle table."""
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.json() == {"status": "online", "rolling": False, "observers": 0}

    def test_table(self, client):
        """Test the table description."""
        data = client.get("/api/table").json()
        assert data["table_id"] == "lobby"
        assert data["state"] == "idle"
        assert data["geometry"]["num_dice"] == 5
        assert len(data["dice"]) == 5
        assert data["last_result"] is None

    def test_throw_while_rolling_ignored(self, client):
        """Test a second throw during a roll is not accepted."""
        assert client.post("/api/throw").json() == {"accepted": True}
        assert client.post("/api/throw").json() == {"accepted": False}

    def test_timing(self, client):
        """Test the timing endpoint shape."""
        data = client.get("/api/timing").json()
        assert set(data) == {"stats", "stages"}


class TestLobbySocket:
    """Test the observer WebSocket."""

    def test_welcome(self, client):
        """Test a new observer receives the current table."""
        with client.websocket_connect("/ws/lobby") as ws:
            message = ws.receive_json()
            assert message["type"] == "connected"
            assert message["rolling"] is False
            assert len(message["dice"]) == 5
            assert message["last_result"] is None

    def test_malformed_frame_gets_error(self, client):
        """Test garbage input is answered, not fatal."""
        with client.websocket_connect("/ws/lobby") as ws:
            ws.receive_json()
            ws.send_text("not json")
            assert ws.receive_json()["type"] == "error"
            ws.send_json({"no": "type"})
            assert ws.receive_json()["type"] == "error"
            assert client.get("/api/health").json()["observers"] == 1

    def test_throw_streams_until_result(self, client):
        """Test a throw produces state updates then exactly one result."""
        with client.websocket_connect("/ws/lobby") as ws:
            ws.receive_json()
            ws.send_json({"type": "throwDice"})

            ticks = []
            while True:
                message = ws.receive_json()
                if message["type"] == "diceResult":
                    break
                assert message["type"] == "diceStateUpdate"
                ticks.append(message["tick"])
                assert len(ticks) <= SETTLE_TICKS

            assert len(ticks) > 0
            assert ticks == sorted(set(ticks))
            assert len(message["individual"]) == 5
            assert all(1 <= v <= 6 for v in message["individual"])
            assert message["total"] == sum(message["individual"])

        last = client.get("/api/table").json()["last_result"]
        assert last == {"individual": message["individual"], "total": message["total"]}

    def test_unknown_type_ignored(self, client):
        """Test unrecognised message types do not start a roll."""
        with client.websocket_connect("/ws/lobby") as ws:
            ws.receive_json()
            ws.send_json({"type": "wave"})
            ws.send_text("not json")
            assert ws.receive_json()["type"] == "error"
        assert client.get("/api/health").json()["rolling"] is False

    def test_dropped_observer_cannot_throw(self, client):
        """Test frames from an observer the hub has dropped end its connection."""
        with client.websocket_connect("/ws/lobby") as ws:
            welcome = ws.receive_json()
            client.app.state.hub.remove(welcome["client_id"])
            ws.send_json({"type": "throwDice"})
            with pytest.raises(WebSocketDisconnect):
                ws.receive_json()
        assert client.get("/api/health").json()["rolling"] is False
