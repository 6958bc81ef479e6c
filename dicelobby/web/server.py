"""FastAPI WebSocket server for the shared dice table."""

import logging
from contextlib import asynccontextmanager
from typing import Optional
from uuid import uuid4

from fastapi import APIRouter, FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware

from .. import __version__
from ..config import AppConfig, get_config
from ..game.runtime import DiceTable, create_dice_table
from ..timing import get_tracker
from .hub import ObserverHub
from .protocol import (
    THROW_DICE,
    ProtocolError,
    error_message,
    parse_client_message,
    welcome_message,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _table(request: Request) -> DiceTable:
    return request.app.state.table


def _hub(request: Request) -> ObserverHub:
    return request.app.state.hub


@router.get("/api/health")
async def health(request: Request):
    """Basic liveness and table state."""
    table = _table(request)
    return {
        "status": "online",
        "rolling": table.rolling,
        "observers": len(_hub(request)),
    }


@router.get("/api/table")
async def get_table(request: Request):
    """Table geometry, current dice poses and the last result."""
    table = _table(request)
    snapshot = table.snapshot()
    last = table.last_result
    return {
        "table_id": table.table_id,
        "state": table.state.value,
        "geometry": table.describe(),
        "tick": snapshot.tick,
        "time": snapshot.time,
        "dice": snapshot.to_list(),
        "last_result": last.to_dict() if last else None,
    }


@router.post("/api/throw")
async def throw_dice(request: Request):
    """Same as sending throwDice over the socket."""
    accepted = await _table(request).throw(requested_by="rest")
    return {"accepted": accepted}


@router.get("/api/timing")
async def get_timing():
    """Tick and broadcast latency statistics."""
    tracker = get_tracker()
    return {
        "stats": tracker.get_all_stats(),
        "stages": tracker.stages(),
    }


@router.websocket("/ws/lobby")
async def lobby_socket(websocket: WebSocket):
    """Observer connection: receives every tick, may request throws."""
    table: DiceTable = websocket.app.state.table
    hub: ObserverHub = websocket.app.state.hub

    await websocket.accept()
    client_id = uuid4().hex[:8]
    logger.info(f"[{table.table_id}] User connected to lobby: {client_id}")

    await websocket.send_json(welcome_message(
        client_id, table.rolling, table.snapshot(), table.last_result,
    ))
    hub.add(client_id, websocket)

    try:
        while True:
            frame = await websocket.receive()
            if frame["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(frame.get("code", 1000))
            if client_id not in hub:
                logger.info(f"[{table.table_id}] Ignoring frames from dropped observer {client_id}")
                break

            try:
                message = parse_client_message(frame.get("text"))
            except ProtocolError as e:
                logger.warning(f"[{table.table_id}] Rejected frame from {client_id}: {e}")
                await websocket.send_json(error_message(str(e)))
                continue

            if message.type == THROW_DICE:
                await table.throw(requested_by=client_id)
            else:
                logger.debug(f"[{table.table_id}] Ignoring '{message.type}' from {client_id}")

    except WebSocketDisconnect:
        # The roll is server-owned and carries on for everyone else
        logger.info(f"[{table.table_id}] User disconnected from lobby: {client_id}")
    finally:
        hub.remove(client_id)


def create_app(config: Optional[AppConfig] = None, table: Optional[DiceTable] = None) -> FastAPI:
    """Build the app around one dice table.

    Args:
        config: Application configuration. Defaults to the global config.
        table: Pre-built table. Built from ``config`` on startup when omitted.
    """
    config = config or get_config()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        hub = ObserverHub(
            table_id=config.server.table_id,
            send_timeout_ms=config.server.send_timeout_ms,
            max_slow_strikes=config.server.max_slow_strikes,
        )
        dice_table = table or create_dice_table(config)
        dice_table.publisher = hub.publish
        app.state.hub = hub
        app.state.table = dice_table
        logger.info(f"[{dice_table.table_id}] Dice table ready")

        yield

        await dice_table.shutdown()
        logger.info("Shutting down...")

    app = FastAPI(
        title="Dice Lobby",
        description="Shared physics dice table",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(router)
    return app
