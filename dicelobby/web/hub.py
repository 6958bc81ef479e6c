"""Fan-out of table events to every connected observer."""

import asyncio
import logging
from typing import Any, Optional, Protocol

from ..game.models import Output
from .protocol import output_to_message

logger = logging.getLogger(__name__)

# Policy violation: the client could not keep up or could not be reached
DROP_CLOSE_CODE = 1008


class Observer(Protocol):
    async def send_json(self, data: Any) -> None: ...

    async def close(self, code: int = 1000, reason: Optional[str] = None) -> None: ...


class ObserverHub:
    """Connected observers of one table.

    Sends go out to everyone in parallel, each under its own timeout. A
    client that times out is kept until it has timed out
    ``max_slow_strikes`` times in a row (a successful send clears its
    strikes); a client whose send fails is dropped at once. A dropped
    client has its connection closed. Neither case delays the others.
    """

    def __init__(self, table_id: str = "lobby", send_timeout_ms: int = 100, max_slow_strikes: int = 3):
        self.table_id = table_id
        self.send_timeout_ms = send_timeout_ms
        self.max_slow_strikes = max_slow_strikes
        self.observers: dict[str, Observer] = {}
        self.slow_client_counts: dict[str, int] = {}

    def __len__(self) -> int:
        return len(self.observers)

    def __contains__(self, client_id: str) -> bool:
        return client_id in self.observers

    def add(self, client_id: str, observer: Observer) -> None:
        self.observers[client_id] = observer
        logger.info(f"[{self.table_id}] Observer '{client_id}' joined ({len(self.observers)} connected)")

    def remove(self, client_id: str) -> None:
        if self.observers.pop(client_id, None) is not None:
            logger.info(f"[{self.table_id}] Observer '{client_id}' left ({len(self.observers)} connected)")
        self.slow_client_counts.pop(client_id, None)

    async def publish(self, output: Output) -> None:
        """Translate a controller output to a wire message and broadcast it."""
        message = output_to_message(output)
        if message is not None:
            await self.broadcast(message)

    async def broadcast(self, message: dict) -> None:
        """Send message to all connected observers in parallel with timeout."""
        if not self.observers:
            return

        timeout = self.send_timeout_ms / 1000

        async def send_to_client(client_id: str, observer: Observer) -> tuple[str, str]:
            try:
                async with asyncio.timeout(timeout):
                    await observer.send_json(message)
                return (client_id, "ok")
            except TimeoutError:
                strikes = self.slow_client_counts.get(client_id, 0) + 1
                self.slow_client_counts[client_id] = strikes
                logger.warning(f"[{self.table_id}] Send timeout to '{client_id}' ({self.send_timeout_ms}ms)")
                if strikes >= self.max_slow_strikes:
                    logger.warning(
                        f"[{self.table_id}] Removing slow observer '{client_id}' after {strikes} timeouts"
                    )
                    return (client_id, "dropped")
                return (client_id, "slow")
            except Exception as e:
                logger.warning(f"[{self.table_id}] Failed to send to '{client_id}': {e}")
                return (client_id, "dropped")

        # Copy so joins and leaves during the gather don't disturb iteration
        targets = list(self.observers.items())
        results = await asyncio.gather(
            *(send_to_client(client_id, observer) for client_id, observer in targets),
            return_exceptions=True,
        )

        dropped = []
        for result in results:
            if isinstance(result, BaseException):
                logger.error(f"[{self.table_id}] Broadcast exception: {result}")
                continue
            client_id, status = result
            if status == "dropped":
                observer = self.observers.get(client_id)
                self.remove(client_id)
                if observer is not None:
                    dropped.append((client_id, observer))
            elif status == "ok":
                self.slow_client_counts.pop(client_id, None)

        if dropped:
            await asyncio.gather(*(self._close(client_id, observer) for client_id, observer in dropped))

    async def _close(self, client_id: str, observer: Observer) -> None:
        try:
            async with asyncio.timeout(self.send_timeout_ms / 1000):
                await observer.close(code=DROP_CLOSE_CODE, reason="Dropped by server")
        except Exception as e:
            logger.debug(f"[{self.table_id}] Could not close dropped observer '{client_id}': {e}")
