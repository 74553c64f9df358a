"""
publisher.py — Broadcast sink for dashboard push updates.

The refresh loop only depends on the Publisher protocol:

    await publisher.broadcast("metrics:update", payload)

broadcast() is fire-and-forget: no acknowledgement, no ordering guarantee
across events, and it never raises. WebSocketHub is the production sink:
every dashboard client that opened /api/v1/dashboard/stream receives

    {"event": "metrics:update", "data": {...snapshot...}}

Sends to all clients run concurrently, each bounded by ``send_timeout``.
Clients whose socket errors or stalls during a send are dropped from the hub.
"""

import asyncio
import json
import logging
from typing import Any, Protocol

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class Publisher(Protocol):
    async def broadcast(self, event: str, payload: Any) -> None: ...


class WebSocketHub:
    """Tracks connected dashboard WebSockets and fans messages out to them."""

    def __init__(self, send_timeout: float = 5.0) -> None:
        self.send_timeout = send_timeout
        self._connections: set[WebSocket] = set()

    def __len__(self) -> int:
        return len(self._connections)

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        self._connections.add(websocket)
        logger.info("Dashboard subscriber connected (%d total)", len(self._connections))

    def disconnect(self, websocket: WebSocket) -> None:
        self._connections.discard(websocket)

    async def broadcast(self, event: str, payload: Any) -> None:
        message = json.dumps({"event": event, "data": payload}, default=str)
        subscribers = list(self._connections)
        results = await asyncio.gather(
            *(asyncio.wait_for(ws.send_text(message), self.send_timeout) for ws in subscribers),
            return_exceptions=True,
        )
        for websocket, result in zip(subscribers, results):
            if isinstance(result, Exception):
                logger.warning("Dropping dashboard subscriber after send failure: %r", result)
                self.disconnect(websocket)
