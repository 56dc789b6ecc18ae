"""
WebSocket connection manager.

Pushes trade lifecycle events (placement, settlement, balance changes)
to the connected clients of the owning user.
"""

import asyncio
import json
import logging
from datetime import datetime, timezone
from enum import Enum
from dataclasses import dataclass, field
from typing import Any
from fastapi import WebSocket
from starlette.websockets import WebSocketState

logger = logging.getLogger(__name__)


class WebSocketEventType(str, Enum):
    """Types of WebSocket events that can be pushed to clients."""

    # Trade events
    TRADE_PLACED = "trade_placed"
    TRADE_SETTLED = "trade_settled"
    BALANCE_UPDATED = "balance_updated"

    # System events
    CONNECTION_ESTABLISHED = "connection_established"
    HEARTBEAT = "heartbeat"
    ERROR = "error"


@dataclass
class WebSocketMessage:
    """Structure for WebSocket messages."""

    event_type: WebSocketEventType
    data: dict[str, Any]
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    correlation_id: str | None = None

    def to_json(self) -> str:
        """Serialize message to JSON string."""
        return json.dumps({
            "event": self.event_type.value,
            "data": self.data,
            "timestamp": self.timestamp,
            "correlation_id": self.correlation_id,
        })


class ConnectionManager:
    """
    Manages WebSocket connections for real-time updates.

    Connections are tracked per user id; a user may hold several
    (multiple tabs or devices) and every one receives the event.
    """

    def __init__(self):
        self._connections: dict[str, list[WebSocket]] = {}
        self._lock = asyncio.Lock()
        self.heartbeat_interval = 30

    async def connect(self, websocket: WebSocket, user_id: str) -> None:
        """Accept and register a new WebSocket connection."""
        await websocket.accept()
        await self.register(websocket, user_id)

    async def register(self, websocket: WebSocket, user_id: str) -> None:
        """Register an already accepted connection and confirm it to the client."""
        async with self._lock:
            self._connections.setdefault(user_id, []).append(websocket)

        logger.info(f"WebSocket connected for user {user_id}")

        await self.send_to_user(
            user_id,
            WebSocketMessage(
                event_type=WebSocketEventType.CONNECTION_ESTABLISHED,
                data={"message": "Connected to trade notifications"},
            ),
        )

    async def disconnect(self, websocket: WebSocket, user_id: str) -> None:
        """Remove a WebSocket connection."""
        async with self._lock:
            if user_id in self._connections:
                if websocket in self._connections[user_id]:
                    self._connections[user_id].remove(websocket)
                if not self._connections[user_id]:
                    del self._connections[user_id]

        logger.info(f"WebSocket disconnected for user {user_id}")

    async def send_to_user(
        self,
        user_id: str,
        message: WebSocketMessage,
    ) -> int:
        """
        Send a message to all connections for a specific user.

        Returns:
            Number of connections the message was delivered to
        """
        sent_count = 0
        disconnected = []

        async with self._lock:
            connections = self._connections.get(user_id, []).copy()

        for websocket in connections:
            try:
                if websocket.client_state == WebSocketState.CONNECTED:
                    await websocket.send_text(message.to_json())
                    sent_count += 1
                else:
                    disconnected.append(websocket)
            except Exception as e:
                logger.warning(f"Failed to send WebSocket message: {e}")
                disconnected.append(websocket)

        if disconnected:
            async with self._lock:
                for ws in disconnected:
                    if user_id in self._connections and ws in self._connections[user_id]:
                        self._connections[user_id].remove(ws)

        return sent_count

    async def emit(self, user_id: str, event_type: WebSocketEventType, data: dict[str, Any]) -> int:
        """Notification sink entry point used by the trade services."""
        return await self.send_to_user(user_id, WebSocketMessage(event_type=event_type, data=data))

    async def broadcast(self, message: WebSocketMessage) -> int:
        """Broadcast a message to all connected users."""
        total_sent = 0

        async with self._lock:
            user_ids = list(self._connections.keys())

        for user_id in user_ids:
            total_sent += await self.send_to_user(user_id, message)

        return total_sent

    async def send_heartbeat(self) -> None:
        """Send heartbeat to all connections."""
        await self.broadcast(
            WebSocketMessage(
                event_type=WebSocketEventType.HEARTBEAT,
                data={"server_time": datetime.now(timezone.utc).isoformat()},
            )
        )

    def get_connection_count(self, user_id: str | None = None) -> int:
        """Number of active connections, optionally for one user."""
        if user_id:
            return len(self._connections.get(user_id, []))
        return sum(len(conns) for conns in self._connections.values())


# Global connection manager instance
connection_manager = ConnectionManager()
