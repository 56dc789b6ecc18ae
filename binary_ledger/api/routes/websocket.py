"""
WebSocket route pushing trade and balance events to the owning user.

Authentication is performed via the first message after connecting,
not via URL query parameters, so tokens stay out of access logs.
"""

import logging
import asyncio
from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from binary_ledger.core.exceptions import AuthenticationError
from binary_ledger.core.security import verify_token
from binary_ledger.core.websocket import (
    connection_manager,
    WebSocketMessage,
    WebSocketEventType,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["WebSocket"])

AUTH_TIMEOUT_SECONDS = 10


def authenticate_websocket(token: str | None) -> str | None:
    """
    Returns the user id carried by a valid token, None otherwise.
    """
    if not token:
        return None
    try:
        payload = verify_token(token)
    except AuthenticationError as e:
        logger.warning(f"WebSocket authentication failed: {e.message}")
        return None
    subject = payload.get("sub")
    return str(subject) if subject else None


async def _reject(websocket: WebSocket, message: str) -> None:
    await websocket.send_json({"event": "error", "data": {"message": message}})
    await websocket.close(code=4001, reason=message)


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """
    Connection flow:
    1. Connect to ws://host/api/v1/ws
    2. Send {"action": "authenticate", "token": "<jwt>"}
    3. Receive {"event": "connection_established", ...}

    Events pushed: trade_placed, trade_settled, balance_updated, heartbeat, error.
    Client may send {"action": "ping"} for an immediate heartbeat.
    """
    await websocket.accept()

    try:
        data = await asyncio.wait_for(websocket.receive_json(), timeout=AUTH_TIMEOUT_SECONDS)
    except asyncio.TimeoutError:
        await _reject(websocket, "Authentication timeout")
        return
    except (WebSocketDisconnect, ValueError):
        return

    if not isinstance(data, dict) or data.get("action") != "authenticate":
        await _reject(websocket, "First message must be authentication")
        return

    user_id = authenticate_websocket(data.get("token"))
    if not user_id:
        await _reject(websocket, "Authentication failed: Invalid token")
        return

    # Already accepted above; register without a second accept
    await connection_manager.register(websocket, user_id)

    try:
        while True:
            data = await websocket.receive_json()
            action = data.get("action") if isinstance(data, dict) else None

            if action == "ping":
                reply = WebSocketMessage(
                    event_type=WebSocketEventType.HEARTBEAT,
                    data={"pong": True},
                )
            elif action == "authenticate":
                continue
            else:
                reply = WebSocketMessage(
                    event_type=WebSocketEventType.ERROR,
                    data={"message": f"Unknown action: {action}"},
                )
            # Replies go to the calling socket only, not the user's other tabs
            await websocket.send_text(reply.to_json())

    except WebSocketDisconnect:
        logger.info(f"WebSocket disconnected for user {user_id}")
    finally:
        await connection_manager.disconnect(websocket, user_id)


@router.get("/ws/status")
async def websocket_status():
    """Connection statistics."""
    return {"total_connections": connection_manager.get_connection_count()}
