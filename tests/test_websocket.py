"""
Tests for the per-user notification sink and the WebSocket route.
"""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi import WebSocketDisconnect
from starlette.websockets import WebSocketState

from binary_ledger.api.routes.websocket import websocket_endpoint
from binary_ledger.core.security import create_access_token
from binary_ledger.core.websocket import ConnectionManager, WebSocketEventType


def fake_socket(state: WebSocketState = WebSocketState.CONNECTED) -> MagicMock:
    ws = MagicMock()
    ws.client_state = state
    ws.accept = AsyncMock()
    ws.send_text = AsyncMock()
    return ws


def sent_events(ws: MagicMock) -> list[dict]:
    return [json.loads(call.args[0]) for call in ws.send_text.await_args_list]


class TestConnectionManager:

    @pytest.mark.asyncio
    async def test_connect_confirms(self):
        manager = ConnectionManager()
        ws = fake_socket()

        await manager.connect(ws, "u1")

        ws.accept.assert_awaited_once()
        assert sent_events(ws)[0]["event"] == "connection_established"
        assert manager.get_connection_count("u1") == 1

    @pytest.mark.asyncio
    async def test_emit_reaches_every_connection_of_owner_only(self):
        manager = ConnectionManager()
        phone, laptop, other = fake_socket(), fake_socket(), fake_socket()
        await manager.register(phone, "u1")
        await manager.register(laptop, "u1")
        await manager.register(other, "u2")

        delivered = await manager.emit("u1", WebSocketEventType.TRADE_SETTLED, {"trade_id": "t-1"})

        assert delivered == 2
        assert sent_events(phone)[-1]["event"] == "trade_settled"
        assert sent_events(phone)[-1]["data"] == {"trade_id": "t-1"}
        assert [e["event"] for e in sent_events(other)] == ["connection_established"]

    @pytest.mark.asyncio
    async def test_emit_without_connections(self):
        manager = ConnectionManager()
        assert await manager.emit("nobody", WebSocketEventType.TRADE_SETTLED, {}) == 0

    @pytest.mark.asyncio
    async def test_dead_connection_pruned(self):
        manager = ConnectionManager()
        ws = fake_socket()
        await manager.register(ws, "u1")
        ws.send_text.side_effect = RuntimeError("socket closed")

        assert await manager.emit("u1", WebSocketEventType.BALANCE_UPDATED, {"balance": "1"}) == 0
        assert manager.get_connection_count("u1") == 0

    @pytest.mark.asyncio
    async def test_heartbeat_broadcast(self):
        manager = ConnectionManager()
        a, b = fake_socket(), fake_socket()
        await manager.register(a, "u1")
        await manager.register(b, "u2")

        await manager.send_heartbeat()

        assert sent_events(a)[-1]["event"] == "heartbeat"
        assert sent_events(b)[-1]["event"] == "heartbeat"

    @pytest.mark.asyncio
    async def test_disconnect(self):
        manager = ConnectionManager()
        ws = fake_socket()
        await manager.register(ws, "u1")

        await manager.disconnect(ws, "u1")

        assert manager.get_connection_count() == 0


class TestWebSocketRoute:

    @pytest.mark.asyncio
    async def test_ping_answered_on_calling_socket_only(self):
        manager = ConnectionManager()
        other_tab = fake_socket()
        await manager.register(other_tab, "u1")

        ws = fake_socket()
        ws.close = AsyncMock()
        ws.send_json = AsyncMock()
        ws.receive_json = AsyncMock(side_effect=[
            {"action": "authenticate", "token": create_access_token({"sub": "u1"})},
            {"action": "ping"},
            {"action": "dance"},
            WebSocketDisconnect(),
        ])

        with patch("binary_ledger.api.routes.websocket.connection_manager", manager):
            await websocket_endpoint(ws)

        replies = sent_events(ws)[-2:]
        assert replies[0]["event"] == "heartbeat"
        assert replies[0]["data"] == {"pong": True}
        assert replies[1]["event"] == "error"
        assert [e["event"] for e in sent_events(other_tab)] == ["connection_established"] * 2
        assert manager.get_connection_count("u1") == 1

    @pytest.mark.asyncio
    async def test_bad_token_rejected(self):
        ws = fake_socket()
        ws.close = AsyncMock()
        ws.send_json = AsyncMock()
        ws.receive_json = AsyncMock(return_value={"action": "authenticate", "token": "junk"})

        await websocket_endpoint(ws)

        ws.close.assert_awaited_once()
        assert ws.close.await_args.kwargs["code"] == 4001
