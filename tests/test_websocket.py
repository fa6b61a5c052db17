"""Unit tests for WebSocket connection manager."""

from datetime import datetime
from unittest.mock import AsyncMock, MagicMock

import pytest
from starlette.websockets import WebSocketState

from taskflow.schemas.user import Identity, UserRole
from taskflow.websocket.events import OutboundEvent
from taskflow.websocket.manager import (
    ConnectionManager,
    WebSocketConnection,
    get_project_room,
    get_task_room,
    get_user_room,
)


def _identity(user_id: int = 1, name: str = "Ada") -> Identity:
    return Identity(id=user_id, name=name, email=f"user{user_id}@example.com", role=UserRole.MEMBER)


class TestOutboundEvent:
    """Tests for OutboundEvent enum."""

    def test_event_values(self):
        assert OutboundEvent.CONNECTED == "connected"
        assert OutboundEvent.TASK_STATUS_CHANGED == "task:status_changed"
        assert OutboundEvent.COMMENT_ADDED == "comment:added"
        assert OutboundEvent.NOTIFICATION_NEW == "notification:new"
        assert OutboundEvent.USERS_ONLINE_LIST == "users:online_list"

    def test_event_values_are_strings(self):
        for event in OutboundEvent:
            assert isinstance(event.value, str)


class TestRoomNames:

    def test_room_names(self):
        assert get_project_room(3) == "project:3"
        assert get_task_room(7) == "task:7"
        assert get_user_room(11) == "user:11"


class TestWebSocketConnection:
    """Tests for WebSocketConnection dataclass."""

    def test_connection_creation(self):
        mock_ws = MagicMock()

        conn = WebSocketConnection(websocket=mock_ws, identity=_identity(5))

        assert conn.websocket is mock_ws
        assert conn.user_id == 5
        assert isinstance(conn.connected_at, datetime)
        assert conn.rooms == set()

    def test_connection_hash(self):
        conn1 = WebSocketConnection(websocket=MagicMock(), identity=_identity())
        conn2 = WebSocketConnection(websocket=MagicMock(), identity=_identity())

        assert hash(conn1) != hash(conn2)

    def test_connection_equality(self):
        mock_ws = MagicMock()

        conn1 = WebSocketConnection(websocket=mock_ws, identity=_identity())
        conn2 = WebSocketConnection(websocket=mock_ws, identity=_identity())
        conn3 = WebSocketConnection(websocket=MagicMock(), identity=_identity())

        assert conn1 == conn2
        assert conn1 != conn3


class TestConnectionManagerConnect:
    """Tests for connection handling."""

    @pytest.mark.asyncio
    async def test_connect_success(self):
        mgr = ConnectionManager()
        mock_ws = AsyncMock()

        connection = await mgr.connect(mock_ws, _identity(3))

        assert connection.user_id == 3
        assert mgr.total_connections == 1
        assert mgr.is_active(connection)
        mock_ws.accept.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_disconnect_leaves_all_rooms(self):
        mgr = ConnectionManager()
        mock_ws = AsyncMock()
        connection = await mgr.connect(mock_ws, _identity())
        await mgr.join_room(connection, "project:1")
        await mgr.join_room(connection, "task:1")

        removed = await mgr.disconnect(mock_ws)

        assert removed is connection
        assert mgr.total_connections == 0
        assert mgr.total_rooms == 0
        assert connection.rooms == set()

    @pytest.mark.asyncio
    async def test_disconnect_unknown_socket(self):
        mgr = ConnectionManager()
        assert await mgr.disconnect(AsyncMock()) is None

    @pytest.mark.asyncio
    async def test_close_skips_socket_already_closed_by_peer(self):
        mgr = ConnectionManager()
        mock_ws = AsyncMock()
        connection = await mgr.connect(mock_ws, _identity())
        mock_ws.client_state = WebSocketState.DISCONNECTED

        await mgr.close(connection, code=1000)

        mock_ws.close.assert_not_awaited()
        assert mgr.total_connections == 0

    @pytest.mark.asyncio
    async def test_close_tolerates_double_close(self):
        mgr = ConnectionManager()
        mock_ws = AsyncMock()
        mock_ws.close.side_effect = RuntimeError("already closed")
        connection = await mgr.connect(mock_ws, _identity())

        await mgr.close(connection, code=4000, reason="replaced")

        mock_ws.close.assert_awaited_once_with(code=4000, reason="replaced")


class TestConnectionManagerRooms:
    """Tests for room membership."""

    @pytest.mark.asyncio
    async def test_join_room_is_idempotent(self):
        mgr = ConnectionManager()
        connection = await mgr.connect(AsyncMock(), _identity())

        assert await mgr.join_room(connection, "project:1") is True
        assert await mgr.join_room(connection, "project:1") is False
        assert mgr.get_room_count("project:1") == 1
        assert "project:1" in connection.rooms

    @pytest.mark.asyncio
    async def test_join_after_disconnect_is_refused(self):
        mgr = ConnectionManager()
        mock_ws = AsyncMock()
        connection = await mgr.connect(mock_ws, _identity())
        await mgr.disconnect(mock_ws)

        assert await mgr.join_room(connection, "project:1") is False
        assert mgr.get_room_count("project:1") == 0
        assert connection.rooms == set()

    @pytest.mark.asyncio
    async def test_leave_room(self):
        mgr = ConnectionManager()
        connection = await mgr.connect(AsyncMock(), _identity())
        await mgr.join_room(connection, "task:4")

        assert await mgr.leave_room(connection, "task:4") is True
        assert await mgr.leave_room(connection, "task:4") is False
        assert mgr.total_rooms == 0

    @pytest.mark.asyncio
    async def test_get_room_users_deduplicates(self):
        mgr = ConnectionManager()
        a = await mgr.connect(AsyncMock(), _identity(1))
        b = await mgr.connect(AsyncMock(), _identity(2))
        a2 = await mgr.connect(AsyncMock(), _identity(1))
        for conn in (a, b, a2):
            await mgr.join_room(conn, "project:9")

        assert mgr.get_room_users("project:9") == [1, 2]


class TestConnectionManagerBroadcast:
    """Tests for message fan-out."""

    @pytest.mark.asyncio
    async def test_send_personal_failure_returns_false(self):
        mgr = ConnectionManager()
        mock_ws = AsyncMock()
        mock_ws.send_json.side_effect = RuntimeError("gone")
        connection = await mgr.connect(mock_ws, _identity())

        assert await mgr.send_personal(connection, {"type": "ping", "data": {}}) is False

    @pytest.mark.asyncio
    async def test_broadcast_to_room_with_exclude(self):
        mgr = ConnectionManager()
        ws1, ws2 = AsyncMock(), AsyncMock()
        c1 = await mgr.connect(ws1, _identity(1))
        c2 = await mgr.connect(ws2, _identity(2))
        await mgr.join_room(c1, "task:1")
        await mgr.join_room(c2, "task:1")

        sent = await mgr.broadcast_to_room("task:1", {"type": "x", "data": {}}, exclude=c1)

        assert sent == 1
        ws1.send_json.assert_not_awaited()
        ws2.send_json.assert_awaited_once_with({"type": "x", "data": {}})

    @pytest.mark.asyncio
    async def test_broadcast_to_empty_room(self):
        mgr = ConnectionManager()
        assert await mgr.broadcast_to_room("task:404", {"type": "x", "data": {}}) == 0

    @pytest.mark.asyncio
    async def test_broadcast_to_rooms_delivers_once_per_connection(self):
        mgr = ConnectionManager()
        ws_both, ws_task, ws_project = AsyncMock(), AsyncMock(), AsyncMock()
        both = await mgr.connect(ws_both, _identity(1))
        in_task = await mgr.connect(ws_task, _identity(2))
        in_project = await mgr.connect(ws_project, _identity(3))
        await mgr.join_room(both, "task:1")
        await mgr.join_room(both, "project:1")
        await mgr.join_room(in_task, "task:1")
        await mgr.join_room(in_project, "project:1")

        sent = await mgr.broadcast_to_rooms(["task:1", "project:1"], {"type": "x", "data": {}})

        assert sent == 3
        assert ws_both.send_json.await_count == 1
        assert ws_task.send_json.await_count == 1
        assert ws_project.send_json.await_count == 1

    @pytest.mark.asyncio
    async def test_broadcast_to_all(self):
        mgr = ConnectionManager()
        ws1, ws2 = AsyncMock(), AsyncMock()
        c1 = await mgr.connect(ws1, _identity(1))
        await mgr.connect(ws2, _identity(2))

        sent = await mgr.broadcast_to_all({"type": "x", "data": {}}, exclude=c1)

        assert sent == 1
        ws1.send_json.assert_not_awaited()
