"""Unit tests for the presence registry."""

from unittest.mock import AsyncMock

import pytest

from taskflow.schemas.user import Identity
from taskflow.websocket.errors import EventValidationError
from taskflow.websocket.manager import WebSocketConnection
from taskflow.websocket.presence import PresenceRegistry, UserStatus


def _connection(user_id: int = 1, name: str = "Ada") -> WebSocketConnection:
    identity = Identity(id=user_id, name=name, email=f"user{user_id}@example.com", avatar="AD")
    return WebSocketConnection(websocket=AsyncMock(), identity=identity)


class TestRegister:

    @pytest.mark.asyncio
    async def test_register_new_user(self):
        registry = PresenceRegistry()
        conn = _connection(1)

        replaced = await registry.register(conn)

        assert replaced is None
        assert registry.is_online(1)
        assert 1 in registry
        assert len(registry) == 1
        assert registry.get(1).status == UserStatus.ONLINE

    @pytest.mark.asyncio
    async def test_second_connection_replaces_first(self):
        registry = PresenceRegistry()
        first, second = _connection(1), _connection(1)
        await registry.register(first)

        replaced = await registry.register(second)

        assert replaced.connection is first
        assert registry.get(1).connection is second
        assert len(registry) == 1


class TestDeregister:

    @pytest.mark.asyncio
    async def test_deregister(self):
        registry = PresenceRegistry()
        conn = _connection(1)
        await registry.register(conn)

        removed = await registry.deregister(1, conn)

        assert removed.connection is conn
        assert not registry.is_online(1)

    @pytest.mark.asyncio
    async def test_deregister_twice_removes_once(self):
        registry = PresenceRegistry()
        conn = _connection(1)
        await registry.register(conn)

        assert await registry.deregister(1, conn) is not None
        assert await registry.deregister(1, conn) is None

    @pytest.mark.asyncio
    async def test_stale_connection_does_not_remove_newer_entry(self):
        registry = PresenceRegistry()
        first, second = _connection(1), _connection(1)
        await registry.register(first)
        await registry.register(second)

        assert await registry.deregister(1, first) is None
        assert registry.get(1).connection is second


class TestStatus:

    @pytest.mark.asyncio
    async def test_update_status(self):
        registry = PresenceRegistry()
        await registry.register(_connection(1))

        entry = await registry.update_status(1, "busy")

        assert entry.status == UserStatus.BUSY

    @pytest.mark.asyncio
    async def test_update_status_rejects_unknown_value(self):
        registry = PresenceRegistry()
        await registry.register(_connection(1))

        with pytest.raises(EventValidationError):
            await registry.update_status(1, "sleeping")
        assert registry.get(1).status == UserStatus.ONLINE

    @pytest.mark.asyncio
    async def test_update_status_for_offline_user(self):
        registry = PresenceRegistry()

        with pytest.raises(EventValidationError):
            await registry.update_status(7, UserStatus.AWAY)


class TestRooms:

    @pytest.mark.asyncio
    async def test_add_and_remove_room(self):
        registry = PresenceRegistry()
        conn = _connection(1)
        await registry.register(conn)

        assert await registry.add_room(1, "project:1", conn) is True
        assert await registry.add_room(1, "project:1", conn) is False
        assert registry.joined_rooms(1) == {"project:1"}

        assert await registry.remove_room(1, "project:1", conn) is True
        assert await registry.remove_room(1, "project:1", conn) is False
        assert registry.joined_rooms(1) == set()

    @pytest.mark.asyncio
    async def test_joined_rooms_is_a_copy(self):
        registry = PresenceRegistry()
        conn = _connection(1)
        await registry.register(conn)
        await registry.add_room(1, "task:3", conn)

        rooms = registry.joined_rooms(1)
        rooms.add("task:999")

        assert registry.joined_rooms(1) == {"task:3"}

    @pytest.mark.asyncio
    async def test_replaced_connection_cannot_touch_rooms(self):
        registry = PresenceRegistry()
        old, new = _connection(1), _connection(1)
        await registry.register(old)
        await registry.register(new)
        await registry.add_room(1, "project:1", new)

        assert await registry.add_room(1, "task:1", old) is False
        assert await registry.remove_room(1, "project:1", old) is False
        assert registry.joined_rooms(1) == {"project:1"}

    def test_joined_rooms_for_offline_user(self):
        assert PresenceRegistry().joined_rooms(5) == set()


class TestListOnline:

    @pytest.mark.asyncio
    async def test_list_online_snapshot(self):
        registry = PresenceRegistry()
        await registry.register(_connection(1, "Ada"))
        await registry.register(_connection(2, "Grace"))
        await registry.update_status(2, "away")

        online = {entry["userId"]: entry for entry in registry.list_online()}

        assert set(online) == {1, 2}
        assert online[2]["status"] == "away"
        assert online[2]["user"] == {"id": 2, "name": "Grace", "avatar": "AD"}

    @pytest.mark.asyncio
    async def test_list_online_excludes_user(self):
        registry = PresenceRegistry()
        await registry.register(_connection(1))
        await registry.register(_connection(2))

        assert [e["userId"] for e in registry.list_online(exclude_user_id=1)] == [2]
