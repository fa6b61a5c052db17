"""WebSocket connection manager with room-based support.

This module provides WebSocket connection management with:
- Room-based connection grouping for targeted broadcasts
- De-duplicated fan-out across several rooms
- Graceful disconnect handling

Room names follow ``project:<id>``, ``task:<id>`` and ``user:<id>``.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Optional

from fastapi import WebSocket
from starlette.websockets import WebSocketState

from ..schemas.user import Identity

logger = logging.getLogger(__name__)


def get_project_room(project_id: int) -> str:
    """Get the room name for a project."""
    return f"project:{project_id}"


def get_task_room(task_id: int) -> str:
    """Get the room name for a task."""
    return f"task:{task_id}"


def get_user_room(user_id: int) -> str:
    """Get the personal room name for a user."""
    return f"user:{user_id}"


@dataclass
class WebSocketConnection:
    """Represents a WebSocket connection with user context."""

    websocket: WebSocket
    identity: Identity
    connected_at: datetime = field(default_factory=datetime.utcnow)
    rooms: set[str] = field(default_factory=set)

    @property
    def user_id(self) -> int:
        return self.identity.id

    def __hash__(self) -> int:
        """Hash by websocket id for set operations."""
        return id(self.websocket)

    def __eq__(self, other: object) -> bool:
        """Equality check by websocket id."""
        if not isinstance(other, WebSocketConnection):
            return False
        return id(self.websocket) == id(other.websocket)


class ConnectionManager:
    """
    WebSocket connection manager with room-based support.

    Features:
    - Room-based connection grouping for targeted broadcasts
    - User tracking per room
    - Graceful disconnect handling
    """

    def __init__(self) -> None:
        """Initialize the connection manager."""
        # Map of room_id -> set of connections
        self._rooms: dict[str, set[WebSocketConnection]] = {}
        # Map of websocket -> connection object
        self._connections: dict[WebSocket, WebSocketConnection] = {}
        self._lock = asyncio.Lock()

    @property
    def total_connections(self) -> int:
        """Get total number of active connections."""
        return len(self._connections)

    @property
    def total_rooms(self) -> int:
        """Get total number of active rooms."""
        return len(self._rooms)

    def get_room_count(self, room_id: str) -> int:
        """Get number of connections in a room."""
        return len(self._rooms.get(room_id, set()))

    def get_room_users(self, room_id: str) -> list[int]:
        """Get the unique user ids present in a room."""
        connections = self._rooms.get(room_id, set())
        return sorted({conn.user_id for conn in connections})

    def get_connection(self, websocket: WebSocket) -> Optional[WebSocketConnection]:
        return self._connections.get(websocket)

    def is_active(self, connection: WebSocketConnection) -> bool:
        """Whether the connection is still registered."""
        return self._connections.get(connection.websocket) is connection

    def connections(self) -> list[WebSocketConnection]:
        """Snapshot of all registered connections."""
        return list(self._connections.values())

    async def connect(
        self,
        websocket: WebSocket,
        identity: Identity,
    ) -> WebSocketConnection:
        """
        Accept an authenticated WebSocket and register it.

        Args:
            websocket: The WebSocket instance
            identity: The identity resolved during the handshake

        Returns:
            WebSocketConnection: The connection wrapper object
        """
        await websocket.accept()

        connection = WebSocketConnection(websocket=websocket, identity=identity)

        async with self._lock:
            self._connections[websocket] = connection

        logger.info(
            f"WebSocket connected: user={identity.id}, "
            f"total_connections={self.total_connections}"
        )
        return connection

    async def disconnect(self, websocket: WebSocket) -> Optional[WebSocketConnection]:
        """
        Unregister a WebSocket and remove it from every room.

        Args:
            websocket: The WebSocket instance to disconnect

        Returns:
            The removed connection, or None if it was not registered
        """
        async with self._lock:
            connection = self._connections.pop(websocket, None)

            if connection is None:
                return None

            for room_id in list(connection.rooms):
                if room_id in self._rooms:
                    self._rooms[room_id].discard(connection)
                    if not self._rooms[room_id]:
                        del self._rooms[room_id]
            connection.rooms.clear()

        logger.info(
            f"WebSocket disconnected: user={connection.user_id}, "
            f"total_connections={self.total_connections}"
        )
        return connection

    async def close(
        self,
        connection: WebSocketConnection,
        code: int = 1000,
        reason: str = "",
    ) -> None:
        """Unregister a connection and close its socket if the peer has not already."""
        await self.disconnect(connection.websocket)
        if connection.websocket.client_state == WebSocketState.DISCONNECTED:
            return
        try:
            await connection.websocket.close(code=code, reason=reason)
        except (RuntimeError, OSError) as e:
            # Socket already closed
            logger.debug(f"Close of connection for user {connection.user_id} skipped: {e}")

    async def join_room(self, connection: WebSocketConnection, room_id: str) -> bool:
        """
        Add a connection to a room.

        A connection that is no longer registered is never added, so a join
        racing with a disconnect leaves no stale membership behind.

        Returns:
            True if the connection was newly added
        """
        async with self._lock:
            if self._connections.get(connection.websocket) is not connection:
                return False
            members = self._rooms.setdefault(room_id, set())
            if connection in members:
                return False
            members.add(connection)
            connection.rooms.add(room_id)

        logger.debug(
            f"User {connection.user_id} joined room {room_id} "
            f"(room_size={self.get_room_count(room_id)})"
        )
        return True

    async def leave_room(self, connection: WebSocketConnection, room_id: str) -> bool:
        """
        Remove a connection from a room.

        Returns:
            True if the connection was a member
        """
        async with self._lock:
            members = self._rooms.get(room_id)
            removed = members is not None and connection in members
            if members is not None:
                members.discard(connection)
                if not members:
                    del self._rooms[room_id]
            connection.rooms.discard(room_id)

        if removed:
            logger.debug(
                f"User {connection.user_id} left room {room_id} "
                f"(room_size={self.get_room_count(room_id)})"
            )
        return removed

    async def send_personal(
        self,
        connection: WebSocketConnection,
        message: dict[str, Any],
    ) -> bool:
        """
        Send a message to a specific connection.

        Args:
            connection: The target connection
            message: The message to send

        Returns:
            bool: True if sent successfully, False otherwise
        """
        try:
            await connection.websocket.send_json(message)
            return True
        except Exception as e:
            logger.debug(f"Send to user {connection.user_id} failed: {e}")
            return False

    async def _send_many(
        self,
        connections: set[WebSocketConnection],
        message: dict[str, Any],
    ) -> int:
        if not connections:
            return 0

        tasks = [self.send_personal(conn, message) for conn in connections]
        results = await asyncio.gather(*tasks, return_exceptions=True)
        return sum(1 for r in results if r is True)

    async def broadcast_to_room(
        self,
        room_id: str,
        message: dict[str, Any],
        exclude: Optional[WebSocketConnection] = None,
    ) -> int:
        """
        Broadcast a message to all connections in a room.

        Args:
            room_id: The room to broadcast to
            message: The message to send
            exclude: Optional connection to exclude from broadcast

        Returns:
            int: Number of successful sends
        """
        connections = self._rooms.get(room_id, set()).copy()
        if exclude:
            connections.discard(exclude)

        success_count = await self._send_many(connections, message)
        logger.debug(
            f"Broadcast {message.get('type')} to room {room_id}: "
            f"{success_count}/{len(connections)} successful"
        )
        return success_count

    async def broadcast_to_rooms(
        self,
        room_ids: Iterable[str],
        message: dict[str, Any],
        exclude: Optional[WebSocketConnection] = None,
    ) -> int:
        """
        Broadcast a message to the union of several rooms.

        A connection present in more than one of the rooms receives the
        message once.

        Returns:
            int: Number of successful sends
        """
        connections: set[WebSocketConnection] = set()
        for room_id in room_ids:
            connections |= self._rooms.get(room_id, set())
        if exclude:
            connections.discard(exclude)

        return await self._send_many(connections, message)

    async def broadcast_to_all(
        self,
        message: dict[str, Any],
        exclude: Optional[WebSocketConnection] = None,
    ) -> int:
        """
        Broadcast a message to all connected clients.

        Args:
            message: The message to send
            exclude: Optional connection to exclude

        Returns:
            int: Number of successful sends
        """
        connections = set(self._connections.values())
        if exclude:
            connections.discard(exclude)

        return await self._send_many(connections, message)
