"""Presence registry for real-time collaboration.

In-memory record of which users are online, their self-reported status and
the rooms each of them has joined. There is at most one entry per user: a
second connection for the same user replaces the first (last connect wins).

The registry is owned by the RealtimeHub and injected into its collaborators.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional, Union

from .errors import EventValidationError

if TYPE_CHECKING:
    from .manager import WebSocketConnection

logger = logging.getLogger(__name__)


class UserStatus(str, Enum):
    """Self-reported user status."""

    ONLINE = "online"
    AWAY = "away"
    BUSY = "busy"
    OFFLINE = "offline"


@dataclass
class PresenceEntry:
    """Presence of a single connected user."""

    user_id: int
    connection: "WebSocketConnection"
    status: UserStatus = UserStatus.ONLINE
    connected_at: datetime = field(default_factory=datetime.utcnow)
    rooms: set[str] = field(default_factory=set)

    def snapshot(self) -> dict[str, Any]:
        """Public view of the entry for online lists."""
        identity = self.connection.identity
        return {
            "userId": self.user_id,
            "user": identity.public(),
            "status": self.status.value,
            "connectedAt": self.connected_at.isoformat(),
        }


class PresenceRegistry:
    """
    Map of user id to PresenceEntry.

    Mutations happen under an asyncio lock; reads return copies so callers
    never observe an entry half way through a join or leave.
    """

    def __init__(self) -> None:
        self._entries: dict[int, PresenceEntry] = {}
        self._lock: Optional[asyncio.Lock] = None

    def _get_lock(self) -> asyncio.Lock:
        """Get or create the asyncio lock (lazy initialization)."""
        if self._lock is None:
            self._lock = asyncio.Lock()
        return self._lock

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, user_id: object) -> bool:
        return user_id in self._entries

    def get(self, user_id: int) -> Optional[PresenceEntry]:
        return self._entries.get(user_id)

    def is_online(self, user_id: int) -> bool:
        return user_id in self._entries

    async def register(self, connection: "WebSocketConnection") -> Optional[PresenceEntry]:
        """
        Record a connection as its user's presence.

        Args:
            connection: The newly accepted connection

        Returns:
            The entry that was replaced, if the user was already online
        """
        user_id = connection.user_id
        async with self._get_lock():
            previous = self._entries.get(user_id)
            self._entries[user_id] = PresenceEntry(
                user_id=user_id,
                connection=connection,
                connected_at=connection.connected_at,
            )

        if previous is not None:
            logger.info(f"Presence for user {user_id} replaced by a newer connection")
        return previous

    async def deregister(
        self,
        user_id: int,
        connection: Optional["WebSocketConnection"] = None,
    ) -> Optional[PresenceEntry]:
        """
        Remove a user's presence.

        Args:
            user_id: The user going offline
            connection: If given, only remove the entry when it still belongs
                to this connection. A connection that was replaced must not
                take the newer one offline.

        Returns:
            The removed entry, or None if nothing was removed
        """
        async with self._get_lock():
            entry = self._entries.get(user_id)
            if entry is None:
                return None
            if connection is not None and entry.connection is not connection:
                return None
            del self._entries[user_id]
            return entry

    async def update_status(
        self,
        user_id: int,
        status: Union[UserStatus, str],
    ) -> PresenceEntry:
        """
        Change a user's self-reported status.

        Raises:
            EventValidationError: Unknown status value or user not online
        """
        try:
            new_status = UserStatus(status)
        except ValueError:
            raise EventValidationError(f"invalid status: {status}")

        async with self._get_lock():
            entry = self._entries.get(user_id)
            if entry is None:
                raise EventValidationError("user is not online")
            entry.status = new_status
            return entry

    async def add_room(
        self,
        user_id: int,
        room: str,
        connection: Optional["WebSocketConnection"] = None,
    ) -> bool:
        """Record a joined room; returns True if it was not already recorded."""
        async with self._get_lock():
            entry = self._entries.get(user_id)
            if entry is None:
                return False
            if connection is not None and entry.connection is not connection:
                return False
            if room in entry.rooms:
                return False
            entry.rooms.add(room)
            return True

    async def remove_room(
        self,
        user_id: int,
        room: str,
        connection: Optional["WebSocketConnection"] = None,
    ) -> bool:
        """Forget a joined room; returns True if it was recorded."""
        async with self._get_lock():
            entry = self._entries.get(user_id)
            if entry is None or room not in entry.rooms:
                return False
            if connection is not None and entry.connection is not connection:
                return False
            entry.rooms.discard(room)
            return True

    def joined_rooms(self, user_id: int) -> set[str]:
        """Copy of the rooms a user has joined."""
        entry = self._entries.get(user_id)
        return set(entry.rooms) if entry else set()

    def list_online(self, exclude_user_id: Optional[int] = None) -> list[dict[str, Any]]:
        """Snapshot of all online users, optionally without one of them."""
        return [
            entry.snapshot()
            for user_id, entry in list(self._entries.items())
            if user_id != exclude_user_id
        ]
