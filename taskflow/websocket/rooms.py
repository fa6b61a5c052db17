"""Room coordination: authorize and perform project/task room joins and leaves.

A join is authorized against the store, then recorded in both the
connection manager (for fan-out) and the presence registry (for the
user's joined-room list). Joining a room twice is harmless: the joiner is
acknowledged again but the room is only told about a user once.
"""

import logging
from datetime import datetime

from ..services.gateway import PersistenceGateway
from ..services.permission_service import PermissionService
from .errors import AuthorizationError, NotFoundError
from .events import OutboundEvent, make_event
from .manager import ConnectionManager, WebSocketConnection, get_project_room, get_task_room
from .presence import PresenceRegistry

logger = logging.getLogger(__name__)


class RoomCoordinator:
    """Owns the join/leave flow for project and task rooms."""

    def __init__(
        self,
        gateway: PersistenceGateway,
        manager: ConnectionManager,
        presence: PresenceRegistry,
        permissions: PermissionService,
    ) -> None:
        self._gateway = gateway
        self._manager = manager
        self._presence = presence
        self._permissions = permissions

    async def join_project_room(self, connection: WebSocketConnection, project_id: int) -> bool:
        """
        Join the room of a project the user owns or belongs to.

        Args:
            connection: The requesting connection
            project_id: The project to join

        Returns:
            True if the connection was newly added to the room

        Raises:
            NotFoundError: The project does not exist
            AuthorizationError: The user is not a member of the project
        """
        identity = connection.identity
        project = await self._gateway.get_project(project_id)
        if project is None:
            raise NotFoundError("project not found")
        if not await self._permissions.can_access_project(identity, project_id):
            logger.warning(f"User {identity.id} denied access to project {project_id}")
            raise AuthorizationError("access denied to project")

        room = get_project_room(project_id)
        added = await self._join(connection, room)
        if not self._manager.is_active(connection):
            return False

        if added:
            await self._manager.broadcast_to_room(
                room,
                make_event(OutboundEvent.PROJECT_USER_JOINED, {
                    "projectId": project_id,
                    "userId": identity.id,
                    "user": identity.public(),
                    "userCount": self._manager.get_room_count(room),
                    "timestamp": datetime.utcnow().isoformat(),
                }),
                exclude=connection,
            )

        await self._manager.send_personal(
            connection,
            make_event(OutboundEvent.PROJECT_JOINED, {
                "projectId": project_id,
                "projectName": project.name,
                "userCount": self._manager.get_room_count(room),
                "users": self._manager.get_room_users(room),
            }),
        )
        logger.info(f"User {identity.id} joined project room {project_id}")
        return added

    async def leave_project_room(self, connection: WebSocketConnection, project_id: int) -> bool:
        """
        Leave a project room. Leaving a room never joined is acknowledged silently.

        Returns:
            True if the connection was a member
        """
        room = get_project_room(project_id)
        removed = await self._leave(connection, room)

        if removed:
            await self._manager.broadcast_to_room(
                room,
                make_event(OutboundEvent.PROJECT_USER_LEFT, {
                    "projectId": project_id,
                    "userId": connection.user_id,
                    "userCount": self._manager.get_room_count(room),
                    "timestamp": datetime.utcnow().isoformat(),
                }),
            )

        await self._manager.send_personal(
            connection,
            make_event(OutboundEvent.PROJECT_LEFT, {"projectId": project_id}),
        )
        return removed

    async def join_task_room(self, connection: WebSocketConnection, task_id: int) -> bool:
        """
        Join the room of a task the user may access.

        Raises:
            NotFoundError: The task does not exist
            AuthorizationError: The user may not view the task
        """
        identity = connection.identity
        task = await self._gateway.get_task(task_id)
        if task is None:
            raise NotFoundError("task not found")
        if not await self._permissions.can_access_task(identity, task):
            logger.warning(f"User {identity.id} denied access to task {task_id}")
            raise AuthorizationError("access denied to task")

        room = get_task_room(task_id)
        added = await self._join(connection, room)
        if not self._manager.is_active(connection):
            return False

        if added:
            await self._manager.broadcast_to_room(
                room,
                make_event(OutboundEvent.TASK_USER_JOINED, {
                    "taskId": task_id,
                    "userId": identity.id,
                    "user": identity.public(),
                    "timestamp": datetime.utcnow().isoformat(),
                }),
                exclude=connection,
            )

        await self._manager.send_personal(
            connection,
            make_event(OutboundEvent.TASK_JOINED, {
                "taskId": task_id,
                "projectId": task.project_id,
                "users": self._manager.get_room_users(room),
            }),
        )
        logger.info(f"User {identity.id} joined task room {task_id}")
        return added

    async def leave_task_room(self, connection: WebSocketConnection, task_id: int) -> bool:
        """Leave a task room; see leave_project_room."""
        room = get_task_room(task_id)
        removed = await self._leave(connection, room)

        if removed:
            await self._manager.broadcast_to_room(
                room,
                make_event(OutboundEvent.TASK_USER_LEFT, {
                    "taskId": task_id,
                    "userId": connection.user_id,
                    "timestamp": datetime.utcnow().isoformat(),
                }),
            )

        await self._manager.send_personal(
            connection,
            make_event(OutboundEvent.TASK_LEFT, {"taskId": task_id}),
        )
        return removed

    async def _join(self, connection: WebSocketConnection, room: str) -> bool:
        added = await self._manager.join_room(connection, room)
        if added:
            await self._presence.add_room(connection.user_id, room, connection)
        return added

    async def _leave(self, connection: WebSocketConnection, room: str) -> bool:
        removed = await self._manager.leave_room(connection, room)
        await self._presence.remove_room(connection.user_id, room, connection)
        return removed
