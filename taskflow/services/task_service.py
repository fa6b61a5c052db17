"""Task status changes: the one path that persists and then broadcasts.

Both the ``task:status_change`` socket event and ``PATCH /api/tasks/{id}/status``
go through TaskService.change_status, so a status change is always written
to the store before any client hears about it.
"""

import logging
from datetime import datetime
from typing import Optional

from ..models.task import Task
from ..schemas.task import TaskStatus
from ..schemas.user import Identity
from ..websocket.errors import AuthorizationError, NotFoundError
from ..websocket.events import OutboundEvent, make_event
from ..websocket.manager import ConnectionManager, get_project_room, get_task_room
from .gateway import PersistenceGateway
from .permission_service import PermissionService

logger = logging.getLogger(__name__)


class TaskService:
    """Authorizes, persists and broadcasts task status changes."""

    def __init__(
        self,
        gateway: PersistenceGateway,
        manager: ConnectionManager,
        permissions: PermissionService,
    ) -> None:
        self._gateway = gateway
        self._manager = manager
        self._permissions = permissions

    async def change_status(
        self,
        identity: Identity,
        task_id: int,
        new_status: TaskStatus,
        reported_old_status: Optional[str] = None,
    ) -> Task:
        """
        Move a task to a new status.

        The ``oldStatus`` broadcast is the status that was persisted before
        this change, not whatever the client believed it to be.

        Args:
            identity: The acting user
            task_id: The task to update
            new_status: Target status
            reported_old_status: The status the client thought the task had

        Returns:
            The updated task

        Raises:
            NotFoundError: The task does not exist
            AuthorizationError: The user is neither creator, assignee nor elevated
        """
        task = await self._gateway.get_task(task_id)
        if task is None:
            raise NotFoundError("task not found")
        if not self._permissions.can_change_task_status(identity, task):
            logger.warning(f"User {identity.id} may not change status of task {task_id}")
            raise AuthorizationError("permission denied", code="PERMISSION_DENIED")

        old_status = task.status
        if reported_old_status is not None and reported_old_status != old_status:
            logger.debug(
                f"Task {task_id}: client reported old status {reported_old_status!r}, "
                f"stored status is {old_status!r}"
            )

        updated = await self._gateway.update_task_status(task_id, new_status.value)
        if updated is None:
            raise NotFoundError("task not found")

        rooms = [get_task_room(task_id)]
        if updated.project_id is not None:
            rooms.append(get_project_room(updated.project_id))

        await self._manager.broadcast_to_rooms(
            rooms,
            make_event(OutboundEvent.TASK_STATUS_CHANGED, {
                "taskId": task_id,
                "projectId": updated.project_id,
                "oldStatus": old_status,
                "status": updated.status,
                "changedBy": identity.public(),
                "timestamp": (updated.updated_at or datetime.utcnow()).isoformat(),
            }),
        )

        logger.info(
            f"Task {task_id} status changed {old_status} -> {updated.status} by user {identity.id}"
        )
        return updated
