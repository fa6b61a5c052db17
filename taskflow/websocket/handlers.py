"""WebSocket event handlers and the inbound event router.

Every inbound frame is parsed into one of the models in ``events`` and
dispatched through a table keyed by InboundEvent. The table is checked
for completeness when the router is built, so adding an event kind
without a handler fails at startup rather than at runtime.

Handlers raise RealtimeError subclasses; ``EventRouter.dispatch`` turns
them (and unexpected failures) into an ``error`` event sent back to the
offending connection only.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional

from sqlalchemy.exc import SQLAlchemyError

from ..config import Settings, settings
from ..services.gateway import PersistenceGateway
from ..services.permission_service import PermissionService
from ..services.task_service import TaskService
from .errors import AuthorizationError, EventValidationError, NotFoundError, RealtimeError, UpstreamError
from .events import (
    CommentAdd,
    InboundEvent,
    NotificationMarkRead,
    OutboundEvent,
    Ping,
    ProjectJoin,
    ProjectLeave,
    TaskJoin,
    TaskLeave,
    TaskStatusChange,
    TaskStopTyping,
    TaskTyping,
    UserStatusUpdate,
    make_event,
    parse_inbound,
)
from .manager import ConnectionManager, WebSocketConnection, get_project_room, get_task_room
from .presence import PresenceRegistry
from .rooms import RoomCoordinator

logger = logging.getLogger(__name__)

Handler = Callable[[WebSocketConnection, Any], Awaitable[Any]]


@dataclass
class BroadcastResult:
    """Result of a broadcast operation."""

    room_id: str
    recipients: int
    message_type: str
    success: bool = True


def serialize_comment(comment: Any) -> dict[str, Any]:
    """Wire form of a comment row with its author."""
    author = comment.author
    return {
        "id": comment.id,
        "taskId": comment.task_id,
        "userId": comment.user_id,
        "content": comment.content,
        "createdAt": comment.created_at.isoformat() if comment.created_at else None,
        "author": (
            {"id": author.id, "name": author.name, "avatar": author.avatar}
            if author is not None else None
        ),
    }


class EventRouter:
    """Dispatches parsed inbound events to their handlers."""

    def __init__(
        self,
        gateway: PersistenceGateway,
        manager: ConnectionManager,
        presence: PresenceRegistry,
        rooms: RoomCoordinator,
        permissions: PermissionService,
        tasks: TaskService,
        config: Settings = settings,
    ) -> None:
        self._gateway = gateway
        self._manager = manager
        self._presence = presence
        self._rooms = rooms
        self._permissions = permissions
        self._tasks = tasks
        self._settings = config

        self._handlers: dict[InboundEvent, Handler] = {
            InboundEvent.PROJECT_JOIN: self.handle_project_join,
            InboundEvent.PROJECT_LEAVE: self.handle_project_leave,
            InboundEvent.TASK_JOIN: self.handle_task_join,
            InboundEvent.TASK_LEAVE: self.handle_task_leave,
            InboundEvent.TASK_STATUS_CHANGE: self.handle_status_change,
            InboundEvent.TASK_TYPING: self.handle_typing,
            InboundEvent.TASK_STOP_TYPING: self.handle_stop_typing,
            InboundEvent.COMMENT_ADD: self.handle_comment_add,
            InboundEvent.USER_STATUS_UPDATE: self.handle_user_status_update,
            InboundEvent.NOTIFICATION_MARK_READ: self.handle_notification_mark_read,
            InboundEvent.PING: self.handle_ping,
        }
        missing = set(InboundEvent) - set(self._handlers)
        if missing:
            raise RuntimeError(
                f"No handler registered for: {', '.join(sorted(m.value for m in missing))}"
            )

    async def dispatch(self, connection: WebSocketConnection, data: Any) -> Optional[BroadcastResult]:
        """
        Route one decoded inbound frame.

        Never raises: failures become a scoped error event so the
        connection stays open.

        Args:
            connection: The connection that sent the frame
            data: The decoded JSON value

        Returns:
            The broadcast outcome for relayed events, otherwise None
        """
        event_type = data.get("type") if isinstance(data, dict) else None
        logger.debug(f"Routing message: user={connection.user_id}, type={event_type}")

        result = None
        try:
            event = parse_inbound(data)
            result = await self._handlers[event.kind](connection, event)
        except RealtimeError as e:
            logger.info(
                f"Event {event_type} from user {connection.user_id} rejected: "
                f"{e.code} {e.message}"
            )
            await self.send_error(connection, e, event_type)
        except SQLAlchemyError as e:
            logger.error(f"Database error handling {event_type} for user {connection.user_id}: {e}")
            await self.send_error(connection, UpstreamError("internal server error"), event_type)
        except Exception as e:
            logger.exception(f"Unexpected error handling {event_type} for user {connection.user_id}: {e}")
            await self.send_error(connection, UpstreamError("internal server error"), event_type)

        if isinstance(result, BroadcastResult):
            logger.debug(
                f"Broadcast {result.message_type} to {result.room_id}: "
                f"{result.recipients} recipient(s), success={result.success}"
            )
            return result
        return None

    async def send_error(
        self,
        connection: WebSocketConnection,
        error: RealtimeError,
        event_type: Optional[str] = None,
    ) -> None:
        """Send a scoped error event to one connection."""
        payload = error.to_payload()
        if event_type:
            payload["event"] = event_type
        await self._manager.send_personal(connection, make_event(OutboundEvent.ERROR, payload))

    # ------------------------------------------------------------------
    # Rooms
    # ------------------------------------------------------------------

    async def handle_project_join(self, connection: WebSocketConnection, event: ProjectJoin) -> None:
        await self._rooms.join_project_room(connection, event.data.project_id)

    async def handle_project_leave(self, connection: WebSocketConnection, event: ProjectLeave) -> None:
        await self._rooms.leave_project_room(connection, event.data.project_id)

    async def handle_task_join(self, connection: WebSocketConnection, event: TaskJoin) -> None:
        await self._rooms.join_task_room(connection, event.data.task_id)

    async def handle_task_leave(self, connection: WebSocketConnection, event: TaskLeave) -> None:
        await self._rooms.leave_task_room(connection, event.data.task_id)

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    async def handle_status_change(
        self,
        connection: WebSocketConnection,
        event: TaskStatusChange,
    ) -> None:
        """Persist then broadcast a status change through TaskService."""
        await self._tasks.change_status(
            connection.identity,
            event.data.task_id,
            event.data.status,
            reported_old_status=event.data.old_status,
        )

    async def handle_typing(self, connection: WebSocketConnection, event: TaskTyping) -> BroadcastResult:
        """
        Relay a typing indicator to the rest of the task room.

        Typing events are not authorized or persisted; a connection outside
        the room simply reaches nobody who cares.
        """
        return await self._relay_typing(connection, event.data.task_id, OutboundEvent.TASK_USER_TYPING)

    async def handle_stop_typing(
        self,
        connection: WebSocketConnection,
        event: TaskStopTyping,
    ) -> BroadcastResult:
        return await self._relay_typing(
            connection, event.data.task_id, OutboundEvent.TASK_USER_STOPPED_TYPING
        )

    async def _relay_typing(
        self,
        connection: WebSocketConnection,
        task_id: int,
        outbound: OutboundEvent,
    ) -> BroadcastResult:
        room_id = get_task_room(task_id)
        recipients = await self._manager.broadcast_to_room(
            room_id,
            make_event(outbound, {
                "taskId": task_id,
                "userId": connection.user_id,
                "userName": connection.identity.name,
            }),
            exclude=connection,
        )
        return BroadcastResult(room_id=room_id, recipients=recipients, message_type=outbound.value)

    # ------------------------------------------------------------------
    # Comments
    # ------------------------------------------------------------------

    async def handle_comment_add(self, connection: WebSocketConnection, event: CommentAdd) -> BroadcastResult:
        """
        Persist a comment and broadcast it to the task and project rooms.

        The author receives the broadcast too, as confirmation.
        """
        identity = connection.identity
        task_id = event.data.task_id

        content = event.data.content.strip()
        if not content:
            raise EventValidationError("comment content is required")
        if len(content) > self._settings.comment_max_length:
            raise EventValidationError(
                f"comment exceeds {self._settings.comment_max_length} characters"
            )

        task = await self._gateway.get_task(task_id)
        if task is None:
            raise NotFoundError("task not found")
        if not await self._permissions.can_access_task(identity, task):
            raise AuthorizationError("access denied to task")

        try:
            comment = await self._gateway.insert_comment(task_id, identity.id, content)
        except SQLAlchemyError as e:
            logger.error(f"Failed to save comment on task {task_id}: {e}")
            raise UpstreamError("failed to save comment") from e

        rooms = [get_task_room(task_id)]
        if task.project_id is not None:
            rooms.append(get_project_room(task.project_id))

        recipients = await self._manager.broadcast_to_rooms(
            rooms,
            make_event(OutboundEvent.COMMENT_ADDED, {
                "taskId": task_id,
                "projectId": task.project_id,
                "comment": serialize_comment(comment),
            }),
        )

        logger.info(
            f"Comment added: task_id={task_id}, comment_id={comment.id}, "
            f"user={identity.id}, recipients={recipients}"
        )
        return BroadcastResult(
            room_id=rooms[0],
            recipients=recipients,
            message_type=OutboundEvent.COMMENT_ADDED.value,
        )

    # ------------------------------------------------------------------
    # Presence and notifications
    # ------------------------------------------------------------------

    async def handle_user_status_update(
        self,
        connection: WebSocketConnection,
        event: UserStatusUpdate,
    ) -> None:
        """Record a self-reported status and tell every connected client."""
        entry = self._presence.get(connection.user_id)
        if entry is None or entry.connection is not connection:
            raise EventValidationError("connection is no longer active")

        entry = await self._presence.update_status(connection.user_id, event.data.status)
        await self._manager.broadcast_to_all(
            make_event(OutboundEvent.USER_STATUS_CHANGED, {
                "userId": connection.user_id,
                "status": entry.status.value,
                "timestamp": datetime.utcnow().isoformat(),
            })
        )

    async def handle_notification_mark_read(
        self,
        connection: WebSocketConnection,
        event: NotificationMarkRead,
    ) -> None:
        """Mark one of the sender's notifications read and acknowledge it."""
        notification_id = event.data.notification_id
        notification = await self._gateway.mark_notification_read(notification_id, connection.user_id)
        if notification is None:
            raise NotFoundError("notification not found")

        await self._manager.send_personal(
            connection,
            make_event(OutboundEvent.NOTIFICATION_MARKED_READ, {
                "notificationId": notification_id,
                "readAt": notification.read_at.isoformat() if notification.read_at else None,
            }),
        )

    async def handle_ping(self, connection: WebSocketConnection, event: Ping) -> None:
        await self._manager.send_personal(
            connection,
            make_event(OutboundEvent.PONG, {"timestamp": datetime.utcnow().isoformat()}),
        )
