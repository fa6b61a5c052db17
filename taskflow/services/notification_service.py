"""Notification bridge: persist a notification, then push it if the user is online.

Provides:
- Single-recipient delivery (persist first, then live push)
- Fan-out to every member of a project
- The camelCase wire form of a notification row

The database row is the source of truth. A live push is best effort: a user
who is offline, or whose socket drops mid-send, still finds the
notification the next time they list them.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

from ..models.notification import Notification
from ..schemas.notification import NotificationBase, NotificationCreate
from ..websocket.events import OutboundEvent, make_event
from ..websocket.manager import ConnectionManager, get_user_room
from ..websocket.presence import PresenceRegistry
from .gateway import PersistenceGateway

logger = logging.getLogger(__name__)


def serialize_notification(notification: Notification) -> dict[str, Any]:
    """Wire form of a notification row."""
    return {
        "id": notification.id,
        "userId": notification.user_id,
        "type": notification.type,
        "title": notification.title,
        "message": notification.message,
        "data": notification.data or {},
        "projectId": notification.project_id,
        "taskId": notification.task_id,
        "messageId": notification.message_id,
        "actionUrl": notification.action_url,
        "priority": notification.priority,
        "isRead": notification.read_at is not None,
        "readAt": notification.read_at.isoformat() if notification.read_at else None,
        "createdAt": notification.created_at.isoformat() if notification.created_at else None,
    }


@dataclass
class NotificationDelivery:
    """Outcome of delivering one notification."""

    notification: Notification
    delivered: bool


class NotificationBridge:
    """
    Creates notifications and delivers them over WebSocket.

    Owned by the RealtimeHub; REST routes reach it through the hub.
    """

    def __init__(
        self,
        gateway: PersistenceGateway,
        presence: PresenceRegistry,
        manager: ConnectionManager,
    ) -> None:
        self._gateway = gateway
        self._presence = presence
        self._manager = manager

    async def deliver_notification(
        self,
        user_id: int,
        notification_data: NotificationBase,
    ) -> NotificationDelivery:
        """
        Persist a notification for one user and push it if they are online.

        Args:
            user_id: Recipient
            notification_data: Notification content

        Returns:
            NotificationDelivery with the stored row and whether it was pushed
        """
        create_data = NotificationCreate(
            **notification_data.model_dump(exclude={"user_id"}),
            user_id=user_id,
        )
        notification = await self._gateway.create_notification(create_data)

        delivered = False
        if self._presence.is_online(user_id):
            sent = await self._manager.broadcast_to_room(
                get_user_room(user_id),
                make_event(OutboundEvent.NOTIFICATION_NEW, serialize_notification(notification)),
            )
            delivered = sent > 0

        logger.debug(
            f"Notification {notification.id} for user {user_id}: "
            f"{'pushed' if delivered else 'stored only'}"
        )
        return NotificationDelivery(notification=notification, delivered=delivered)

    async def notify_project_members(
        self,
        project_id: int,
        notification_data: NotificationBase,
        exclude_user_id: Optional[int] = None,
    ) -> list[NotificationDelivery]:
        """
        Deliver a notification to the owner and every member of a project.

        Args:
            project_id: The project whose members are notified
            notification_data: Notification content, linked to the project
            exclude_user_id: Typically the user who triggered the event

        Returns:
            One NotificationDelivery per recipient
        """
        member_ids = await self._gateway.list_project_member_ids(project_id)
        content = notification_data.model_copy(update={"project_id": project_id})

        deliveries = []
        for member_id in member_ids:
            if member_id == exclude_user_id:
                continue
            deliveries.append(await self.deliver_notification(member_id, content))

        logger.info(
            f"Notified {len(deliveries)} member(s) of project {project_id} "
            f"({sum(1 for d in deliveries if d.delivered)} live)"
        )
        return deliveries
