"""Notifications API endpoints.

Provides endpoints for listing and managing the authenticated user's
notifications. Read/delete changes are echoed to the user's own socket so
other views stay in sync. All endpoints require authentication.
"""

from typing import Annotated, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ..schemas.notification import (
    NotificationCount,
    NotificationCreate,
    NotificationResponse,
    NotificationType,
)
from ..schemas.user import Identity
from ..services.auth_service import get_current_user
from ..services.gateway import PersistenceGateway, get_gateway
from ..websocket.events import OutboundEvent, make_event
from ..websocket.hub import RealtimeHub, get_hub
from ..websocket.manager import get_user_room

router = APIRouter(prefix="/api/notifications", tags=["Notifications"])


# ============================================================================
# List and Count endpoints
# ============================================================================


@router.get(
    "",
    response_model=List[NotificationResponse],
    summary="List user notifications",
    responses={
        200: {"description": "List of notifications retrieved successfully"},
        401: {"description": "Not authenticated"},
    },
)
async def list_notifications(
    current_user: Annotated[Identity, Depends(get_current_user)],
    gateway: PersistenceGateway = Depends(get_gateway),
    skip: int = Query(0, ge=0, description="Number of records to skip"),
    limit: int = Query(20, ge=1, le=100, description="Maximum number of records to return"),
    unread_only: bool = Query(False, description="Return only unread notifications"),
    notification_type: Optional[NotificationType] = Query(
        None,
        alias="type",
        description="Filter by notification type",
    ),
) -> List[NotificationResponse]:
    """
    List notifications for the authenticated user.

    Returns notifications ordered by priority (urgent first), then newest first.
    """
    notifications = await gateway.list_notifications(
        current_user.id,
        skip=skip,
        limit=limit,
        unread_only=unread_only,
        notification_type=notification_type.value if notification_type else None,
    )
    return [NotificationResponse.model_validate(n) for n in notifications]


@router.get(
    "/count",
    response_model=NotificationCount,
    summary="Get notification counts",
)
async def get_notification_count(
    current_user: Annotated[Identity, Depends(get_current_user)],
    gateway: PersistenceGateway = Depends(get_gateway),
) -> NotificationCount:
    """
    Get notification counts for the authenticated user.

    Returns:
    - total: Total number of notifications
    - unread: Number of unread notifications
    """
    total, unread = await gateway.count_notifications(current_user.id)
    return NotificationCount(total=total, unread=unread)


@router.put(
    "/read-all",
    summary="Mark all notifications as read",
)
async def mark_all_read(
    current_user: Annotated[Identity, Depends(get_current_user)],
    gateway: PersistenceGateway = Depends(get_gateway),
    hub: RealtimeHub = Depends(get_hub),
) -> dict:
    """Mark every unread notification of the authenticated user as read."""
    count = await gateway.mark_all_notifications_read(current_user.id)

    await hub.manager.broadcast_to_room(
        get_user_room(current_user.id),
        make_event(OutboundEvent.NOTIFICATION_ALL_MARKED_READ, {"count": count}),
    )
    return {"updated": count}


@router.delete(
    "/read",
    summary="Delete all read notifications",
)
async def delete_read_notifications(
    current_user: Annotated[Identity, Depends(get_current_user)],
    gateway: PersistenceGateway = Depends(get_gateway),
    hub: RealtimeHub = Depends(get_hub),
) -> dict:
    """Delete every notification the authenticated user has already read."""
    count = await gateway.delete_read_notifications(current_user.id)

    await hub.manager.broadcast_to_room(
        get_user_room(current_user.id),
        make_event(OutboundEvent.NOTIFICATION_READ_CLEARED, {"count": count}),
    )
    return {"deleted": count}


# ============================================================================
# Creation (managers and admins)
# ============================================================================


@router.post(
    "",
    response_model=NotificationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Send a notification to a user",
    responses={
        403: {"description": "Only managers and admins may send notifications"},
        404: {"description": "Recipient not found"},
    },
)
async def create_notification(
    notification_data: NotificationCreate,
    current_user: Annotated[Identity, Depends(get_current_user)],
    gateway: PersistenceGateway = Depends(get_gateway),
    hub: RealtimeHub = Depends(get_hub),
) -> NotificationResponse:
    """
    Persist a notification and push it to the recipient if they are online.
    """
    if not current_user.is_elevated:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only managers and admins may send notifications",
        )

    recipient = await gateway.get_user(notification_data.user_id)
    if recipient is None or recipient.is_deleted:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Recipient not found",
        )

    delivery = await hub.notifications.deliver_notification(
        notification_data.user_id,
        notification_data,
    )
    return NotificationResponse.model_validate(delivery.notification)


# ============================================================================
# Individual notification endpoints
# ============================================================================


@router.get(
    "/{notification_id}",
    response_model=NotificationResponse,
    summary="Get a notification by ID",
    responses={404: {"description": "Notification not found"}},
)
async def get_notification(
    notification_id: int,
    current_user: Annotated[Identity, Depends(get_current_user)],
    gateway: PersistenceGateway = Depends(get_gateway),
) -> NotificationResponse:
    """
    Get a specific notification by its ID.

    Only the notification's owner can access it.
    """
    notification = await gateway.get_notification(notification_id, current_user.id)
    if notification is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Notification not found",
        )
    return NotificationResponse.model_validate(notification)


@router.put(
    "/{notification_id}/read",
    response_model=NotificationResponse,
    summary="Mark a notification as read",
    responses={404: {"description": "Notification not found"}},
)
async def mark_notification_read(
    notification_id: int,
    current_user: Annotated[Identity, Depends(get_current_user)],
    gateway: PersistenceGateway = Depends(get_gateway),
    hub: RealtimeHub = Depends(get_hub),
) -> NotificationResponse:
    """Mark a single notification as read."""
    notification = await gateway.mark_notification_read(notification_id, current_user.id)
    if notification is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Notification not found",
        )

    await hub.manager.broadcast_to_room(
        get_user_room(current_user.id),
        make_event(OutboundEvent.NOTIFICATION_MARKED_READ, {
            "notificationId": notification.id,
            "readAt": notification.read_at.isoformat() if notification.read_at else None,
        }),
    )
    return NotificationResponse.model_validate(notification)


@router.delete(
    "/{notification_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a notification",
    responses={404: {"description": "Notification not found"}},
)
async def delete_notification(
    notification_id: int,
    current_user: Annotated[Identity, Depends(get_current_user)],
    gateway: PersistenceGateway = Depends(get_gateway),
    hub: RealtimeHub = Depends(get_hub),
) -> None:
    """Delete one of the authenticated user's notifications."""
    deleted = await gateway.delete_notification(notification_id, current_user.id)
    if not deleted:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Notification not found",
        )

    await hub.manager.broadcast_to_room(
        get_user_room(current_user.id),
        make_event(OutboundEvent.NOTIFICATION_DELETED, {"notificationId": notification_id}),
    )
