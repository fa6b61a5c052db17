"""Project chat API endpoints.

A posted message is persisted, broadcast to the project room as
``project:message_received`` and turned into a ``project_message``
notification for every other project member. Edits, deletions, reaction
changes and archiving are broadcast to the same room.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Annotated, Any, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ..models.project import Project
from ..models.project_message import ProjectMessage
from ..schemas.notification import NotificationBase, NotificationType
from ..schemas.project_message import (
    ArchiveMessagesRequest,
    ArchiveMessagesResponse,
    ProjectMessageCreate,
    ProjectMessageResponse,
    ProjectMessageUpdate,
    ReactionCreate,
    ReactionListResponse,
)
from ..schemas.user import Identity
from ..services.auth_service import get_current_user
from ..websocket.events import OutboundEvent, make_event
from ..websocket.hub import RealtimeHub, get_hub
from ..websocket.manager import get_project_room

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/projects", tags=["Project Messages"])

# Characters of the message body quoted in the notification
PREVIEW_LENGTH = 100
# Age of the messages archived when no cutoff is given
DEFAULT_ARCHIVE_AGE_DAYS = 30


async def verify_project_access(
    project_id: int,
    current_user: Identity,
    hub: RealtimeHub,
) -> Project:
    """
    Verify that the project exists and the user owns or belongs to it.

    Raises:
        HTTPException: 404 if missing, 403 if not a member
    """
    project = await hub.gateway.get_project(project_id)
    if project is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Project not found",
        )
    if not await hub.permissions.can_access_project(current_user, project_id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Access denied to project",
        )
    return project


def serialize_project_message(row: ProjectMessage) -> dict[str, Any]:
    """Wire form of a chat message with its author."""
    author = row.author
    return {
        "id": row.id,
        "projectId": row.project_id,
        "userId": row.user_id,
        "message": row.message,
        "messageType": row.message_type,
        "replyTo": row.reply_to,
        "isEdited": bool(row.is_edited),
        "editedAt": row.edited_at.isoformat() if row.edited_at else None,
        "createdAt": row.created_at.isoformat(),
        "author": {"id": author.id, "name": author.name, "avatar": author.avatar} if author else None,
    }


def _validated_body(message: str, hub: RealtimeHub) -> str:
    """Strip a message body and enforce the configured length limits."""
    body = message.strip()
    if not body:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Message must not be blank",
        )
    max_length = hub.settings.project_message_max_length
    if len(body) > max_length:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Message exceeds {max_length} characters",
        )
    return body


async def _get_message_or_404(project_id: int, message_id: int, hub: RealtimeHub) -> ProjectMessage:
    message = await hub.gateway.get_project_message(project_id, message_id)
    if message is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Message not found",
        )
    return message


@router.get(
    "/{project_id}/messages",
    response_model=List[ProjectMessageResponse],
    summary="List project chat messages",
)
async def list_project_messages(
    project_id: int,
    current_user: Annotated[Identity, Depends(get_current_user)],
    hub: RealtimeHub = Depends(get_hub),
    skip: int = Query(0, ge=0, description="Number of records to skip"),
    limit: int = Query(50, ge=1, le=100, description="Maximum number of records to return"),
) -> List[ProjectMessageResponse]:
    """List non-archived messages of a project, newest first."""
    await verify_project_access(project_id, current_user, hub)
    messages = await hub.gateway.list_project_messages(project_id, skip=skip, limit=limit)
    return [ProjectMessageResponse.model_validate(m) for m in messages]


@router.post(
    "/{project_id}/messages",
    response_model=ProjectMessageResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Post a project chat message",
)
async def create_project_message(
    project_id: int,
    message_data: ProjectMessageCreate,
    current_user: Annotated[Identity, Depends(get_current_user)],
    hub: RealtimeHub = Depends(get_hub),
) -> ProjectMessageResponse:
    """Post a message, broadcast it and notify the other project members."""
    project = await verify_project_access(project_id, current_user, hub)

    body = _validated_body(message_data.message, hub)

    row = await hub.gateway.create_project_message(
        project_id,
        current_user.id,
        body,
        message_type=message_data.message_type,
        reply_to=message_data.reply_to,
    )
    response = ProjectMessageResponse.model_validate(row)

    await hub.manager.broadcast_to_room(
        get_project_room(project_id),
        make_event(OutboundEvent.PROJECT_MESSAGE_RECEIVED, {
            "projectId": project_id,
            "message": serialize_project_message(row),
        }),
    )

    preview = body if len(body) <= PREVIEW_LENGTH else body[:PREVIEW_LENGTH] + "..."
    await hub.notifications.notify_project_members(
        project_id,
        NotificationBase(
            type=NotificationType.PROJECT_MESSAGE,
            title=f"New message in {project.name}",
            message=f"{current_user.name}: {preview}",
            data={"senderId": current_user.id, "senderName": current_user.name},
            message_id=row.id,
            action_url=f"/projects/{project_id}/messages",
        ),
        exclude_user_id=current_user.id,
    )

    logger.info(f"Project message {row.id} posted in project {project_id} by user {current_user.id}")
    return response


@router.put(
    "/{project_id}/messages/{message_id}",
    response_model=ProjectMessageResponse,
    summary="Edit a project chat message",
    responses={
        400: {"description": "Only text messages can be edited"},
        403: {"description": "Not the author of the message"},
        404: {"description": "Project or message not found"},
    },
)
async def update_project_message(
    project_id: int,
    message_id: int,
    message_data: ProjectMessageUpdate,
    current_user: Annotated[Identity, Depends(get_current_user)],
    hub: RealtimeHub = Depends(get_hub),
) -> ProjectMessageResponse:
    """
    Replace the body of one of the caller's own text messages.

    The edited message is broadcast to the project room as
    ``project:message_edited``.
    """
    await verify_project_access(project_id, current_user, hub)
    body = _validated_body(message_data.message, hub)
    existing = await _get_message_or_404(project_id, message_id, hub)

    if existing.user_id != current_user.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You can only edit your own messages",
        )
    if existing.message_type != "text":
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Only text messages can be edited",
        )

    row = await hub.gateway.update_project_message(message_id, body)
    if row is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Message not found",
        )

    await hub.manager.broadcast_to_room(
        get_project_room(project_id),
        make_event(OutboundEvent.PROJECT_MESSAGE_EDITED, {
            "projectId": project_id,
            "message": serialize_project_message(row),
        }),
    )

    logger.info(f"Project message {message_id} edited by user {current_user.id}")
    return ProjectMessageResponse.model_validate(row)


@router.delete(
    "/{project_id}/messages/{message_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a project chat message",
    responses={
        403: {"description": "Not the author and not a project admin"},
        404: {"description": "Project or message not found"},
    },
)
async def delete_project_message(
    project_id: int,
    message_id: int,
    current_user: Annotated[Identity, Depends(get_current_user)],
    hub: RealtimeHub = Depends(get_hub),
) -> None:
    """
    Delete a message together with its reactions.

    Allowed for the author, the project owner and members holding the
    admin or manager project role.
    """
    await verify_project_access(project_id, current_user, hub)
    existing = await _get_message_or_404(project_id, message_id, hub)

    if existing.user_id != current_user.id and not await hub.gateway.is_project_admin(
        current_user.id, project_id
    ):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You can only delete your own messages",
        )

    await hub.gateway.delete_project_message(message_id)

    await hub.manager.broadcast_to_room(
        get_project_room(project_id),
        make_event(OutboundEvent.PROJECT_MESSAGE_DELETED, {
            "projectId": project_id,
            "messageId": message_id,
        }),
    )
    logger.info(f"Project message {message_id} deleted by user {current_user.id}")


@router.post(
    "/{project_id}/messages/{message_id}/reactions",
    response_model=ReactionListResponse,
    summary="Toggle a reaction on a project chat message",
)
async def toggle_reaction(
    project_id: int,
    message_id: int,
    reaction: ReactionCreate,
    current_user: Annotated[Identity, Depends(get_current_user)],
    hub: RealtimeHub = Depends(get_hub),
) -> ReactionListResponse:
    """Add the reaction, or remove it if the caller already reacted with that emoji."""
    await verify_project_access(project_id, current_user, hub)
    await _get_message_or_404(project_id, message_id, hub)

    added = await hub.gateway.toggle_message_reaction(message_id, current_user.id, reaction.emoji)
    reactions = await hub.gateway.list_message_reactions(message_id)

    await hub.manager.broadcast_to_room(
        get_project_room(project_id),
        make_event(OutboundEvent.PROJECT_MESSAGE_REACTION_UPDATED, {
            "projectId": project_id,
            "messageId": message_id,
            "reactions": reactions,
        }),
    )

    logger.debug(
        f"Reaction {reaction.emoji} {'added to' if added else 'removed from'} "
        f"message {message_id} by user {current_user.id}"
    )
    return ReactionListResponse(reactions=reactions)


@router.post(
    "/{project_id}/messages/archive",
    response_model=ArchiveMessagesResponse,
    summary="Archive old project chat messages",
    responses={403: {"description": "Only project admins can archive messages"}},
)
async def archive_project_messages(
    project_id: int,
    current_user: Annotated[Identity, Depends(get_current_user)],
    archive_data: Optional[ArchiveMessagesRequest] = None,
    hub: RealtimeHub = Depends(get_hub),
) -> ArchiveMessagesResponse:
    """
    Hide messages posted before a cutoff from the default listing.

    Args:
        archive_data: Optional cutoff; without one, messages older than
            30 days are archived
    """
    project = await hub.gateway.get_project(project_id)
    if project is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Project not found",
        )
    if not await hub.gateway.is_project_admin(current_user.id, project_id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only project admins can archive messages",
        )

    before = archive_data.before_date if archive_data else None
    if before is None:
        before = datetime.utcnow() - timedelta(days=DEFAULT_ARCHIVE_AGE_DAYS)
    elif before.tzinfo is not None:
        before = before.astimezone(timezone.utc).replace(tzinfo=None)

    archived = await hub.gateway.archive_project_messages(project_id, before)

    await hub.manager.broadcast_to_room(
        get_project_room(project_id),
        make_event(OutboundEvent.PROJECT_MESSAGES_ARCHIVED, {
            "projectId": project_id,
            "archivedCount": archived,
            "before": before.isoformat(),
        }),
    )

    logger.info(
        f"{archived} message(s) archived in project {project_id} by user {current_user.id}"
    )
    return ArchiveMessagesResponse(archived=archived)
