"""Task API endpoints.

Status changes made here go through the same TaskService as the
``task:status_change`` socket event, so REST and socket clients see one
persisted-then-broadcast sequence. All endpoints require authentication.
"""

from typing import Annotated, List

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ..models.task import Task
from ..schemas.task import CommentResponse, TaskResponse, TaskStatusUpdate
from ..schemas.user import Identity
from ..services.auth_service import get_current_user
from ..services.gateway import PersistenceGateway, get_gateway
from ..websocket.errors import RealtimeError
from ..websocket.hub import RealtimeHub, get_hub

router = APIRouter(prefix="/api/tasks", tags=["Tasks"])


async def get_accessible_task(
    task_id: int,
    current_user: Identity,
    hub: RealtimeHub,
) -> Task:
    """
    Load a task the user may view.

    Raises:
        HTTPException: 404 if missing, 403 if the user has no access
    """
    task = await hub.gateway.get_task(task_id)
    if task is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Task not found",
        )
    if not await hub.permissions.can_access_task(current_user, task):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Access denied to task",
        )
    return task


@router.get(
    "/{task_id}",
    response_model=TaskResponse,
    summary="Get a task by ID",
    responses={
        403: {"description": "Access denied to task"},
        404: {"description": "Task not found"},
    },
)
async def get_task(
    task_id: int,
    current_user: Annotated[Identity, Depends(get_current_user)],
    hub: RealtimeHub = Depends(get_hub),
) -> TaskResponse:
    """Get a task the authenticated user may view."""
    task = await get_accessible_task(task_id, current_user, hub)
    return TaskResponse.model_validate(task)


@router.patch(
    "/{task_id}/status",
    response_model=TaskResponse,
    summary="Change a task's status",
    responses={
        403: {"description": "Only the creator, the assignee or a manager may change status"},
        404: {"description": "Task not found"},
    },
)
async def update_task_status(
    task_id: int,
    status_update: TaskStatusUpdate,
    current_user: Annotated[Identity, Depends(get_current_user)],
    hub: RealtimeHub = Depends(get_hub),
) -> TaskResponse:
    """
    Move a task to a new status and broadcast ``task:status_changed``
    to the task and project rooms.
    """
    try:
        task = await hub.tasks.change_status(current_user, task_id, status_update.status)
    except RealtimeError as e:
        raise HTTPException(status_code=e.http_status, detail=e.message)
    return TaskResponse.model_validate(task)


@router.get(
    "/{task_id}/comments",
    response_model=List[CommentResponse],
    summary="List a task's comments",
    responses={
        403: {"description": "Access denied to task"},
        404: {"description": "Task not found"},
    },
)
async def list_task_comments(
    task_id: int,
    current_user: Annotated[Identity, Depends(get_current_user)],
    gateway: PersistenceGateway = Depends(get_gateway),
    hub: RealtimeHub = Depends(get_hub),
    limit: int = Query(100, ge=1, le=500, description="Maximum number of comments"),
) -> List[CommentResponse]:
    """List comments on a task, oldest first."""
    await get_accessible_task(task_id, current_user, hub)
    comments = await gateway.list_comments(task_id, limit=limit)
    return [CommentResponse.model_validate(c) for c in comments]
