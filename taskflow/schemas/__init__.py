"""Pydantic schemas package for request/response validation."""

from .notification import (
    NotificationCount,
    NotificationCreate,
    NotificationPriority,
    NotificationResponse,
    NotificationType,
)
from .project_message import ProjectMessageCreate, ProjectMessageResponse
from .task import CommentResponse, TaskResponse, TaskStatus, TaskStatusUpdate
from .user import ELEVATED_ROLES, Identity, UserPublic, UserRole

__all__ = [
    # Notification
    "NotificationCount",
    "NotificationCreate",
    "NotificationPriority",
    "NotificationResponse",
    "NotificationType",
    # Project messages
    "ProjectMessageCreate",
    "ProjectMessageResponse",
    # Task
    "CommentResponse",
    "TaskResponse",
    "TaskStatus",
    "TaskStatusUpdate",
    # User
    "ELEVATED_ROLES",
    "Identity",
    "UserPublic",
    "UserRole",
]
