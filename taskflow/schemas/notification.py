"""Pydantic schemas for Notification model validation."""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class NotificationType(str, Enum):
    """Notification type enumeration."""

    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"
    TASK = "task"
    PROJECT = "project"
    COMMENT = "comment"
    PROJECT_INVITATION = "project_invitation"
    PROJECT_MESSAGE = "project_message"
    TASK_ASSIGNED = "task_assigned"
    TASK_COMPLETED = "task_completed"
    TEAM_MENTION = "team_mention"
    MENTION = "mention"
    DEADLINE_REMINDER = "deadline_reminder"
    TASK_OVERDUE = "task_overdue"
    MEMBER_ADDED = "member_added"
    SYSTEM = "system"


class NotificationPriority(str, Enum):
    """Notification priority, also used for list ordering."""

    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class NotificationBase(BaseModel):
    """Base schema with common notification fields."""

    type: NotificationType = Field(
        ...,
        description="Type of notification",
        examples=["task_assigned", "project_message"],
    )
    title: str = Field(
        ...,
        min_length=1,
        max_length=255,
        description="Notification title",
        examples=["New task assigned to you"],
    )
    message: Optional[str] = Field(
        None,
        description="Detailed notification message",
    )
    data: dict[str, Any] = Field(
        default_factory=dict,
        description="Structured payload for the client",
    )
    project_id: Optional[int] = Field(None, description="Linked project")
    task_id: Optional[int] = Field(None, description="Linked task")
    message_id: Optional[int] = Field(None, description="Linked project message")
    action_url: Optional[str] = Field(None, max_length=500, description="Client route")
    priority: NotificationPriority = Field(
        NotificationPriority.NORMAL,
        description="Delivery priority",
    )


class NotificationCreate(NotificationBase):
    """Schema for creating a new notification."""

    user_id: int = Field(
        ...,
        description="ID of the user receiving the notification",
    )


class NotificationResponse(NotificationBase):
    """Schema for notification response."""

    model_config = ConfigDict(from_attributes=True)

    id: int = Field(..., description="Unique notification identifier")
    user_id: int = Field(..., description="ID of the recipient")
    read_at: Optional[datetime] = Field(None, description="When it was read")
    is_read: bool = Field(False, description="Whether the notification has been read")
    created_at: datetime = Field(..., description="When the notification was created")


class NotificationCount(BaseModel):
    """Schema for notification count response."""

    total: int = Field(..., ge=0, description="Total number of notifications")
    unread: int = Field(..., ge=0, description="Number of unread notifications")
