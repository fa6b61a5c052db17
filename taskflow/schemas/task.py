"""Pydantic schemas for Task status changes and Comments."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from .user import UserPublic


class TaskStatus(str, Enum):
    """Task workflow status."""

    TODO = "todo"
    IN_PROGRESS = "inprogress"
    REVIEW = "review"
    DONE = "done"


class TaskStatusUpdate(BaseModel):
    """Schema for changing a task's status."""

    status: TaskStatus = Field(
        ...,
        description="New workflow status",
        examples=["inprogress"],
    )


class TaskResponse(BaseModel):
    """Schema for task response."""

    model_config = ConfigDict(from_attributes=True)

    id: int = Field(..., description="Unique task identifier")
    title: str = Field(..., description="Task title")
    status: TaskStatus = Field(..., description="Workflow status")
    priority: str = Field(..., description="Priority level")
    assignee_id: Optional[int] = Field(None, description="Assigned user")
    created_by: Optional[int] = Field(None, description="Creating user")
    project_id: Optional[int] = Field(None, description="Parent project")
    updated_at: datetime = Field(..., description="Last update time")


class CommentResponse(BaseModel):
    """Schema for comment response."""

    model_config = ConfigDict(from_attributes=True)

    id: int = Field(..., description="Unique comment identifier")
    task_id: int = Field(..., description="Task the comment belongs to")
    user_id: int = Field(..., description="Author ID")
    content: str = Field(..., description="Comment body")
    created_at: datetime = Field(..., description="When the comment was posted")
    author: Optional[UserPublic] = Field(None, description="Author public identity")
