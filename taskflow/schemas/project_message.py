"""Pydantic schemas for project chat messages."""

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from .user import UserPublic


class ProjectMessageCreate(BaseModel):
    """Schema for posting a chat message."""

    message: str = Field(
        ...,
        min_length=1,
        description="Message body, at most `project_message_max_length` characters",
    )
    message_type: Literal["text", "image", "file", "system"] = Field(
        "text",
        description="Kind of message",
    )
    reply_to: Optional[int] = Field(None, description="Message being answered")


class ProjectMessageResponse(BaseModel):
    """Schema for chat message response."""

    model_config = ConfigDict(from_attributes=True)

    id: int = Field(..., description="Unique message identifier")
    project_id: int = Field(..., description="Project the message belongs to")
    user_id: int = Field(..., description="Author ID")
    message: str = Field(..., description="Message body")
    message_type: str = Field(..., description="Kind of message")
    reply_to: Optional[int] = Field(None, description="Message being answered")
    is_edited: bool = Field(False, description="Whether the body was edited")
    edited_at: Optional[datetime] = Field(None, description="When the body was last edited")
    created_at: datetime = Field(..., description="When the message was posted")
    author: Optional[UserPublic] = Field(None, description="Author public identity")


class ProjectMessageUpdate(BaseModel):
    """Schema for editing the body of a text message."""

    message: str = Field(..., min_length=1, description="New message body")


class ReactionCreate(BaseModel):
    """Schema for toggling a reaction."""

    emoji: str = Field(
        ...,
        min_length=1,
        max_length=10,
        description="Emoji to add or remove",
        examples=["👍"],
    )


class ReactionSummary(BaseModel):
    """All reactions of one emoji on a message."""

    emoji: str
    count: int
    users: List[UserPublic]


class ReactionListResponse(BaseModel):
    reactions: List[ReactionSummary]


class ArchiveMessagesRequest(BaseModel):
    """Schema for archiving old messages."""

    before_date: Optional[datetime] = Field(
        None,
        description="Archive messages posted before this time; defaults to 30 days ago",
    )


class ArchiveMessagesResponse(BaseModel):
    archived: int = Field(..., description="Number of messages archived")
