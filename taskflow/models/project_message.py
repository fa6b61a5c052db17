"""ProjectMessage SQLAlchemy model for project chat."""

from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from ..database import Base


class ProjectMessage(Base):
    """
    Chat message posted in a project.

    Attributes:
        id: Unique identifier
        project_id: FK to the project
        user_id: FK to the author
        message: Message body
        message_type: text, image, file or system
        reply_to: FK to the message being answered
        is_edited: Whether the body was edited
        edited_at: Timestamp of the last edit
        is_archived: Hidden from the default listing
        archived_at: Timestamp when the message was archived
        created_at: Timestamp when the message was posted
    """

    __tablename__ = "ProjectMessages"

    id = Column(Integer, primary_key=True, autoincrement=True)

    project_id = Column(
        Integer,
        ForeignKey("Projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id = Column(
        Integer,
        ForeignKey("Users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    message = Column(
        Text,
        nullable=False,
    )
    message_type = Column(
        String(20),
        nullable=False,
        default="text",
    )
    reply_to = Column(
        Integer,
        ForeignKey("ProjectMessages.id", ondelete="SET NULL"),
        nullable=True,
    )
    is_edited = Column(
        Boolean,
        nullable=False,
        default=False,
    )
    edited_at = Column(
        DateTime,
        nullable=True,
    )
    is_archived = Column(
        Boolean,
        nullable=False,
        default=False,
    )
    archived_at = Column(
        DateTime,
        nullable=True,
    )
    created_at = Column(
        DateTime,
        default=datetime.utcnow,
        nullable=False,
        index=True,
    )

    author = relationship(
        "User",
        lazy="joined",
    )

    def __repr__(self) -> str:
        """String representation of ProjectMessage."""
        return f"<ProjectMessage(id={self.id}, project_id={self.project_id})>"


class MessageReaction(Base):
    """
    Emoji reaction of one user on a chat message.

    A user reacts at most once per emoji on a message; reacting again
    removes the reaction.
    """

    __tablename__ = "MessageReactions"
    __table_args__ = (
        UniqueConstraint("message_id", "user_id", "emoji", name="uq_message_reaction"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)

    message_id = Column(
        Integer,
        ForeignKey("ProjectMessages.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id = Column(
        Integer,
        ForeignKey("Users.id", ondelete="CASCADE"),
        nullable=False,
    )
    emoji = Column(
        String(10),
        nullable=False,
    )
    created_at = Column(
        DateTime,
        default=datetime.utcnow,
        nullable=False,
    )

    user = relationship(
        "User",
        lazy="joined",
    )

    def __repr__(self) -> str:
        return f"<MessageReaction(message_id={self.message_id}, user_id={self.user_id}, emoji={self.emoji})>"
