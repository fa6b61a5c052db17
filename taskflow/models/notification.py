"""Notification SQLAlchemy model."""

from datetime import datetime

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import relationship

from ..database import Base


class Notification(Base):
    """
    Notification stored for a user.

    The row is the durable record; live delivery over the socket is
    best-effort on top of it.

    Attributes:
        id: Unique identifier
        user_id: FK to the recipient
        type: Notification type (task_assigned, project_message, ...)
        title: Short title
        message: Detailed text
        data: Structured payload for the client
        project_id: Optional linked project
        task_id: Optional linked task
        message_id: Optional linked project chat message
        action_url: Optional client route to open
        priority: low, normal, high or urgent
        read_at: When the recipient marked it read (None = unread)
        created_at: Timestamp when the notification was created
    """

    __tablename__ = "Notifications"
    __table_args__ = (
        Index("ix_Notifications_user_read", "user_id", "read_at"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)

    user_id = Column(
        Integer,
        ForeignKey("Users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    type = Column(
        String(50),
        nullable=False,
    )
    title = Column(
        String(255),
        nullable=False,
    )
    message = Column(
        Text,
        nullable=True,
    )
    data = Column(
        JSON,
        nullable=False,
        default=dict,
    )

    # Optional linkage
    project_id = Column(
        Integer,
        ForeignKey("Projects.id", ondelete="CASCADE"),
        nullable=True,
    )
    task_id = Column(
        Integer,
        ForeignKey("Tasks.id", ondelete="CASCADE"),
        nullable=True,
    )
    message_id = Column(
        Integer,
        ForeignKey("ProjectMessages.id", ondelete="CASCADE"),
        nullable=True,
    )
    action_url = Column(
        String(500),
        nullable=True,
    )
    priority = Column(
        String(10),
        nullable=False,
        default="normal",
    )

    # Timestamps
    read_at = Column(
        DateTime,
        nullable=True,
    )
    created_at = Column(
        DateTime,
        default=datetime.utcnow,
        nullable=False,
    )

    user = relationship(
        "User",
        back_populates="notifications",
        lazy="noload",
    )

    @property
    def is_read(self) -> bool:
        """Whether the notification has been read."""
        return self.read_at is not None

    def __repr__(self) -> str:
        """String representation of Notification."""
        return f"<Notification(id={self.id}, user_id={self.user_id}, type={self.type})>"
