"""Task and Comment SQLAlchemy models."""

from datetime import datetime

from sqlalchemy import Column, Date, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from ..database import Base


class Task(Base):
    """
    Task model, optionally attached to a project.

    Attributes:
        id: Unique identifier
        title: Task title
        description: Detailed task description
        status: Workflow status (todo, inprogress, review, done)
        priority: Priority level (low, medium, high)
        assignee_id: FK to the assigned user
        created_by: FK to the creating user
        project_id: FK to the parent project (nullable for personal tasks)
        due_date: Task due date
        created_at: Timestamp when task was created
        updated_at: Timestamp when task was last updated
    """

    __tablename__ = "Tasks"

    id = Column(Integer, primary_key=True, autoincrement=True)

    title = Column(
        String(255),
        nullable=False,
    )
    description = Column(
        Text,
        nullable=True,
    )
    status = Column(
        String(20),
        nullable=False,
        default="todo",
        index=True,
    )
    priority = Column(
        String(20),
        nullable=False,
        default="medium",
    )

    # Foreign keys
    assignee_id = Column(
        Integer,
        ForeignKey("Users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    created_by = Column(
        Integer,
        ForeignKey("Users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    project_id = Column(
        Integer,
        ForeignKey("Projects.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )

    due_date = Column(
        Date,
        nullable=True,
    )

    # Timestamps
    created_at = Column(
        DateTime,
        default=datetime.utcnow,
        nullable=False,
    )
    updated_at = Column(
        DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )

    comments = relationship(
        "Comment",
        back_populates="task",
        cascade="all, delete-orphan",
        lazy="noload",
    )

    def __repr__(self) -> str:
        """String representation of Task."""
        return f"<Task(id={self.id}, status={self.status}, project_id={self.project_id})>"


class Comment(Base):
    """
    Comment posted on a task.

    Attributes:
        id: Unique identifier
        task_id: FK to the task
        user_id: FK to the author
        content: Plain text body
        created_at: Timestamp when the comment was posted
    """

    __tablename__ = "Comments"

    id = Column(Integer, primary_key=True, autoincrement=True)

    task_id = Column(
        Integer,
        ForeignKey("Tasks.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id = Column(
        Integer,
        ForeignKey("Users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    content = Column(
        Text,
        nullable=False,
    )
    created_at = Column(
        DateTime,
        default=datetime.utcnow,
        nullable=False,
    )

    task = relationship(
        "Task",
        back_populates="comments",
        lazy="noload",
    )
    author = relationship(
        "User",
        lazy="joined",
    )

    def __repr__(self) -> str:
        """String representation of Comment."""
        return f"<Comment(id={self.id}, task_id={self.task_id})>"
