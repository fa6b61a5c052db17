"""SQLAlchemy ORM models package."""

from .notification import Notification
from .project import Project, ProjectMember
from .project_message import MessageReaction, ProjectMessage
from .task import Comment, Task
from .user import User

__all__ = [
    "Comment",
    "MessageReaction",
    "Notification",
    "Project",
    "ProjectMember",
    "ProjectMessage",
    "Task",
    "User",
]
