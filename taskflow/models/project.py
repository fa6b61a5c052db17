"""Project and ProjectMember SQLAlchemy models."""

from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from ..database import Base


class Project(Base):
    """
    Project model grouping tasks and chat.

    Attributes:
        id: Unique identifier
        name: Project name
        description: Optional description
        created_by: FK to the owning user
        created_at: Timestamp when project was created
    """

    __tablename__ = "Projects"

    id = Column(Integer, primary_key=True, autoincrement=True)

    name = Column(
        String(255),
        nullable=False,
    )
    description = Column(
        Text,
        nullable=True,
    )
    created_by = Column(
        Integer,
        ForeignKey("Users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    created_at = Column(
        DateTime,
        default=datetime.utcnow,
        nullable=False,
    )

    members = relationship(
        "ProjectMember",
        back_populates="project",
        cascade="all, delete-orphan",
        lazy="noload",
    )

    def __repr__(self) -> str:
        """String representation of Project."""
        return f"<Project(id={self.id}, name={self.name})>"


class ProjectMember(Base):
    """
    Membership of a user in a project.

    Attributes:
        id: Unique identifier
        project_id: FK to the project
        user_id: FK to the member
        role: Role inside the project (owner, admin, manager, member)
        joined_at: When the user joined
    """

    __tablename__ = "ProjectMembers"
    __table_args__ = (
        UniqueConstraint("project_id", "user_id", name="uq_project_member"),
    )

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
    role = Column(
        String(20),
        nullable=False,
        default="member",
    )
    joined_at = Column(
        DateTime,
        default=datetime.utcnow,
        nullable=False,
    )

    project = relationship(
        "Project",
        back_populates="members",
        lazy="noload",
    )

    def __repr__(self) -> str:
        """String representation of ProjectMember."""
        return f"<ProjectMember(project_id={self.project_id}, user_id={self.user_id})>"
