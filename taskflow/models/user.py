"""User SQLAlchemy model for identity and roles."""

from datetime import datetime

from sqlalchemy import Column, DateTime, Integer, String
from sqlalchemy.orm import relationship

from ..database import Base


class User(Base):
    """
    User model representing application users.

    Attributes:
        id: Unique identifier
        name: Display name
        email: User's email address (unique)
        password_hash: Hashed password, managed by the credential subsystem
        avatar: Short avatar token (initials or emoji)
        role: Global role (member, manager, admin)
        deleted_at: Soft-delete timestamp; set when the account is deactivated
        created_at: Timestamp when user was created
    """

    __tablename__ = "Users"

    id = Column(Integer, primary_key=True, autoincrement=True)

    name = Column(
        String(100),
        nullable=False,
    )
    email = Column(
        String(255),
        unique=True,
        nullable=False,
        index=True,
    )
    password_hash = Column(
        String(255),
        nullable=True,
    )
    avatar = Column(
        String(10),
        nullable=True,
    )
    role = Column(
        String(20),
        nullable=False,
        default="member",
    )

    # Timestamps
    deleted_at = Column(
        DateTime,
        nullable=True,
    )
    created_at = Column(
        DateTime,
        default=datetime.utcnow,
        nullable=False,
    )

    # Relationships
    notifications = relationship(
        "Notification",
        back_populates="user",
        cascade="all, delete-orphan",
        lazy="noload",
    )

    @property
    def is_deleted(self) -> bool:
        """Whether the account has been deactivated."""
        return self.deleted_at is not None

    def __repr__(self) -> str:
        """String representation of User."""
        return f"<User(id={self.id}, email={self.email}, role={self.role})>"
