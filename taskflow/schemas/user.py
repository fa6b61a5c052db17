"""Pydantic schemas for user identity."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class UserRole(str, Enum):
    """Global user role."""

    MEMBER = "member"
    MANAGER = "manager"
    ADMIN = "admin"


# Roles with blanket access to every task
ELEVATED_ROLES = frozenset({UserRole.MANAGER.value, UserRole.ADMIN.value})


class UserPublic(BaseModel):
    """Public identity fields safe to broadcast to other users."""

    model_config = ConfigDict(from_attributes=True)

    id: int = Field(..., description="Unique user identifier")
    name: str = Field(..., description="Display name")
    avatar: Optional[str] = Field(None, description="Avatar token")


class Identity(UserPublic):
    """Identity resolved from a credential and cached on a connection."""

    email: str = Field(..., description="User's email address")
    role: UserRole = Field(UserRole.MEMBER, description="Global role")

    @property
    def is_elevated(self) -> bool:
        """Whether the role grants blanket task access (manager/admin)."""
        return self.role.value in ELEVATED_ROLES

    def public(self) -> dict:
        """Public identity fields as a plain dict."""
        return {"id": self.id, "name": self.name, "avatar": self.avatar}
