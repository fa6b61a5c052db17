"""Business logic services."""

from .auth_service import (
    CredentialError,
    TokenData,
    TokenExpiredError,
    TokenInvalidError,
    create_access_token,
    get_current_user,
    verify_access_token,
)
from .gateway import PersistenceGateway, get_gateway
from .notification_service import (
    NotificationBridge,
    NotificationDelivery,
    serialize_notification,
)
from .permission_service import PermissionService
from .task_service import TaskService

__all__ = [
    # Auth
    "CredentialError",
    "TokenData",
    "TokenExpiredError",
    "TokenInvalidError",
    "create_access_token",
    "get_current_user",
    "verify_access_token",
    # Persistence
    "PersistenceGateway",
    "get_gateway",
    # Notifications
    "NotificationBridge",
    "NotificationDelivery",
    "serialize_notification",
    # Permissions
    "PermissionService",
    # Tasks
    "TaskService",
]
