"""WebSocket module for real-time collaboration.

The hub and its collaborators live in ``hub``, ``rooms``, ``auth`` and
``handlers``; they are imported from their modules directly because they
depend on ``taskflow.services``.
"""

from .errors import (
    AuthenticationError,
    AuthorizationError,
    EventValidationError,
    NotFoundError,
    RealtimeError,
    UpstreamError,
)
from .events import InboundEvent, OutboundEvent, make_event, parse_inbound
from .manager import (
    ConnectionManager,
    WebSocketConnection,
    get_project_room,
    get_task_room,
    get_user_room,
)
from .presence import PresenceEntry, PresenceRegistry, UserStatus

__all__ = [
    # Errors
    "AuthenticationError",
    "AuthorizationError",
    "EventValidationError",
    "NotFoundError",
    "RealtimeError",
    "UpstreamError",
    # Events
    "InboundEvent",
    "OutboundEvent",
    "make_event",
    "parse_inbound",
    # Manager
    "ConnectionManager",
    "WebSocketConnection",
    "get_project_room",
    "get_task_room",
    "get_user_room",
    # Presence
    "PresenceEntry",
    "PresenceRegistry",
    "UserStatus",
]
