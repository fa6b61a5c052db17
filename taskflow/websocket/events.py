"""Event vocabulary of the real-time protocol.

Every frame on the socket is a JSON object ``{"type": <name>, "data": {...}}``.
Inbound frames are parsed into a closed set of pydantic models discriminated
on ``type``; outbound names live in OutboundEvent.
"""

from enum import Enum
from typing import Annotated, Any, ClassVar, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError
from pydantic.alias_generators import to_camel

from ..schemas.task import TaskStatus
from .errors import EventValidationError
from .presence import UserStatus


class OutboundEvent(str, Enum):
    """Server to client event names."""

    # Connection
    CONNECTED = "connected"
    ERROR = "error"
    PING = "ping"
    PONG = "pong"

    # Presence
    USER_ONLINE = "user:online"
    USER_OFFLINE = "user:offline"
    USER_STATUS_CHANGED = "user:status_changed"
    USERS_ONLINE_LIST = "users:online_list"

    # Project rooms
    PROJECT_JOINED = "project:joined"
    PROJECT_LEFT = "project:left"
    PROJECT_USER_JOINED = "project:user_joined"
    PROJECT_USER_LEFT = "project:user_left"
    PROJECT_MESSAGE_RECEIVED = "project:message_received"
    PROJECT_MESSAGE_EDITED = "project:message_edited"
    PROJECT_MESSAGE_DELETED = "project:message_deleted"
    PROJECT_MESSAGE_REACTION_UPDATED = "project:message_reaction_updated"
    PROJECT_MESSAGES_ARCHIVED = "project:messages_archived"

    # Task rooms
    TASK_JOINED = "task:joined"
    TASK_LEFT = "task:left"
    TASK_USER_JOINED = "task:user_joined"
    TASK_USER_LEFT = "task:user_left"
    TASK_STATUS_CHANGED = "task:status_changed"
    TASK_USER_TYPING = "task:user_typing"
    TASK_USER_STOPPED_TYPING = "task:user_stopped_typing"

    # Comments
    COMMENT_ADDED = "comment:added"

    # Notifications
    NOTIFICATION_NEW = "notification:new"
    NOTIFICATION_MARKED_READ = "notification:marked_read"
    NOTIFICATION_ALL_MARKED_READ = "notification:all_marked_read"
    NOTIFICATION_DELETED = "notification:deleted"
    NOTIFICATION_READ_CLEARED = "notification:read_cleared"


class InboundEvent(str, Enum):
    """Client to server event names."""

    PROJECT_JOIN = "project:join"
    PROJECT_LEAVE = "project:leave"
    TASK_JOIN = "task:join"
    TASK_LEAVE = "task:leave"
    TASK_STATUS_CHANGE = "task:status_change"
    TASK_TYPING = "task:typing"
    TASK_STOP_TYPING = "task:stop_typing"
    COMMENT_ADD = "comment:add"
    USER_STATUS_UPDATE = "user:status_update"
    NOTIFICATION_MARK_READ = "notification:mark_read"
    PING = "ping"


def make_event(event: OutboundEvent, data: Optional[dict[str, Any]] = None) -> dict[str, Any]:
    """Build an outbound frame."""
    return {"type": event.value, "data": data or {}}


# ---------------------------------------------------------------------------
# Inbound payloads
# ---------------------------------------------------------------------------


class _Payload(BaseModel):
    """Payload base: accepts camelCase keys from clients and snake_case in code."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class ProjectRef(_Payload):
    project_id: int


class TaskRef(_Payload):
    task_id: int


class StatusChangePayload(TaskRef):
    status: TaskStatus
    old_status: Optional[str] = None


class CommentPayload(TaskRef):
    content: str


class UserStatusPayload(_Payload):
    status: UserStatus


class NotificationRef(_Payload):
    notification_id: int


class EmptyPayload(_Payload):
    pass


class _Inbound(BaseModel):
    kind: ClassVar[InboundEvent]


class ProjectJoin(_Inbound):
    kind = InboundEvent.PROJECT_JOIN
    type: Literal["project:join"]
    data: ProjectRef


class ProjectLeave(_Inbound):
    kind = InboundEvent.PROJECT_LEAVE
    type: Literal["project:leave"]
    data: ProjectRef


class TaskJoin(_Inbound):
    kind = InboundEvent.TASK_JOIN
    type: Literal["task:join"]
    data: TaskRef


class TaskLeave(_Inbound):
    kind = InboundEvent.TASK_LEAVE
    type: Literal["task:leave"]
    data: TaskRef


class TaskStatusChange(_Inbound):
    kind = InboundEvent.TASK_STATUS_CHANGE
    type: Literal["task:status_change"]
    data: StatusChangePayload


class TaskTyping(_Inbound):
    kind = InboundEvent.TASK_TYPING
    type: Literal["task:typing"]
    data: TaskRef


class TaskStopTyping(_Inbound):
    kind = InboundEvent.TASK_STOP_TYPING
    type: Literal["task:stop_typing"]
    data: TaskRef


class CommentAdd(_Inbound):
    kind = InboundEvent.COMMENT_ADD
    type: Literal["comment:add"]
    data: CommentPayload


class UserStatusUpdate(_Inbound):
    kind = InboundEvent.USER_STATUS_UPDATE
    type: Literal["user:status_update"]
    data: UserStatusPayload


class NotificationMarkRead(_Inbound):
    kind = InboundEvent.NOTIFICATION_MARK_READ
    type: Literal["notification:mark_read"]
    data: NotificationRef


class Ping(_Inbound):
    kind = InboundEvent.PING
    type: Literal["ping"]
    data: EmptyPayload = Field(default_factory=EmptyPayload)


InboundMessage = Annotated[
    Union[
        ProjectJoin,
        ProjectLeave,
        TaskJoin,
        TaskLeave,
        TaskStatusChange,
        TaskTyping,
        TaskStopTyping,
        CommentAdd,
        UserStatusUpdate,
        NotificationMarkRead,
        Ping,
    ],
    Field(discriminator="type"),
]

_inbound_adapter: TypeAdapter[InboundMessage] = TypeAdapter(InboundMessage)

INBOUND_TYPES = frozenset(item.value for item in InboundEvent)


def parse_inbound(raw: Any) -> InboundMessage:
    """
    Validate a decoded frame into its inbound event model.

    Args:
        raw: The decoded JSON value

    Returns:
        One of the inbound event models

    Raises:
        EventValidationError: Unknown type or malformed payload
    """
    if not isinstance(raw, dict):
        raise EventValidationError("message must be a JSON object")

    event_type = raw.get("type")
    if not isinstance(event_type, str) or not event_type:
        raise EventValidationError("message type is required")
    if event_type not in INBOUND_TYPES:
        raise EventValidationError(f"unknown event type: {event_type}")

    if raw.get("data") is None:
        raw = {**raw, "data": {}}

    try:
        return _inbound_adapter.validate_python(raw)
    except ValidationError as e:
        first = e.errors()[0]
        # Drop the discriminator tag and the "data" prefix from the location
        location = [str(part) for part in first["loc"] if part not in (event_type, "data")]
        field_name = ".".join(location) or "data"
        raise EventValidationError(f"invalid {field_name}: {first['msg']}") from e
