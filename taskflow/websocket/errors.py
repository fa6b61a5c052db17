"""Error taxonomy for the real-time layer.

Handlers raise these; the event router turns them into a scoped ``error``
event for the offending connection only. None of them closes the socket,
except AuthenticationError which is only raised during the handshake.
"""

from typing import Any, Optional

from fastapi import status


class RealtimeError(Exception):
    """Base class carrying a machine-readable code and a human message."""

    code = "INTERNAL_ERROR"
    http_status = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, code: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def to_payload(self) -> dict[str, Any]:
        """Body of the scoped error event."""
        return {"error": self.code, "message": self.message}


class AuthenticationError(RealtimeError):
    """Handshake rejected: the connection never becomes active."""

    code = "AUTHENTICATION_FAILED"
    http_status = status.HTTP_401_UNAUTHORIZED


class AuthorizationError(RealtimeError):
    """The acting user lacks rights on the target project or task."""

    code = "ACCESS_DENIED"
    http_status = status.HTTP_403_FORBIDDEN


class NotFoundError(RealtimeError):
    """Referenced task, project or notification does not exist."""

    code = "NOT_FOUND"
    http_status = status.HTTP_404_NOT_FOUND


class EventValidationError(RealtimeError):
    """Malformed payload or unknown event type."""

    code = "VALIDATION_ERROR"
    http_status = status.HTTP_422_UNPROCESSABLE_ENTITY


class UpstreamError(RealtimeError):
    """A persistence call failed unexpectedly."""

    code = "INTERNAL_ERROR"
    http_status = status.HTTP_500_INTERNAL_SERVER_ERROR
