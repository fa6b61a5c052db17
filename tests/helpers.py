"""Test helpers for tokens and mock WebSockets."""

from typing import Any, Optional
from unittest.mock import AsyncMock

from taskflow.models import User
from taskflow.services.auth_service import create_access_token


def token_for(user: User, **overrides: Any) -> str:
    """Create an access token for a user."""
    claims = {"sub": user.id, "email": user.email, "role": user.role}
    claims.update(overrides)
    return create_access_token(claims)


def auth_headers_for(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {token_for(user)}"}


def make_websocket(token: Optional[str] = None, headers: Optional[dict] = None) -> AsyncMock:
    """Create a mock WebSocket presenting an optional token."""
    ws = AsyncMock()
    ws.query_params = {"token": token} if token else {}
    ws.headers = headers or {}
    return ws


def sent_messages(ws: AsyncMock) -> list[dict]:
    """All frames sent on a mock WebSocket, in order."""
    return [call.args[0] for call in ws.send_json.await_args_list]


def sent_events(ws: AsyncMock, event_type: str) -> list[dict]:
    """Payloads of the frames of one type sent on a mock WebSocket."""
    return [m["data"] for m in sent_messages(ws) if m["type"] == event_type]


def sent_types(ws: AsyncMock) -> list[str]:
    return [m["type"] for m in sent_messages(ws)]
