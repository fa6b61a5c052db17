"""Unit tests for token verification and handshake authentication."""

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from starlette.websockets import WebSocketDisconnect

from taskflow.config import settings
from taskflow.main import app
from taskflow.models import User
from taskflow.schemas.user import UserRole
from taskflow.services.auth_service import (
    TokenExpiredError,
    TokenInvalidError,
    create_access_token,
    verify_access_token,
)
from taskflow.websocket.auth import ConnectionAuthenticator
from taskflow.websocket.errors import AuthenticationError

from helpers import auth_headers_for, make_websocket, sent_events, token_for


def _encode(claims: dict, secret: str = None) -> str:
    return jwt.encode(claims, secret or settings.jwt_secret, algorithm=settings.jwt_algorithm)


class TestAccessTokens:
    """Tests for create_access_token / verify_access_token."""

    def test_token_carries_user_id(self):
        token = create_access_token({"sub": 42, "email": "a@example.com", "role": "admin"})

        token_data = verify_access_token(token)

        assert token_data.user_id == 42
        assert token_data.email == "a@example.com"
        assert token_data.role == "admin"

    def test_expired_token(self):
        token = create_access_token({"sub": 1}, expires_delta=timedelta(seconds=-5))

        with pytest.raises(TokenExpiredError) as exc_info:
            verify_access_token(token)
        assert exc_info.value.reason == "token expired"

    def test_garbage_token(self):
        with pytest.raises(TokenInvalidError) as exc_info:
            verify_access_token("not-a-jwt")
        assert exc_info.value.reason == "invalid token"

    def test_wrong_secret(self):
        now = datetime.now(timezone.utc)
        token = _encode(
            {
                "sub": "1",
                "exp": now + timedelta(minutes=5),
                "iss": settings.jwt_issuer,
                "aud": settings.jwt_audience,
            },
            secret="some-other-secret",
        )
        with pytest.raises(TokenInvalidError):
            verify_access_token(token)

    def test_wrong_audience(self):
        now = datetime.now(timezone.utc)
        token = _encode({
            "sub": "1",
            "exp": now + timedelta(minutes=5),
            "iss": settings.jwt_issuer,
            "aud": "someone-else",
        })
        with pytest.raises(TokenInvalidError):
            verify_access_token(token)

    def test_wrong_issuer(self):
        now = datetime.now(timezone.utc)
        token = _encode({
            "sub": "1",
            "exp": now + timedelta(minutes=5),
            "iss": "another-app",
            "aud": settings.jwt_audience,
        })
        with pytest.raises(TokenInvalidError):
            verify_access_token(token)

    def test_non_numeric_subject(self):
        token = create_access_token({"sub": "alice"})
        with pytest.raises(TokenInvalidError):
            verify_access_token(token)

    def test_missing_subject(self):
        token = create_access_token({"email": "a@example.com"})
        with pytest.raises(TokenInvalidError):
            verify_access_token(token)


class TestExtractToken:
    """Tests for reading the credential off the handshake."""

    def test_query_parameter(self):
        ws = make_websocket("abc")
        assert ConnectionAuthenticator.extract_token(ws) == "abc"

    def test_bearer_header(self):
        ws = make_websocket(headers={"authorization": "Bearer xyz"})
        assert ConnectionAuthenticator.extract_token(ws) == "xyz"

    def test_query_parameter_wins_over_header(self):
        ws = make_websocket("abc", headers={"authorization": "Bearer xyz"})
        assert ConnectionAuthenticator.extract_token(ws) == "abc"

    def test_non_bearer_header_ignored(self):
        ws = make_websocket(headers={"authorization": "Basic dXNlcjpwYXNz"})
        assert ConnectionAuthenticator.extract_token(ws) is None

    def test_nothing_presented(self):
        assert ConnectionAuthenticator.extract_token(make_websocket()) is None


class TestConnectionAuthenticator:
    """Tests for handshake authentication against the store."""

    async def test_valid_token(self, gateway, manager_user: User):
        authenticator = ConnectionAuthenticator(gateway)

        identity = await authenticator.authenticate(make_websocket(token_for(manager_user)))

        assert identity.id == manager_user.id
        assert identity.name == "Mia Manager"
        assert identity.role == UserRole.MANAGER
        assert identity.is_elevated

    async def test_missing_token(self, gateway):
        authenticator = ConnectionAuthenticator(gateway)

        with pytest.raises(AuthenticationError) as exc_info:
            await authenticator.authenticate(make_websocket())
        assert exc_info.value.message == "authentication token required"

    async def test_expired_token(self, gateway, member: User):
        authenticator = ConnectionAuthenticator(gateway)
        token = create_access_token({"sub": member.id}, expires_delta=timedelta(seconds=-5))

        with pytest.raises(AuthenticationError) as exc_info:
            await authenticator.authenticate(make_websocket(token))
        assert exc_info.value.message == "token expired"
        assert exc_info.value.code == "TOKEN_EXPIRED"

    async def test_invalid_token(self, gateway):
        authenticator = ConnectionAuthenticator(gateway)

        with pytest.raises(AuthenticationError) as exc_info:
            await authenticator.authenticate(make_websocket("garbage"))
        assert exc_info.value.message == "invalid token"

    async def test_unknown_user(self, gateway):
        authenticator = ConnectionAuthenticator(gateway)
        token = create_access_token({"sub": 9999})

        with pytest.raises(AuthenticationError) as exc_info:
            await authenticator.authenticate(make_websocket(token))
        assert exc_info.value.message == "user not found"

    async def test_deactivated_user(self, gateway, deleted_user: User):
        authenticator = ConnectionAuthenticator(gateway)

        with pytest.raises(AuthenticationError) as exc_info:
            await authenticator.authenticate(make_websocket(token_for(deleted_user)))
        assert exc_info.value.message == "account deactivated"


class TestHandshakeRejection:
    """A rejected handshake never becomes an active connection."""

    async def test_rejected_socket_closed_with_reason(self, hub):
        ws = make_websocket("garbage")

        connection = await hub.open(ws)

        assert connection is None
        ws.close.assert_awaited_once_with(code=4001, reason="invalid token")
        assert hub.manager.total_connections == 0
        assert len(hub.presence) == 0

    async def test_rejected_socket_not_announced(self, hub, connect, owner: User, deleted_user: User):
        _, owner_ws = await connect(owner)

        await hub.open(make_websocket(token_for(deleted_user)))

        online = sent_events(owner_ws, "user:online")
        assert all(event["userId"] != deleted_user.id for event in online)
        assert not hub.presence.is_online(deleted_user.id)


class TestRestAuthentication:
    """REST routes apply the same rules as the handshake."""

    async def test_missing_header(self, client):
        response = await client.get("/api/notifications")
        assert response.status_code == 401
        assert response.json()["detail"] == "authentication token required"

    async def test_expired_header(self, client, member: User):
        token = create_access_token({"sub": member.id}, expires_delta=timedelta(seconds=-5))
        response = await client.get(
            "/api/notifications", headers={"Authorization": f"Bearer {token}"}
        )
        assert response.status_code == 401
        assert response.json()["detail"] == "token expired"

    async def test_deactivated_account(self, client, deleted_user: User):
        response = await client.get("/api/notifications", headers=auth_headers_for(deleted_user))
        assert response.status_code == 401
        assert response.json()["detail"] == "account deactivated"

    async def test_valid_header(self, client, member: User):
        response = await client.get("/api/notifications", headers=auth_headers_for(member))
        assert response.status_code == 200


class TestWebSocketEndpoint:
    """Handshake rejection over a real ASGI WebSocket."""

    @pytest.mark.parametrize(
        "url, reason",
        [
            ("/ws", "authentication token required"),
            ("/ws?token=garbage", "invalid token"),
        ],
    )
    def test_rejected_with_4001(self, hub, url, reason):
        app.state.hub = hub
        test_client = TestClient(app)

        with pytest.raises(WebSocketDisconnect) as exc_info:
            with test_client.websocket_connect(url) as ws:
                ws.receive_json()

        assert exc_info.value.code == 4001
        assert exc_info.value.reason == reason
        assert hub.manager.total_connections == 0
