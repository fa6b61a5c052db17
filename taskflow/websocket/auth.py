"""Handshake authentication for WebSocket connections."""

import logging
from typing import Optional

from fastapi import WebSocket
from sqlalchemy.exc import SQLAlchemyError

from ..schemas.user import Identity
from ..services.auth_service import CredentialError, verify_access_token
from ..services.gateway import PersistenceGateway
from .errors import AuthenticationError

logger = logging.getLogger(__name__)

# Close code sent when a handshake is rejected
AUTH_FAILED_CLOSE_CODE = 4001


class ConnectionAuthenticator:
    """
    Resolve the credential presented on a WebSocket handshake to an Identity.

    The token is read from the ``token`` query parameter, falling back to an
    ``Authorization: Bearer`` header. The user is re-read from the store so
    deleted or deactivated accounts are rejected even with a valid token.
    """

    def __init__(self, gateway: PersistenceGateway) -> None:
        self._gateway = gateway

    @staticmethod
    def extract_token(websocket: WebSocket) -> Optional[str]:
        """Pull the bearer token from the handshake, if any."""
        token = websocket.query_params.get("token")
        if token:
            return token

        header = websocket.headers.get("authorization") or ""
        scheme, _, credentials = header.partition(" ")
        if scheme.lower() == "bearer" and credentials.strip():
            return credentials.strip()
        return None

    async def authenticate(self, websocket: WebSocket) -> Identity:
        """
        Authenticate a handshake.

        Args:
            websocket: The not yet accepted WebSocket

        Returns:
            The resolved Identity

        Raises:
            AuthenticationError: With a reason naming why the handshake failed
        """
        token = self.extract_token(websocket)
        if not token:
            raise AuthenticationError("authentication token required", code="TOKEN_REQUIRED")

        return await self.authenticate_token(token)

    async def authenticate_token(self, token: str) -> Identity:
        """Verify a raw token and load its user."""
        try:
            token_data = verify_access_token(token)
        except CredentialError as e:
            logger.info(f"WebSocket credential rejected: {e.reason} ({e})")
            raise AuthenticationError(e.reason, code=e.code) from e

        try:
            user = await self._gateway.get_user(token_data.user_id)
        except SQLAlchemyError as e:
            logger.error(f"User lookup failed during handshake: {e}")
            raise AuthenticationError("authentication failed", code="AUTH_FAILED") from e

        if user is None:
            raise AuthenticationError("user not found", code="USER_NOT_FOUND")
        if user.is_deleted:
            raise AuthenticationError("account deactivated", code="ACCOUNT_DEACTIVATED")

        return self._gateway.to_identity(user)
