"""Real-time hub: owns the connection manager, presence registry and router.

One RealtimeHub is built in the application lifespan and stored on
``app.state.hub``; nothing in this package is a module-level singleton.
"""

import asyncio
import json
import logging
from datetime import datetime
from typing import Optional, Union

from fastapi import Request, WebSocket, WebSocketDisconnect

from ..config import Settings, settings
from ..services.gateway import PersistenceGateway
from ..services.notification_service import NotificationBridge
from ..services.permission_service import PermissionService
from ..services.task_service import TaskService
from .auth import AUTH_FAILED_CLOSE_CODE, ConnectionAuthenticator
from .errors import AuthenticationError
from .events import OutboundEvent, make_event
from .handlers import EventRouter
from .manager import ConnectionManager, WebSocketConnection, get_user_room
from .presence import PresenceRegistry
from .rooms import RoomCoordinator

logger = logging.getLogger(__name__)

# Close code for a socket superseded by a newer one of the same user
REPLACED_CLOSE_CODE = 4000
# Close code sent to every client when the server stops
GOING_AWAY_CLOSE_CODE = 1001


class RealtimeHub:
    """
    Composition root of the real-time layer.

    Features:
    - Handshake authentication before a connection is registered
    - Last-connect-wins presence per user
    - Per-connection receive loop with keepalive, rate limit and size guards
    - Exactly one ``user:offline`` per presence that goes away
    """

    def __init__(self, gateway: PersistenceGateway, config: Settings = settings) -> None:
        """
        Build the hub and its collaborators.

        Args:
            gateway: Persistence gateway shared with the REST routes
            config: Settings with the WebSocket tuning knobs
        """
        self.gateway = gateway
        self.settings = config

        self.manager = ConnectionManager()
        self.presence = PresenceRegistry()
        self.permissions = PermissionService(gateway)
        self.authenticator = ConnectionAuthenticator(gateway)
        self.rooms = RoomCoordinator(gateway, self.manager, self.presence, self.permissions)
        self.tasks = TaskService(gateway, self.manager, self.permissions)
        self.notifications = NotificationBridge(gateway, self.presence, self.manager)
        self.router = EventRouter(
            gateway,
            self.manager,
            self.presence,
            self.rooms,
            self.permissions,
            self.tasks,
            config,
        )

    async def open(self, websocket: WebSocket) -> Optional[WebSocketConnection]:
        """
        Authenticate and register a new socket.

        A rejected handshake is accepted only to be closed at once with code
        4001 and the failure reason, so browsers can read why. It is never
        registered and never broadcast.

        Returns:
            The active connection, or None if the handshake was rejected
        """
        try:
            identity = await self.authenticator.authenticate(websocket)
        except AuthenticationError as e:
            logger.info(f"WebSocket handshake rejected: {e.message}")
            await websocket.accept()
            await websocket.close(code=AUTH_FAILED_CLOSE_CODE, reason=e.message)
            return None

        connection = await self.manager.connect(websocket, identity)
        await self.manager.join_room(connection, get_user_room(identity.id))

        previous = await self.presence.register(connection)
        if previous is not None and self.settings.ws_close_replaced_connections:
            await self.manager.close(
                previous.connection,
                code=REPLACED_CLOSE_CODE,
                reason="replaced by a newer connection",
            )

        await self.manager.send_personal(
            connection,
            make_event(OutboundEvent.CONNECTED, {
                "user": identity.public(),
                "connectedAt": connection.connected_at.isoformat(),
            }),
        )
        await self.manager.send_personal(
            connection,
            make_event(OutboundEvent.USERS_ONLINE_LIST, {
                "users": self.presence.list_online(exclude_user_id=identity.id),
            }),
        )
        await self.manager.broadcast_to_all(
            make_event(OutboundEvent.USER_ONLINE, {
                "userId": identity.id,
                "user": identity.public(),
                "timestamp": datetime.utcnow().isoformat(),
            }),
            exclude=connection,
        )

        logger.info(f"WebSocket connection established for user: {identity.id}")
        return connection

    async def close(self, connection: WebSocketConnection, code: int = 1000, reason: str = "") -> None:
        """
        Tear down a connection.

        Leaves every room and removes the user's presence if it still belongs
        to this connection; only then is ``user:offline`` broadcast.
        """
        await self.manager.close(connection, code=code, reason=reason)

        entry = await self.presence.deregister(connection.user_id, connection)
        if entry is None:
            return

        await self.manager.broadcast_to_all(
            make_event(OutboundEvent.USER_OFFLINE, {
                "userId": connection.user_id,
                "timestamp": datetime.utcnow().isoformat(),
            })
        )
        logger.info(f"User {connection.user_id} went offline")

    async def serve(self, websocket: WebSocket) -> None:
        """
        Run one WebSocket session from handshake to teardown.

        Args:
            websocket: The incoming WebSocket
        """
        connection = await self.open(websocket)
        if connection is None:
            return

        config = self.settings
        user_id = connection.user_id
        loop = asyncio.get_running_loop()

        # Rate limiting state
        message_timestamps: list[float] = []

        async def server_ping_task() -> None:
            """Send periodic pings and, if configured, re-validate the token."""
            last_token_check = loop.time()
            while True:
                await asyncio.sleep(config.ws_ping_interval)
                if not await self.manager.send_personal(connection, make_event(OutboundEvent.PING)):
                    break

                interval = config.ws_token_revalidation_interval
                if interval > 0 and loop.time() - last_token_check > interval:
                    token = self.authenticator.extract_token(websocket) or ""
                    try:
                        await self.authenticator.authenticate_token(token)
                    except AuthenticationError as e:
                        logger.warning(f"Token no longer valid for user {user_id}, closing connection")
                        await self.manager.send_personal(
                            connection,
                            make_event(OutboundEvent.ERROR, e.to_payload()),
                        )
                        await self.manager.close(
                            connection,
                            code=AUTH_FAILED_CLOSE_CODE,
                            reason=e.message,
                        )
                        break
                    last_token_check = loop.time()

        ping_task = asyncio.create_task(server_ping_task())

        try:
            while self.manager.is_active(connection):
                # Receive with timeout to detect stale connections
                try:
                    raw_message = await asyncio.wait_for(
                        self._receive_frame(websocket),
                        timeout=config.ws_receive_timeout,
                    )
                except asyncio.TimeoutError:
                    await self.manager.send_personal(connection, make_event(OutboundEvent.PING))
                    try:
                        raw_message = await asyncio.wait_for(
                            self._receive_frame(websocket),
                            timeout=config.ws_pong_timeout,
                        )
                    except asyncio.TimeoutError:
                        logger.info(f"Connection timeout for user: {user_id}")
                        break

                # Rate limiting check
                current_time = loop.time()
                message_timestamps[:] = [
                    t for t in message_timestamps if current_time - t < config.ws_rate_limit_window
                ]
                if len(message_timestamps) >= config.ws_rate_limit_messages:
                    logger.warning(f"Rate limit exceeded for user {user_id}")
                    await self.manager.send_personal(
                        connection,
                        make_event(OutboundEvent.ERROR, {
                            "error": "RATE_LIMIT",
                            "message": "Too many messages, slow down",
                        }),
                    )
                    continue
                message_timestamps.append(current_time)

                # Validate message size
                if len(raw_message) > config.ws_max_message_size:
                    logger.warning(
                        f"Message too large from user {user_id}: "
                        f"{len(raw_message)} bytes (max: {config.ws_max_message_size})"
                    )
                    await self.manager.send_personal(
                        connection,
                        make_event(OutboundEvent.ERROR, {
                            "error": "MESSAGE_TOO_LARGE",
                            "message": f"Message exceeds maximum size of {config.ws_max_message_size} bytes",
                        }),
                    )
                    continue

                try:
                    if isinstance(raw_message, bytes):
                        raw_message = raw_message.decode("utf-8")
                    data = json.loads(raw_message)
                except (json.JSONDecodeError, RecursionError, UnicodeDecodeError):
                    logger.warning(f"Invalid JSON from user {user_id}")
                    await self.manager.send_personal(
                        connection,
                        make_event(OutboundEvent.ERROR, {
                            "error": "INVALID_JSON",
                            "message": "Invalid JSON format",
                        }),
                    )
                    continue

                await self.router.dispatch(connection, data)

        except WebSocketDisconnect:
            logger.info(f"WebSocket disconnect for user: {user_id}")
        except Exception as e:
            logger.error(f"WebSocket exception for user {user_id}: {e}")
        finally:
            ping_task.cancel()
            try:
                await ping_task
            except asyncio.CancelledError:
                pass
            await self.close(connection)

    @staticmethod
    async def _receive_frame(websocket: WebSocket) -> Union[str, bytes]:
        """
        Read the next text or binary frame.

        Raises:
            WebSocketDisconnect: If the client went away
        """
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            raise WebSocketDisconnect(message.get("code", 1000), message.get("reason"))
        if message.get("text") is not None:
            return message["text"]
        return message.get("bytes") or b""

    async def shutdown(self) -> None:
        """Close every open socket with 1001 and clear presence."""
        connections = self.manager.connections()
        for connection in connections:
            await self.manager.close(
                connection,
                code=GOING_AWAY_CLOSE_CODE,
                reason="server shutting down",
            )
            await self.presence.deregister(connection.user_id, connection)
        logger.info(f"Realtime hub stopped, closed {len(connections)} connection(s)")


def get_hub(request: Request) -> RealtimeHub:
    """FastAPI dependency returning the hub built in the app lifespan."""
    return request.app.state.hub
