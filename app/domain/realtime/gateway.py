"""Realtime messaging gateway: subscriptions, fan-out and heartbeat."""

import asyncio
from typing import Any

from loguru import logger

from app.domain.auth.jwt_auth import AuthSubject, InvalidTokenError, verify_token

from .channel_directory import ChannelDirectory
from .connection import Connection, SocketTransport
from .protocol import (
    CLOSE_AUTH_REQUIRED,
    CLOSE_INVALID_TOKEN,
    GatewayError,
    encode_frame,
    error_frame,
    parse_frame,
)
from .realtime_models import (
    InboundFrame,
    JoinChannelFrame,
    LeaveChannelFrame,
    PingFrame,
    PongFrame,
    SendMessageFrame,
)

NOT_A_MEMBER = "Not a member of this channel"
CHANNEL_NOT_FOUND = "Channel not found"
ADMIN_ONLY = "Only admins can post in announcement channels"
INTERNAL_ERROR = "Internal error"


class HandshakeRejected(Exception):
    def __init__(self, code: int, reason: str):
        super().__init__(reason)
        self.code = code
        self.reason = reason


class RealtimeGateway:
    """In-process hub for every realtime connection.

    The subscription index maps a channel to its connections and never keeps
    an empty entry. Membership is checked against the directory on every join
    and every post, never cached from the handshake.
    """

    def __init__(
        self,
        directory: ChannelDirectory,
        *,
        jwt_secret: str | None,
        outbox_size: int = 256,
        heartbeat_interval: float = 30.0,
    ):
        self._directory = directory
        self._jwt_secret = jwt_secret
        self._outbox_size = outbox_size
        self._heartbeat_interval = heartbeat_interval

        self._connections: dict[str, Connection] = {}
        self._subscriptions: dict[str, set[Connection]] = {}

    # ==================== CONNECTIONS ====================

    def authenticate(self, token: str | None) -> AuthSubject:
        if not token:
            raise HandshakeRejected(CLOSE_AUTH_REQUIRED, "Authentication required")
        try:
            return verify_token(token, self._jwt_secret)
        except InvalidTokenError as e:
            raise HandshakeRejected(CLOSE_INVALID_TOKEN, "Invalid token") from e

    def register(self, socket: SocketTransport, subject: AuthSubject, *, start_writer: bool = True) -> Connection:
        conn = Connection(socket=socket, subject=subject, outbox_size=self._outbox_size)
        self._connections[conn.connection_id] = conn
        if start_writer:
            conn.start_writer()
        logger.info(f"Connection {conn.connection_id} opened for member {conn.subject_id}")
        return conn

    async def remove(self, conn: Connection, code: int = 1000, reason: str | None = None) -> None:
        self._unsubscribe_all(conn)
        self._connections.pop(conn.connection_id, None)
        await conn.close(code=code, reason=reason)
        logger.info(f"Connection {conn.connection_id} closed")

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    def subscribers(self, channel_id: str) -> set[Connection]:
        return set(self._subscriptions.get(channel_id, ()))

    def channel_ids(self) -> set[str]:
        return set(self._subscriptions)

    # ==================== SUBSCRIPTIONS ====================

    def _subscribe(self, conn: Connection, channel_id: str) -> None:
        conn.subscribed_channels.add(channel_id)
        self._subscriptions.setdefault(channel_id, set()).add(conn)

    def _unsubscribe(self, conn: Connection, channel_id: str) -> None:
        conn.subscribed_channels.discard(channel_id)
        subscribers = self._subscriptions.get(channel_id)
        if subscribers is None:
            return
        subscribers.discard(conn)
        if not subscribers:
            del self._subscriptions[channel_id]

    def _unsubscribe_all(self, conn: Connection) -> None:
        for channel_id in list(conn.subscribed_channels):
            self._unsubscribe(conn, channel_id)

    # ==================== MESSAGES ====================

    async def handle_text(self, conn: Connection, raw: str | bytes) -> None:
        """Process one inbound frame. Rejections are reported to the sender only."""
        conn.alive = True
        try:
            frame = parse_frame(raw)
            await self._dispatch(conn, frame)
        except GatewayError as e:
            conn.enqueue(encode_frame(error_frame(e.message)))
        except Exception as e:
            logger.exception(f"Failed to handle frame on {conn.connection_id}: {e}")
            conn.enqueue(encode_frame(error_frame(INTERNAL_ERROR)))

    async def _dispatch(self, conn: Connection, frame: InboundFrame) -> None:
        if isinstance(frame, JoinChannelFrame):
            await self._join(conn, frame.channel_id)
        elif isinstance(frame, LeaveChannelFrame):
            self._unsubscribe(conn, frame.channel_id)
            conn.enqueue(encode_frame({"type": "left_channel", "channel_id": frame.channel_id}))
        elif isinstance(frame, SendMessageFrame):
            await self._send_message(conn, frame.channel_id, frame.content)
        elif isinstance(frame, PingFrame):
            conn.enqueue(encode_frame({"type": "pong"}))
        elif isinstance(frame, PongFrame):
            pass

    async def _join(self, conn: Connection, channel_id: str) -> None:
        if not await self._directory.can_view(channel_id, conn.subject_id):
            raise GatewayError(NOT_A_MEMBER)

        # The socket may have gone away while the directory was queried
        if conn.connection_id not in self._connections:
            return

        self._subscribe(conn, channel_id)
        conn.enqueue(encode_frame({"type": "joined_channel", "channel_id": channel_id}))

    async def _send_message(self, conn: Connection, channel_id: str, content: str) -> None:
        if not await self._directory.can_view(channel_id, conn.subject_id):
            raise GatewayError(NOT_A_MEMBER)

        policy = await self._directory.get_posting_policy(channel_id, conn.subject_id)
        if policy is None:
            raise GatewayError(CHANNEL_NOT_FOUND)

        if policy.requires_admin and not (policy.is_channel_admin or conn.subject.is_admin):
            raise GatewayError(ADMIN_ONLY)

        message = await self._directory.save_message(channel_id, conn.subject_id, content)
        delivered = self.broadcast(channel_id, {"type": "new_message", "message": message})
        logger.debug(f"Message in {channel_id} delivered to {delivered} connections")

    def broadcast(self, channel_id: str, payload: dict[str, Any]) -> int:
        """Queue `payload` for every open subscriber of `channel_id`.

        Returns the number of connections it was queued for.
        """
        subscribers = self._subscriptions.get(channel_id)
        if not subscribers:
            return 0

        text = encode_frame(payload)
        return sum(1 for conn in list(subscribers) if conn.enqueue(text))

    # ==================== HEARTBEAT ====================

    async def heartbeat_sweep(self) -> int:
        """Reap connections that missed the previous ping, then ping the rest.

        Returns the number of reaped connections.
        """
        reaped = 0
        ping = encode_frame({"type": "ping"})

        for conn in list(self._connections.values()):
            if not conn.alive or not conn.is_open:
                logger.info(f"Reaping unresponsive connection {conn.connection_id}")
                await self.remove(conn, code=1001, reason="Heartbeat timeout")
                reaped += 1
                continue
            conn.alive = False
            conn.enqueue(ping)

        return reaped

    async def run_heartbeat(self) -> None:
        while True:
            await asyncio.sleep(self._heartbeat_interval)
            try:
                await self.heartbeat_sweep()
            except Exception as e:
                logger.exception(f"Heartbeat sweep failed: {e}")

    async def close_all(self) -> None:
        for conn in list(self._connections.values()):
            await self.remove(conn, code=1001, reason="Server shutting down")
