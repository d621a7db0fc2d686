"""Tests for the realtime messaging gateway."""

import asyncio

import orjson
import pytest

from app.domain.auth.jwt_auth import AuthSubject, sign_token
from app.domain.realtime.connection import Connection
from app.domain.realtime.gateway import HandshakeRejected, RealtimeGateway
from app.domain.realtime.protocol import CLOSE_AUTH_REQUIRED, CLOSE_INVALID_TOKEN
from app.schemas import GroupType
from tests.fixtures.fakes import FakeChannelDirectory, FakeSocket


def drain(conn: Connection) -> list[dict]:
    frames = []
    while not conn.outbox.empty():
        frames.append(orjson.loads(conn.outbox.get_nowait()))
    return frames


def subject(member_id: str, role: str = "member") -> AuthSubject:
    return AuthSubject(memberId=member_id, role=role)


@pytest.fixture
def directory() -> FakeChannelDirectory:
    directory = FakeChannelDirectory()
    directory.add_channel("grp_general")
    directory.add_channel("grp_news", GroupType.ANNOUNCEMENT)
    for member in ("alice", "bob"):
        directory.add_member("grp_general", member)
        directory.add_member("grp_news", member)
    directory.add_member("grp_news", "carol", admin=True)
    return directory


@pytest.fixture
def gateway(directory, jwt_secret) -> RealtimeGateway:
    return RealtimeGateway(directory, jwt_secret=jwt_secret, outbox_size=4)


def connect(gateway: RealtimeGateway, member_id: str, role: str = "member") -> Connection:
    return gateway.register(FakeSocket(), subject(member_id, role), start_writer=False)


class TestHandshake:
    def test_missing_token_closes_4001(self, gateway):
        with pytest.raises(HandshakeRejected) as exc_info:
            gateway.authenticate(None)

        assert exc_info.value.code == CLOSE_AUTH_REQUIRED == 4001

    def test_invalid_token_closes_4003(self, gateway):
        with pytest.raises(HandshakeRejected) as exc_info:
            gateway.authenticate("not-a-token")

        assert exc_info.value.code == CLOSE_INVALID_TOKEN == 4003
        assert exc_info.value.reason == "Invalid token"

    def test_guest_token_rejected(self, gateway, jwt_secret):
        with pytest.raises(HandshakeRejected) as exc_info:
            gateway.authenticate(sign_token("g1", jwt_secret, role="guest"))

        assert exc_info.value.code == CLOSE_INVALID_TOKEN

    def test_valid_token(self, gateway, jwt_secret):
        result = gateway.authenticate(sign_token("alice", jwt_secret))

        assert result.member_id == "alice"


class TestJoinLeave:
    async def test_member_can_join(self, gateway):
        conn = connect(gateway, "alice")

        await gateway.handle_text(conn, '{"type": "join_channel", "channel_id": "grp_general"}')

        assert drain(conn) == [{"type": "joined_channel", "channel_id": "grp_general"}]
        assert conn in gateway.subscribers("grp_general")
        assert "grp_general" in conn.subscribed_channels

    async def test_non_member_join_rejected(self, gateway):
        """A non-member gets an error and is not subscribed; the connection stays open."""
        conn = connect(gateway, "mallory")

        await gateway.handle_text(conn, '{"type": "join_channel", "channel_id": "grp_general"}')

        frames = drain(conn)
        assert frames[0]["type"] == "error"
        assert gateway.subscribers("grp_general") == set()
        assert conn.is_open

    async def test_join_rechecks_membership_every_time(self, gateway, directory):
        """Removing a member should stop later joins even on the same connection."""
        conn = connect(gateway, "alice")
        await gateway.handle_text(conn, '{"type": "join_channel", "channel_id": "grp_general"}')
        await gateway.handle_text(conn, '{"type": "leave_channel", "channel_id": "grp_general"}')
        drain(conn)

        directory.members.discard(("grp_general", "alice"))
        await gateway.handle_text(conn, '{"type": "join_channel", "channel_id": "grp_general"}')

        assert drain(conn)[0]["type"] == "error"
        assert conn not in gateway.subscribers("grp_general")

    async def test_leave_is_idempotent_and_drops_empty_channel(self, gateway):
        conn = connect(gateway, "alice")
        await gateway.handle_text(conn, '{"type": "join_channel", "channel_id": "grp_general"}')

        await gateway.handle_text(conn, '{"type": "leave_channel", "channel_id": "grp_general"}')
        await gateway.handle_text(conn, '{"type": "leave_channel", "channel_id": "grp_general"}')

        assert "grp_general" not in gateway.channel_ids()
        assert [f["type"] for f in drain(conn)] == ["joined_channel", "left_channel", "left_channel"]


class TestSendMessage:
    async def test_fan_out_includes_sender(self, gateway, directory):
        alice = connect(gateway, "alice")
        bob = connect(gateway, "bob")
        for conn in (alice, bob):
            await gateway.handle_text(conn, '{"type": "join_channel", "channel_id": "grp_general"}')
            drain(conn)

        await gateway.handle_text(
            alice, '{"type": "send_message", "channel_id": "grp_general", "content": " Amen "}'
        )

        for conn in (alice, bob):
            frames = drain(conn)
            assert len(frames) == 1
            assert frames[0]["type"] == "new_message"
            assert frames[0]["message"]["content"] == "Amen"
            assert frames[0]["message"]["member_id"] == "alice"
        assert len(directory.saved) == 1

    async def test_non_member_post_is_all_or_nothing(self, gateway, directory):
        """A rejected post reaches nobody and is not stored."""
        bob = connect(gateway, "bob")
        await gateway.handle_text(bob, '{"type": "join_channel", "channel_id": "grp_general"}')
        drain(bob)
        mallory = connect(gateway, "mallory")

        await gateway.handle_text(
            mallory, '{"type": "send_message", "channel_id": "grp_general", "content": "spam"}'
        )

        assert drain(mallory)[0]["type"] == "error"
        assert drain(bob) == []
        assert directory.saved == []

    async def test_announcement_requires_channel_admin(self, gateway, directory):
        bob = connect(gateway, "bob")
        await gateway.handle_text(bob, '{"type": "join_channel", "channel_id": "grp_news"}')
        drain(bob)

        await gateway.handle_text(bob, '{"type": "send_message", "channel_id": "grp_news", "content": "hi"}')

        assert drain(bob) == [{"type": "error", "message": "Only admins can post in announcement channels"}]
        assert directory.saved == []

    async def test_announcement_channel_admin_can_post(self, gateway, directory):
        bob = connect(gateway, "bob")
        await gateway.handle_text(bob, '{"type": "join_channel", "channel_id": "grp_news"}')
        drain(bob)
        carol = connect(gateway, "carol")

        await gateway.handle_text(
            carol, '{"type": "send_message", "channel_id": "grp_news", "content": "Service at 10"}'
        )

        assert drain(bob)[0]["type"] == "new_message"

    async def test_announcement_global_admin_can_post(self, gateway, directory):
        directory.add_member("grp_news", "pastor")
        pastor = connect(gateway, "pastor", role="admin")

        await gateway.handle_text(
            pastor, '{"type": "send_message", "channel_id": "grp_news", "content": "Welcome"}'
        )

        assert len(directory.saved) == 1

    async def test_malformed_input_changes_nothing(self, gateway):
        conn = connect(gateway, "alice")

        await gateway.handle_text(conn, "{not json")

        assert drain(conn) == [{"type": "error", "message": "Invalid message format"}]
        assert gateway.channel_ids() == set()

    async def test_ping_replies_pong(self, gateway):
        conn = connect(gateway, "alice")

        await gateway.handle_text(conn, '{"type": "ping"}')

        assert drain(conn) == [{"type": "pong"}]


class TestBroadcast:
    async def test_broadcast_counts_deliveries(self, gateway):
        alice = connect(gateway, "alice")
        bob = connect(gateway, "bob")
        for conn in (alice, bob):
            await gateway.handle_text(conn, '{"type": "join_channel", "channel_id": "grp_general"}')
            drain(conn)

        delivered = gateway.broadcast("grp_general", {"type": "event_reminder", "title": "Choir"})

        assert delivered == 2
        assert drain(bob) == [{"type": "event_reminder", "title": "Choir"}]

    def test_broadcast_to_empty_channel(self, gateway):
        assert gateway.broadcast("grp_nobody", {"type": "x"}) == 0

    async def test_full_outbox_skips_and_marks_dead(self, gateway):
        """A client that stops reading is skipped and flagged for reaping."""
        slow = connect(gateway, "alice")
        await gateway.handle_text(slow, '{"type": "join_channel", "channel_id": "grp_general"}')

        results = [gateway.broadcast("grp_general", {"n": i}) for i in range(5)]

        assert results[-1] == 0
        assert slow.alive is False


class TestHeartbeat:
    async def test_sweep_pings_live_connections(self, gateway):
        conn = connect(gateway, "alice")

        reaped = await gateway.heartbeat_sweep()

        assert reaped == 0
        assert conn.alive is False
        assert drain(conn) == [{"type": "ping"}]

    async def test_pong_keeps_connection(self, gateway):
        conn = connect(gateway, "alice")
        await gateway.heartbeat_sweep()

        await gateway.handle_text(conn, '{"type": "pong"}')
        reaped = await gateway.heartbeat_sweep()

        assert reaped == 0
        assert gateway.connection_count == 1

    async def test_two_missed_pings_reaps(self, gateway):
        """A connection silent across two sweeps is removed from every channel and closed."""
        conn = connect(gateway, "alice")
        await gateway.handle_text(conn, '{"type": "join_channel", "channel_id": "grp_general"}')

        await gateway.heartbeat_sweep()
        reaped = await gateway.heartbeat_sweep()

        assert reaped == 1
        assert gateway.connection_count == 0
        assert "grp_general" not in gateway.channel_ids()
        assert conn.socket.closed is not None


class TestConnectionWriter:
    async def test_writer_drains_outbox_to_socket(self, gateway):
        socket = FakeSocket()
        conn = gateway.register(socket, subject("alice"))

        await gateway.handle_text(conn, '{"type": "ping"}')
        await asyncio.sleep(0.01)

        assert socket.sent == ['{"type":"pong"}']
        await gateway.remove(conn)
        assert socket.closed == (1000, None)

    async def test_failed_write_marks_connection_closed(self, gateway):
        socket = FakeSocket(fail_sends=True)
        conn = gateway.register(socket, subject("alice"))

        conn.enqueue('{"type":"ping"}')
        await asyncio.sleep(0.01)

        assert conn.is_open is False
        assert await gateway.heartbeat_sweep() == 1
