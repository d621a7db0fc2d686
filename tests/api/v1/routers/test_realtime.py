"""Tests for the realtime WebSocket endpoint."""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from app.api.v1.routers.realtime import router
from app.domain.auth.jwt_auth import sign_token
from app.domain.realtime.gateway import RealtimeGateway
from tests.fixtures.fakes import FakeChannelDirectory


@pytest.fixture
def directory() -> FakeChannelDirectory:
    directory = FakeChannelDirectory()
    directory.add_channel("grp_general")
    directory.add_member("grp_general", "alice")
    return directory


@pytest.fixture
def gateway(directory: FakeChannelDirectory, jwt_secret: str) -> RealtimeGateway:
    return RealtimeGateway(directory, jwt_secret=jwt_secret)


@pytest.fixture
def client(gateway: RealtimeGateway) -> TestClient:
    app = FastAPI()
    app.state.realtime_gateway = gateway
    app.include_router(router)
    return TestClient(app)


class TestHandshake:
    def test_missing_token_closes_with_4001(self, client: TestClient):
        with client.websocket_connect("/ws") as ws:
            with pytest.raises(WebSocketDisconnect) as exc_info:
                ws.receive_text()

        assert exc_info.value.code == 4001

    def test_invalid_token_closes_with_4003(self, client: TestClient):
        with client.websocket_connect("/ws?token=garbage") as ws:
            with pytest.raises(WebSocketDisconnect) as exc_info:
                ws.receive_text()

        assert exc_info.value.code == 4003


class TestSession:
    def test_join_send_and_ping(self, client: TestClient, directory: FakeChannelDirectory, jwt_secret: str):
        """A member can join, post and ping over one socket."""
        token = sign_token("alice", jwt_secret)

        with client.websocket_connect(f"/ws?token={token}") as ws:
            ws.send_json({"type": "join_channel", "channel_id": "grp_general"})
            assert ws.receive_json() == {"type": "joined_channel", "channel_id": "grp_general"}

            ws.send_json({"type": "send_message", "channel_id": "grp_general", "content": "Hello church"})
            frame = ws.receive_json()
            assert frame["type"] == "new_message"
            assert frame["message"]["content"] == "Hello church"

            ws.send_text("nonsense")
            assert ws.receive_json() == {"type": "error", "message": "Invalid message format"}

            ws.send_json({"type": "ping"})
            assert ws.receive_json() == {"type": "pong"}

        assert directory.saved[0]["member_id"] == "alice"


class TestHeartbeat:
    def test_listener_answering_pings_survives_sweeps(
        self, client: TestClient, gateway: RealtimeGateway, jwt_secret: str
    ):
        """An otherwise idle client that answers each ping stays connected."""
        token = sign_token("alice", jwt_secret)

        with client:
            with client.websocket_connect(f"/ws?token={token}") as ws:
                for _ in range(3):
                    # Act
                    reaped = client.portal.call(gateway.heartbeat_sweep)

                    # Assert
                    assert reaped == 0
                    assert ws.receive_json() == {"type": "ping"}
                    ws.send_json({"type": "pong"})
                    # Round trip so the pong is handled before the next sweep
                    ws.send_json({"type": "ping"})
                    assert ws.receive_json() == {"type": "pong"}

                assert gateway.connection_count == 1

    def test_silent_listener_is_closed_after_second_sweep(
        self, client: TestClient, gateway: RealtimeGateway, jwt_secret: str
    ):
        """A client that never answers is dropped with 1001 on the following sweep."""
        token = sign_token("alice", jwt_secret)

        with client:
            with client.websocket_connect(f"/ws?token={token}") as ws:
                assert client.portal.call(gateway.heartbeat_sweep) == 0
                assert ws.receive_json() == {"type": "ping"}

                assert client.portal.call(gateway.heartbeat_sweep) == 1

                with pytest.raises(WebSocketDisconnect) as exc_info:
                    ws.receive_text()

            assert exc_info.value.code == 1001
            assert gateway.connection_count == 0
