from fastapi import APIRouter, Depends, Query, WebSocket
from loguru import logger

from app.api.v1.dependency import get_realtime_gateway
from app.domain.realtime.gateway import HandshakeRejected, RealtimeGateway

router = APIRouter()


@router.websocket("/ws")
async def realtime_socket(
    websocket: WebSocket,
    token: str | None = Query(None),
    gateway: RealtimeGateway = Depends(get_realtime_gateway),
):
    """Realtime channel socket, authenticated with `?token=<jwt>`.

    Heartbeat contract: every heartbeat interval the server sends `{"type": "ping"}`.
    Clients answer with `{"type": "pong"}`; any other frame counts as well. A
    connection that sends nothing across two consecutive pings is closed with 1001.
    WebSocket control-frame pongs are handled by the ASGI server and never reach
    the application, so they do not keep a connection alive.
    """
    # Accept first so the client receives the close code
    await websocket.accept()

    try:
        subject = gateway.authenticate(token)
    except HandshakeRejected as e:
        logger.info(f"Realtime handshake rejected: {e.code} {e.reason}")
        await websocket.close(code=e.code, reason=e.reason)
        return

    conn = gateway.register(websocket, subject)
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
            raw = message.get("text")
            if raw is None:
                raw = message.get("bytes") or b""
            await gateway.handle_text(conn, raw)
    finally:
        await gateway.remove(conn)
