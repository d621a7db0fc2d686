from typing import Annotated

from fastapi import Depends, Request, WebSocket
from loguru import logger

from app.app_config import get_app_environ_config
from app.domain.auth.jwt_auth import AuthSubject, InvalidTokenError, verify_token
from app.domain.live.liveness.liveness_domain import LiveStreamService
from app.domain.live.relay.hls_relay import HlsRelay
from app.domain.live.restream.platform_domain import PlatformConfigService
from app.domain.live.restream.restream_supervisor import RestreamSupervisor
from app.domain.realtime.gateway import RealtimeGateway
from app.utils.app_errors import AppError, AppErrorCode, HttpStatusCode


def get_jwt_secret() -> str | None:
    return get_app_environ_config().JWT_SECRET


def _bearer_token(request: Request) -> str | None:
    header = request.headers.get("authorization") or ""
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


async def get_current_admin(
    request: Request, jwt_secret: str | None = Depends(get_jwt_secret)
) -> AuthSubject:
    # Do not log request headers here (Authorization carries the token).
    try:
        subject = verify_token(_bearer_token(request), jwt_secret)
    except InvalidTokenError:
        raise AppError(
            errcode=AppErrorCode.E_BAD_TOKEN,
            errmesg="Invalid token",
            status_code=HttpStatusCode.UNAUTHORIZED,
        )

    if not subject.is_admin:
        raise AppError(
            errcode=AppErrorCode.E_FORBIDDEN,
            errmesg="Admin access required",
            status_code=HttpStatusCode.FORBIDDEN,
        )

    logger.debug("Authenticated admin member_id: {}", subject.member_id)
    return subject


CurrentAdmin = Annotated[AuthSubject, Depends(get_current_admin)]


# Services are built in the lifespan and kept on app.state

def get_live_stream_service(request: Request) -> LiveStreamService:
    return request.app.state.live_stream_service


def get_hls_relay(request: Request) -> HlsRelay:
    return request.app.state.hls_relay


def get_platform_config_service(request: Request) -> PlatformConfigService:
    return request.app.state.platform_config_service


def get_restream_supervisor(request: Request) -> RestreamSupervisor:
    return request.app.state.restream_supervisor


def get_realtime_gateway(websocket: WebSocket) -> RealtimeGateway:
    return websocket.app.state.realtime_gateway
