import asyncio
import time
import traceback
import uuid
from contextlib import asynccontextmanager
from os import environ

import httpx
import logfire
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from granian import Granian
from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware

from app.api.v1.errors import app_error_handler
from app.api.v1.routers import platform, realtime, stream
from app.app_config import get_app_environ_config
from app.domain.live.liveness.liveness_detector import LivenessDetector
from app.domain.live.liveness.liveness_domain import LiveStreamService
from app.domain.live.liveness.liveness_store import MongoStreamConfigStore
from app.domain.live.relay.hls_relay import HlsRelay
from app.domain.live.restream.platform_domain import PlatformConfigService
from app.domain.live.restream.restream_store import MongoPlatformConfigStore, MongoRestreamStatusStore
from app.domain.live.restream.restream_supervisor import RestreamSupervisor
from app.domain.realtime.channel_directory import MongoChannelDirectory
from app.domain.realtime.gateway import RealtimeGateway
from app.domain.vault.credential_vault import init_vault
from app.schemas.init_schemas import init_schema
from app.shared.api import health
from app.shared.api.utils import api_failure, init_logger, log_routes, validation_exception_handler
from app.shared.storage.mongo import get_mongo_manager
from app.utils.app_errors import AppError, AppErrorCode


class HTTPLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):  # type: ignore
        start_time = time.time()
        request_id = str(uuid.uuid4())[:8]

        # Log the incoming request
        logger.info(f"[{request_id}] {request.method} {request.url.path}")

        try:
            response = await call_next(request)

            process_time = (time.time() - start_time) * 1000

            logger.info(
                f"[{request_id}] {request.method} {request.url.path} - "
                f"Status: {response.status_code} - "
                f"Duration: {process_time:.2f}ms"
            )

            return response

        except Exception as exc:
            process_time = (time.time() - start_time) * 1000

            logger.error(
                f"[{request_id}] Unhandled exception in {request.method} {request.url.path} - "
                f"Duration: {process_time:.2f}ms - "
                f"Error: {type(exc).__name__}: {exc}\n"
                f"Traceback:\n{traceback.format_exc()}"
            )

            failure = api_failure(
                errcode=AppErrorCode.E_INTERNAL_ERROR.value,
                errmesg=f"Internal server error (request_id: {request_id})",
            )
            return ORJSONResponse(
                status_code=500,
                content=failure.model_dump(),
            )


def build_services(server: FastAPI, http_client: httpx.AsyncClient) -> None:
    """Wire the domain services onto app.state."""
    app_config = get_app_environ_config()

    # Fatal when ENCRYPTION_KEY is missing
    vault = init_vault(app_config.ENCRYPTION_KEY)

    stream_store = MongoStreamConfigStore()
    detector = LivenessDetector(
        app_config.upstream_manifest_url,
        stream_store,
        http_client=http_client,
        cache_ttl=app_config.LIVENESS_CACHE_TTL_SECONDS,
        fetch_timeout=app_config.LIVENESS_FETCH_TIMEOUT_SECONDS,
    )
    server.state.liveness_detector = detector
    server.state.live_stream_service = LiveStreamService(
        detector, stream_store, app_config.relay_manifest_path
    )

    server.state.hls_relay = HlsRelay(
        app_config.MEDIA_SERVER_URL,
        http_client=http_client,
        timeout=app_config.RELAY_FETCH_TIMEOUT_SECONDS,
    )

    platform_store = MongoPlatformConfigStore()
    server.state.platform_config_service = PlatformConfigService(platform_store, vault)
    server.state.restream_supervisor = RestreamSupervisor(
        app_config.upstream_manifest_url,
        config_store=platform_store,
        status_store=MongoRestreamStatusStore(),
        vault=vault,
        ffmpeg_bin=app_config.FFMPEG_BIN,
        audio_bitrate=app_config.RESTREAM_AUDIO_BITRATE,
        stop_grace=app_config.RESTREAM_STOP_GRACE_SECONDS,
    )

    if not app_config.JWT_SECRET:
        logger.warning("JWT_SECRET is not set; admin and realtime authentication will reject every token")

    server.state.realtime_gateway = RealtimeGateway(
        MongoChannelDirectory(),
        jwt_secret=app_config.JWT_SECRET,
        outbox_size=app_config.WS_OUTBOX_SIZE,
        heartbeat_interval=app_config.WS_HEARTBEAT_INTERVAL_SECONDS,
    )


@asynccontextmanager
async def lifespan(server: FastAPI):
    init_logger()

    logger.info("Application startup...")

    app_config = get_app_environ_config()

    # Initialize MongoDB schemas and Beanie ODM
    await init_schema()

    http_client = httpx.AsyncClient()
    build_services(server, http_client)

    supervisor: RestreamSupervisor = server.state.restream_supervisor
    detector: LivenessDetector = server.state.liveness_detector
    gateway: RealtimeGateway = server.state.realtime_gateway

    await supervisor.recover()

    background = [asyncio.create_task(gateway.run_heartbeat())]
    if app_config.RESTREAM_FOLLOW_LIVENESS:
        logger.info("Restreaming follows broadcast liveness")
        detector.add_listener(supervisor.follow_liveness)
        background.append(asyncio.create_task(detector.run_polling()))

    log_routes(server)

    if app_config.LOGFIRE_ENABLE:
        logger.info("Logfire initializing")

        logfire.configure(
            token=app_config.LOGFIRE_TOKEN,
            service_name="pulpit-cast",
            service_version=environ.get("BUILD_COMMIT") or "dev",
        )

        logger.info("Logfire instrument fastapi")
        logfire.instrument_fastapi(server, capture_headers=False)

        logger.info("Logfire instrument mongo")
        logfire.instrument_pymongo(capture_statement=app_config.DEBUG)

        logger.info("Logfire instrument pydantic")
        logfire.instrument_pydantic()

    yield

    logger.info("Application shutdown...")

    for task in background:
        task.cancel()
    await asyncio.gather(*background, return_exceptions=True)

    await gateway.close_all()
    await supervisor.stop()
    await detector.aclose()
    await http_client.aclose()
    await get_mongo_manager().close_all()


app_config = get_app_environ_config()

app = FastAPI(
    version="1.0",
    title="Pulpit Cast Broadcast API",
    docs_url=None,
    redoc_url=None,
    openapi_url=None,
    default_response_class=ORJSONResponse,
    lifespan=lifespan,
)

app.add_middleware(HTTPLoggingMiddleware)

app.add_middleware(
    CORSMiddleware,  # type: ignore
    allow_origins=app_config.API_CORS_ORIGINS,
    allow_credentials="*" not in app_config.API_CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(RequestValidationError, validation_exception_handler)  # type: ignore
app.add_exception_handler(AppError, app_error_handler)  # type: ignore

app.include_router(health.router)
app.include_router(stream.router)
app.include_router(platform.router, prefix="/api/v1")
app.include_router(realtime.router)


def build_granian_kwargs():
    kwargs = {
        "interface": "asgi",
        "address": app_config.API_HOST,
        "port": app_config.API_PORT,
        "workers": app_config.API_WORKERS,
        "reload": app_config.DEBUG,
    }

    return kwargs


if __name__ == "__main__":
    granian_kwargs = build_granian_kwargs()
    Granian("app.main:app", **granian_kwargs).serve()
