from fastapi import APIRouter, Depends, Response
from fastapi.responses import StreamingResponse

from app.api.v1.dependency import CurrentAdmin, get_hls_relay, get_live_stream_service
from app.shared.api.utils import ApiOut
from app.api.v1.schemas.stream import LiveStatusOut, StreamConfigOut, UpdateStreamConfigIn
from app.domain.live.liveness.liveness_domain import LiveStreamService
from app.domain.live.liveness.liveness_models import StreamConfigUpdateParams
from app.domain.live.relay.hls_relay import HlsRelay
from app.utils.app_errors import AppError, AppErrorCode, HttpStatusCode

router = APIRouter(prefix="/api/stream")


@router.get("/status")
async def get_stream_status(
    response: Response,
    service: LiveStreamService = Depends(get_live_stream_service),
) -> ApiOut[LiveStatusOut]:
    """Public liveness view polled by the player."""
    response.headers["Access-Control-Allow-Origin"] = "*"

    view = await service.build_status_view()

    return ApiOut[LiveStatusOut](results=LiveStatusOut(**view.model_dump()))


@router.patch("/config")
async def update_stream_config(
    body: UpdateStreamConfigIn,
    admin: CurrentAdmin,
    service: LiveStreamService = Depends(get_live_stream_service),
) -> ApiOut[StreamConfigOut]:
    """Update broadcast metadata. `is_live` is derived from the media server and cannot be set."""
    if "is_live" in body.model_fields_set:
        raise AppError(
            errcode=AppErrorCode.E_INVALID_REQUEST,
            errmesg="is_live cannot be set; it is derived from the media server",
            status_code=HttpStatusCode.BAD_REQUEST,
        )

    # Only include fields that were explicitly provided in the request
    update_data = body.model_dump(
        exclude_unset=True,
        include={"title", "description", "thumbnail_url"},
    )
    result = await service.update_config(StreamConfigUpdateParams(**update_data))

    return ApiOut[StreamConfigOut](results=StreamConfigOut(**result.model_dump()))


@router.get("/hls/{path:path}")
async def relay_hls(path: str, relay: HlsRelay = Depends(get_hls_relay)) -> Response:
    result = await relay.relay(path)

    if isinstance(result.body, bytes):
        return Response(
            content=result.body,
            status_code=result.status_code,
            media_type=result.content_type,
            headers=result.headers,
        )

    return StreamingResponse(
        result.body,
        status_code=result.status_code,
        media_type=result.content_type,
        headers=result.headers,
    )
