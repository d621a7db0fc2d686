from fastapi import APIRouter, Depends

from app.api.v1.dependency import (
    CurrentAdmin,
    get_platform_config_service,
    get_restream_supervisor,
)
from app.shared.api.utils import ApiOut
from app.api.v1.schemas.platform import (
    PlatformConfigOut,
    RestreamStatusListOut,
    RestreamStatusOut,
    UpdatePlatformConfigIn,
)
from app.domain.live.restream.platform_domain import PlatformConfigService
from app.domain.live.restream.restream_models import PlatformConfigUpdateParams
from app.domain.live.restream.restream_supervisor import RestreamSupervisor

router = APIRouter(prefix="/admin")


async def _status_list(supervisor: RestreamSupervisor) -> RestreamStatusListOut:
    result = await supervisor.list_statuses()
    return RestreamStatusListOut(
        statuses=[RestreamStatusOut(**s.model_dump()) for s in result.statuses],
        active_processes=result.active_processes,
    )


@router.get("/platform-configs")
async def list_platform_configs(
    admin: CurrentAdmin,
    service: PlatformConfigService = Depends(get_platform_config_service),
) -> ApiOut[list[PlatformConfigOut]]:
    """List every known platform with stream keys and API keys masked."""
    configs = await service.list_configs()
    return ApiOut[list[PlatformConfigOut]](
        results=[PlatformConfigOut(**c.model_dump()) for c in configs]
    )


@router.patch("/platform-configs/{platform_id}")
async def update_platform_config(
    platform_id: str,
    body: UpdatePlatformConfigIn,
    admin: CurrentAdmin,
    service: PlatformConfigService = Depends(get_platform_config_service),
) -> ApiOut[PlatformConfigOut]:
    params = PlatformConfigUpdateParams(**body.model_dump(exclude_unset=True))
    result = await service.update_config(platform_id, params)
    return ApiOut[PlatformConfigOut](results=PlatformConfigOut(**result.model_dump()))


@router.get("/restream-status")
async def get_restream_status(
    admin: CurrentAdmin,
    supervisor: RestreamSupervisor = Depends(get_restream_supervisor),
) -> ApiOut[RestreamStatusListOut]:
    return ApiOut[RestreamStatusListOut](results=await _status_list(supervisor))


@router.post("/restream/start")
async def start_restream(
    admin: CurrentAdmin,
    supervisor: RestreamSupervisor = Depends(get_restream_supervisor),
) -> ApiOut[RestreamStatusListOut]:
    """Spawn an encoder for every enabled platform that is not already running."""
    await supervisor.start()
    return ApiOut[RestreamStatusListOut](results=await _status_list(supervisor))


@router.post("/restream/stop")
async def stop_restream(
    admin: CurrentAdmin,
    supervisor: RestreamSupervisor = Depends(get_restream_supervisor),
) -> ApiOut[RestreamStatusListOut]:
    await supervisor.stop()
    return ApiOut[RestreamStatusListOut](results=await _status_list(supervisor))
