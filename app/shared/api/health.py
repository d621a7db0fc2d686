from fastapi import APIRouter, Request
from .utils import ApiSuccess


router = APIRouter()


@router.get('/health', response_model=ApiSuccess)
async def health(request: Request):
    state = request.app.state

    gateway = getattr(state, 'realtime_gateway', None)
    supervisor = getattr(state, 'restream_supervisor', None)
    detector = getattr(state, 'liveness_detector', None)

    return ApiSuccess(results={
        'status': 'OK',
        'connections': gateway.connection_count if gateway else 0,
        'restreams': supervisor.active_count() if supervisor else 0,
        # Last cached probe, never triggers an upstream fetch
        'is_live': detector.cache.value.is_live if detector else False,
    })
