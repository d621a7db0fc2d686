"""Live stream service - public status view and stream metadata."""

from loguru import logger

from .liveness_detector import LivenessDetector
from .liveness_models import LiveStatusView, StreamConfigUpdateParams, StreamConfigView
from .liveness_store import StreamConfigStore


class LiveStreamService:
    def __init__(self, detector: LivenessDetector, store: StreamConfigStore, hls_url: str):
        self._detector = detector
        self._store = store
        self._hls_url = hls_url

    async def build_status_view(self) -> LiveStatusView:
        """Compose the player-facing status.

        The relay URL and `started_at` are only exposed while the feed is live.
        """
        state = await self._detector.status()
        cfg = await self._store.get()

        return LiveStatusView(
            is_live=state.is_live,
            title=cfg.title,
            description=cfg.description,
            thumbnail_url=cfg.thumbnail_url,
            hls_url=self._hls_url if state.is_live else None,
            started_at=cfg.started_at if state.is_live else None,
        )

    async def update_config(self, params: StreamConfigUpdateParams) -> StreamConfigView:
        logger.info(f"Updating stream config fields: {sorted(params.model_fields_set)}")
        return await self._store.update(params)
