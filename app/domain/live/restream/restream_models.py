"""Restream domain models."""

from datetime import datetime

from pydantic import BaseModel, Field

from app.schemas import RestreamState

# Closed set of downstream platforms and their default ingest endpoints
KNOWN_PLATFORMS: dict[str, str] = {
    "youtube": "rtmp://a.rtmp.youtube.com/live2",
    "facebook": "rtmps://live-api-s.facebook.com:443/rtmp",
}


def is_known_platform(platform_id: str) -> bool:
    return platform_id in KNOWN_PLATFORMS


def default_rtmp_url(platform_id: str) -> str | None:
    return KNOWN_PLATFORMS.get(platform_id)


class PlatformConfigRecord(BaseModel):
    """Stored platform settings. Secret fields hold vault tokens."""

    platform_id: str
    enabled: bool = False
    stream_key: str | None = None
    rtmp_url: str | None = None
    channel_id: str | None = None
    channel_url: str | None = None
    api_key: str | None = None
    updated_at: datetime | None = None


class PlatformConfigView(BaseModel):
    """Admin-facing platform settings with secrets masked."""

    platform_id: str
    enabled: bool = False
    stream_key: str | None = None
    rtmp_url: str | None = None
    default_rtmp_url: str | None = None
    channel_id: str | None = None
    channel_url: str | None = None
    api_key: str | None = None
    updated_at: datetime | None = None


class PlatformConfigUpdateParams(BaseModel):
    enabled: bool | None = None
    stream_key: str | None = None
    rtmp_url: str | None = None
    channel_id: str | None = None
    channel_url: str | None = None
    api_key: str | None = None


class RestreamStatusRecord(BaseModel):
    platform_id: str
    status: RestreamState = RestreamState.IDLE
    started_at: datetime | None = None
    stopped_at: datetime | None = None
    error_message: str | None = None
    updated_at: datetime | None = None


class RestreamStatusList(BaseModel):
    statuses: list[RestreamStatusRecord] = Field(default_factory=list)
    active_processes: int = 0
