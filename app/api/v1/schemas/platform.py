from datetime import datetime

from pydantic import BaseModel, Field, field_serializer

from app.schemas import RestreamState

from .serializers import serialize_optional_utc_datetime


class PlatformConfigOut(BaseModel):
    platform_id: str
    enabled: bool
    stream_key: str | None = Field(default=None, description="Masked stream key")
    rtmp_url: str | None = None
    default_rtmp_url: str | None = None
    channel_id: str | None = None
    channel_url: str | None = None
    api_key: str | None = Field(default=None, description="Masked API key")
    updated_at: datetime | None = None

    @field_serializer("updated_at")
    def serialize_updated_at(self, dt: datetime | None) -> str | None:
        return serialize_optional_utc_datetime(dt)


class UpdatePlatformConfigIn(BaseModel):
    enabled: bool | None = None
    stream_key: str | None = Field(
        default=None, description="New stream key; a masked value (****...) leaves it unchanged"
    )
    rtmp_url: str | None = None
    channel_id: str | None = None
    channel_url: str | None = None
    api_key: str | None = Field(
        default=None, description="New API key; a masked value (****...) leaves it unchanged"
    )


class RestreamStatusOut(BaseModel):
    platform_id: str
    status: RestreamState
    started_at: datetime | None = None
    stopped_at: datetime | None = None
    error_message: str | None = None

    @field_serializer("started_at", "stopped_at")
    def serialize_dt(self, dt: datetime | None) -> str | None:
        return serialize_optional_utc_datetime(dt)


class RestreamStatusListOut(BaseModel):
    statuses: list[RestreamStatusOut]
    active_processes: int
