from datetime import datetime
from typing import Any

from pydantic import AliasChoices, BaseModel, Field, field_serializer

from .serializers import serialize_optional_utc_datetime


class LiveStatusOut(BaseModel):
    is_live: bool = Field(description="Whether the broadcast is currently on air")
    title: str | None = None
    description: str | None = None
    hls_url: str | None = Field(default=None, description="Relay manifest path, only while live")
    thumbnail_url: str | None = None
    started_at: datetime | None = Field(default=None, description="Only while live")

    @field_serializer("started_at")
    def serialize_started_at(self, dt: datetime | None) -> str | None:
        return serialize_optional_utc_datetime(dt)


class UpdateStreamConfigIn(BaseModel):
    title: str | None = Field(default=None, description="Broadcast title")
    description: str | None = Field(default=None, description="Broadcast description")
    thumbnail_url: str | None = Field(default=None, description="URL of the thumbnail image")
    # Accepted only so it can be rejected explicitly
    is_live: Any = Field(default=None, validation_alias=AliasChoices("is_live", "isLive"))


class StreamConfigOut(BaseModel):
    title: str | None = None
    description: str | None = None
    thumbnail_url: str | None = None
    started_at: datetime | None = None

    @field_serializer("started_at")
    def serialize_started_at(self, dt: datetime | None) -> str | None:
        return serialize_optional_utc_datetime(dt)
