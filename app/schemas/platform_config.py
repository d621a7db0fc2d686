"""Platform config ODM schema."""

from datetime import datetime
from typing import Any

from beanie import Document, Indexed
from pydantic import field_validator

from .schema_utils import parse_mongo_datetime


class PlatformConfig(Document):
    """Downstream restream platform settings.

    ``stream_key`` and ``api_key`` hold vault tokens, never plaintext.
    """

    platform_id: Indexed(str, unique=True)  # type: ignore[valid-type]

    enabled: bool = False
    stream_key: str | None = None
    rtmp_url: str | None = None
    channel_id: str | None = None
    channel_url: str | None = None
    api_key: str | None = None

    updated_at: datetime | None = None

    @field_validator("updated_at", mode="before")
    @classmethod
    def _parse_datetime(cls, v: Any) -> Any:
        return parse_mongo_datetime(v)

    class Settings:
        name = "platform_config"
