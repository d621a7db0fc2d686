"""Stream config ODM schema."""

from datetime import datetime
from typing import Any

from beanie import Document, Indexed
from pydantic import field_validator

from .schema_utils import parse_mongo_datetime

STREAM_CONFIG_KEY = "default"


class StreamConfig(Document):
    """Display metadata of the live broadcast plus the current session start.

    A single document keyed by ``config_key``. ``started_at`` is written only by
    the liveness detector on live/offline transitions.
    """

    config_key: Indexed(str, unique=True) = STREAM_CONFIG_KEY  # type: ignore[valid-type]

    title: str | None = None
    description: str | None = None
    thumbnail_url: str | None = None

    started_at: datetime | None = None
    updated_at: datetime | None = None

    @field_validator("started_at", "updated_at", mode="before")
    @classmethod
    def _parse_datetime(cls, v: Any) -> Any:
        return parse_mongo_datetime(v)

    class Settings:
        name = "stream_config"
