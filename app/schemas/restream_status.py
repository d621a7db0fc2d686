"""Restream status ODM schema."""

from datetime import datetime
from typing import Any

from beanie import Document, Indexed
from pydantic import field_validator

from .restream_state import RestreamState
from .schema_utils import parse_mongo_datetime


class RestreamStatus(Document):
    """Last known encoder lifecycle state of one platform."""

    platform_id: Indexed(str, unique=True)  # type: ignore[valid-type]

    status: RestreamState = RestreamState.IDLE
    started_at: datetime | None = None
    stopped_at: datetime | None = None
    error_message: str | None = None

    updated_at: datetime | None = None

    @field_validator("started_at", "stopped_at", "updated_at", mode="before")
    @classmethod
    def _parse_datetime(cls, v: Any) -> Any:
        return parse_mongo_datetime(v)

    class Settings:
        name = "restream_status"
