"""Liveness domain models."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict


class LivenessPhase(str, Enum):
    """Detector state. UNKNOWN only until the first poll completes."""

    UNKNOWN = "unknown"
    LIVE = "live"
    OFFLINE = "offline"

    def __str__(self) -> str:
        return self.value


class LivenessState(BaseModel):
    """Result of the most recent upstream poll."""

    model_config = ConfigDict(frozen=True)

    phase: LivenessPhase = LivenessPhase.UNKNOWN
    checked_at: datetime | None = None
    was_live: bool = False

    @property
    def is_live(self) -> bool:
        return self.phase == LivenessPhase.LIVE


class LivenessTransition(BaseModel):
    """Emitted when the polled state flips between live and offline."""

    is_live: bool
    at: datetime


class StreamConfigView(BaseModel):
    title: str | None = None
    description: str | None = None
    thumbnail_url: str | None = None
    started_at: datetime | None = None


class StreamConfigUpdateParams(BaseModel):
    """Partial update of the broadcast display metadata."""

    title: str | None = None
    description: str | None = None
    thumbnail_url: str | None = None


class LiveStatusView(BaseModel):
    """Public payload polled by the browser player."""

    is_live: bool
    title: str | None = None
    description: str | None = None
    hls_url: str | None = None
    thumbnail_url: str | None = None
    started_at: datetime | None = None
