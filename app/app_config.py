from pydantic import BaseModel

from app.shared.config import config


def _str(key: str, default: str = "") -> str:
    return (config.get(key) or default).strip()


def _int(key: str, default: int) -> int:
    return int((config.get(key) or "").strip() or default)


def _float(key: str, default: float) -> float:
    return float((config.get(key) or "").strip() or default)


def _bool(key: str, default: bool) -> bool:
    raw = (config.get(key) or "").strip().lower()
    if not raw:
        return default
    return raw == "true"


class AppEnvironConfig(BaseModel):
    DEBUG: bool = _bool("DEBUG", False)

    API_HOST: str = _str("API_HOST", "0.0.0.0")
    API_PORT: int = _int("API_PORT", 8000)
    API_WORKERS: int = _int("API_WORKERS", 1)
    API_CORS_ORIGINS: list[str] = [
        x.strip() for x in _str("API_CORS_ORIGINS", "*").split(",") if x.strip()
    ]

    # Upstream media server (e.g. MediaMTX) serving the HLS feed
    MEDIA_SERVER_URL: str = _str("MEDIA_SERVER_URL", "http://127.0.0.1:8888").rstrip("/")
    HLS_MANIFEST_PATH: str = _str("HLS_MANIFEST_PATH", "live/live/index.m3u8").lstrip("/")
    # Same-origin path the browser player loads the feed from
    HLS_RELAY_PREFIX: str = _str("HLS_RELAY_PREFIX", "/api/stream/hls").rstrip("/")

    # Liveness detection
    LIVENESS_CACHE_TTL_SECONDS: float = _float("LIVENESS_CACHE_TTL_SECONDS", 5.0)
    LIVENESS_FETCH_TIMEOUT_SECONDS: float = _float("LIVENESS_FETCH_TIMEOUT_SECONDS", 3.0)

    # HLS relay
    RELAY_FETCH_TIMEOUT_SECONDS: float = _float("RELAY_FETCH_TIMEOUT_SECONDS", 10.0)

    # Restream supervisor
    FFMPEG_BIN: str = _str("FFMPEG_BIN", "ffmpeg")
    RESTREAM_AUDIO_BITRATE: str = _str("RESTREAM_AUDIO_BITRATE", "128k")
    RESTREAM_STOP_GRACE_SECONDS: float = _float("RESTREAM_STOP_GRACE_SECONDS", 5.0)
    # When True, restreaming starts/stops automatically on liveness transitions
    RESTREAM_FOLLOW_LIVENESS: bool = _bool("RESTREAM_FOLLOW_LIVENESS", False)

    # Realtime gateway
    WS_HEARTBEAT_INTERVAL_SECONDS: float = _float("WS_HEARTBEAT_INTERVAL_SECONDS", 30.0)
    WS_OUTBOX_SIZE: int = _int("WS_OUTBOX_SIZE", 256)

    # Secrets
    JWT_SECRET: str | None = _str("JWT_SECRET") or None
    ENCRYPTION_KEY: str | None = _str("ENCRYPTION_KEY") or None

    # Mongo label used for the Beanie ODM
    MONGO_LABEL: str = _str("MONGO_LABEL", "broadcast")

    # Observability
    LOGFIRE_ENABLE: bool = _bool("LOGFIRE_ENABLE", False)
    LOGFIRE_TOKEN: str | None = _str("LOGFIRE_TOKEN") or None

    @property
    def upstream_manifest_url(self) -> str:
        return f"{self.MEDIA_SERVER_URL}/{self.HLS_MANIFEST_PATH}"

    @property
    def relay_manifest_path(self) -> str:
        return f"{self.HLS_RELAY_PREFIX}/{self.HLS_MANIFEST_PATH}"


_app_environ_config = AppEnvironConfig()


def get_app_environ_config() -> AppEnvironConfig:
    return _app_environ_config
