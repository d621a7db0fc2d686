"""Platform config service - masked listing and secret-aware updates."""

from typing import Any

from loguru import logger

from app.domain.vault.credential_vault import CredentialVault, is_masked
from app.utils.app_errors import AppError, AppErrorCode, HttpStatusCode

from .restream_models import (
    KNOWN_PLATFORMS,
    PlatformConfigRecord,
    PlatformConfigUpdateParams,
    PlatformConfigView,
    default_rtmp_url,
    is_known_platform,
)
from .restream_store import PlatformConfigStore

SECRET_FIELDS = ("stream_key", "api_key")


class PlatformConfigService:
    def __init__(self, store: PlatformConfigStore, vault: CredentialVault):
        self._store = store
        self._vault = vault

    def _to_view(self, record: PlatformConfigRecord) -> PlatformConfigView:
        return PlatformConfigView(
            platform_id=record.platform_id,
            enabled=record.enabled,
            stream_key=self._vault.mask(record.stream_key),
            rtmp_url=record.rtmp_url,
            default_rtmp_url=default_rtmp_url(record.platform_id),
            channel_id=record.channel_id,
            channel_url=record.channel_url,
            api_key=self._vault.mask(record.api_key),
            updated_at=record.updated_at,
        )

    async def list_configs(self) -> list[PlatformConfigView]:
        """Every known platform, including ones never configured."""
        stored = {record.platform_id: record for record in await self._store.list_configs()}
        records = [stored.get(pid) or PlatformConfigRecord(platform_id=pid) for pid in KNOWN_PLATFORMS]
        return [self._to_view(record) for record in records]

    async def update_config(self, platform_id: str, params: PlatformConfigUpdateParams) -> PlatformConfigView:
        """Apply a partial update.

        Secret values starting with the mask prefix are the masked form echoed
        back by the admin UI and are ignored; an empty string clears the secret.
        """
        if not is_known_platform(platform_id):
            raise AppError(
                errcode=AppErrorCode.E_PLATFORM_NOT_FOUND,
                errmesg=f"Invalid platform. Must be one of: {', '.join(KNOWN_PLATFORMS)}",
                status_code=HttpStatusCode.BAD_REQUEST,
            )

        updates: dict[str, Any] = params.model_dump(exclude_unset=True, exclude=set(SECRET_FIELDS))
        if updates.get("enabled") is None:
            updates.pop("enabled", None)

        for name in SECRET_FIELDS:
            if name not in params.model_fields_set:
                continue
            value = getattr(params, name)
            if value is None or is_masked(value):
                continue
            updates[name] = self._vault.encrypt(value) if value else None

        logger.info(f"Updating platform {platform_id}: {sorted(updates)}")
        record = await self._store.upsert(platform_id, updates)
        return self._to_view(record)
