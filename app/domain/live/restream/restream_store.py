"""Persistence of platform configs and restream status records."""

from typing import Any, Protocol

from beanie.odm.operators.update.general import Set
from loguru import logger
from pymongo.errors import DuplicateKeyError

from app.schemas import PlatformConfig, RestreamState, RestreamStatus
from app.shared.domain.time_utils import utc_now

from .restream_models import PlatformConfigRecord, RestreamStatusRecord


class PlatformConfigStore(Protocol):
    async def list_configs(self) -> list[PlatformConfigRecord]: ...

    async def get(self, platform_id: str) -> PlatformConfigRecord | None: ...

    async def upsert(self, platform_id: str, updates: dict[str, Any]) -> PlatformConfigRecord: ...


class RestreamStatusStore(Protocol):
    async def list_statuses(self) -> list[RestreamStatusRecord]: ...

    async def upsert(self, platform_id: str, status: RestreamState, **fields: Any) -> RestreamStatusRecord: ...


class MongoPlatformConfigStore:
    @staticmethod
    def _to_record(doc: PlatformConfig) -> PlatformConfigRecord:
        return PlatformConfigRecord(**doc.model_dump(include=set(PlatformConfigRecord.model_fields)))

    async def list_configs(self) -> list[PlatformConfigRecord]:
        docs = await PlatformConfig.find_all().sort("platform_id").to_list()
        return [self._to_record(doc) for doc in docs]

    async def get(self, platform_id: str) -> PlatformConfigRecord | None:
        doc = await PlatformConfig.find_one(PlatformConfig.platform_id == platform_id)
        return self._to_record(doc) if doc else None

    async def upsert(self, platform_id: str, updates: dict[str, Any]) -> PlatformConfigRecord:
        update_fields = {**updates, "updated_at": utc_now()}
        query = PlatformConfig.platform_id == platform_id
        try:
            await PlatformConfig.find_one(query).upsert(
                Set(update_fields),
                on_insert=PlatformConfig(platform_id=platform_id, **update_fields),
            )
        except DuplicateKeyError:
            await PlatformConfig.find_one(query).update(Set(update_fields))

        logger.info(f"Saved platform config {platform_id}: {sorted(updates)}")
        doc = await PlatformConfig.find_one(query)
        return self._to_record(doc)


class MongoRestreamStatusStore:
    @staticmethod
    def _to_record(doc: RestreamStatus) -> RestreamStatusRecord:
        return RestreamStatusRecord(**doc.model_dump(include=set(RestreamStatusRecord.model_fields)))

    async def list_statuses(self) -> list[RestreamStatusRecord]:
        docs = await RestreamStatus.find_all().sort("platform_id").to_list()
        return [self._to_record(doc) for doc in docs]

    async def upsert(self, platform_id: str, status: RestreamState, **fields: Any) -> RestreamStatusRecord:
        update_fields = {**fields, "status": status, "updated_at": utc_now()}
        query = RestreamStatus.platform_id == platform_id
        try:
            await RestreamStatus.find_one(query).upsert(
                Set(update_fields),
                on_insert=RestreamStatus(platform_id=platform_id, **update_fields),
            )
        except DuplicateKeyError:
            await RestreamStatus.find_one(query).update(Set(update_fields))

        doc = await RestreamStatus.find_one(query)
        return self._to_record(doc)
