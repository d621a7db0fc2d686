"""Persistence of the broadcast stream config."""

from datetime import datetime
from typing import Any, Protocol

from beanie.odm.operators.update.general import Set
from loguru import logger
from pymongo.errors import DuplicateKeyError

from app.schemas import STREAM_CONFIG_KEY, StreamConfig
from app.shared.domain.time_utils import utc_now

from .liveness_models import StreamConfigUpdateParams, StreamConfigView


class StreamConfigStore(Protocol):
    async def get(self) -> StreamConfigView: ...

    async def set_started_at(self, started_at: datetime | None) -> None: ...

    async def update(self, params: StreamConfigUpdateParams) -> StreamConfigView: ...


class MongoStreamConfigStore:
    """Single-document stream config in the `stream_config` collection.

    Writes only `$set` the fields they own, so a metadata edit never puts back a
    stale `started_at` and a liveness transition never reverts the title.
    """

    async def _load(self) -> StreamConfig | None:
        return await StreamConfig.find_one(StreamConfig.config_key == STREAM_CONFIG_KEY)

    async def _set_fields(self, fields: dict[str, Any]) -> None:
        update_fields = {**fields, "updated_at": utc_now()}
        try:
            await StreamConfig.find_one(StreamConfig.config_key == STREAM_CONFIG_KEY).upsert(
                Set(update_fields),
                on_insert=StreamConfig(config_key=STREAM_CONFIG_KEY, **update_fields),
            )
        except DuplicateKeyError:
            # A concurrent first write created the document
            await StreamConfig.find_one(StreamConfig.config_key == STREAM_CONFIG_KEY).update(Set(update_fields))

    async def get(self) -> StreamConfigView:
        doc = await self._load()
        if doc is None:
            return StreamConfigView()
        return StreamConfigView(**doc.model_dump(include=set(StreamConfigView.model_fields)))

    async def set_started_at(self, started_at: datetime | None) -> None:
        await self._set_fields({"started_at": started_at})

    async def update(self, params: StreamConfigUpdateParams) -> StreamConfigView:
        updates = params.model_dump(exclude_unset=True)
        if updates:
            logger.debug(f"Updating stream config: {list(updates)}")
            await self._set_fields(updates)

        return await self.get()
