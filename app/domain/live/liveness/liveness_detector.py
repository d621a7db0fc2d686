"""Debounced liveness polling of the upstream HLS manifest."""

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime

import httpx
from loguru import logger

from app.shared.domain.time_utils import utc_now

from .liveness_models import LivenessPhase, LivenessState, LivenessTransition
from .liveness_store import StreamConfigStore

TransitionListener = Callable[[LivenessTransition], Awaitable[None]]


@dataclass
class LivenessCache:
    """Last poll result and the monotonic time it was taken."""

    value: LivenessState = field(default_factory=LivenessState)
    checked_at: float | None = None

    def is_fresh(self, now: float, ttl: float) -> bool:
        return self.checked_at is not None and now - self.checked_at < ttl


class LivenessDetector:
    """Answers "is the broadcast on air?" from the media server manifest.

    At most one upstream fetch is in flight. While it runs, other callers get
    the previous cached state instead of waiting. A flip between live and
    offline is written to the stream config store before the new state is
    published to the cache, then announced to listeners.
    """

    def __init__(
        self,
        manifest_url: str,
        store: StreamConfigStore,
        *,
        http_client: httpx.AsyncClient,
        cache_ttl: float = 5.0,
        fetch_timeout: float = 3.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._manifest_url = manifest_url
        self._store = store
        self._client = http_client
        self._cache_ttl = cache_ttl
        self._fetch_timeout = fetch_timeout
        self._clock = clock

        self._cache = LivenessCache()
        self._inflight: asyncio.Task | None = None
        self._listeners: list[TransitionListener] = []
        self._listener_tasks: set[asyncio.Task] = set()

    @property
    def cache(self) -> LivenessCache:
        return self._cache

    def add_listener(self, callback: TransitionListener) -> None:
        self._listeners.append(callback)

    async def status(self) -> LivenessState:
        if self._cache.is_fresh(self._clock(), self._cache_ttl):
            return self._cache.value

        if self._inflight is not None and not self._inflight.done():
            return self._cache.value

        self._inflight = asyncio.create_task(self._poll())
        # A cancelled caller must not cancel the shared poll
        return await asyncio.shield(self._inflight)

    async def _poll(self) -> LivenessState:
        is_live = await self._probe()
        now = utc_now()
        previous = self._cache.value

        if previous.phase == LivenessPhase.UNKNOWN:
            changed = await self._reconcile(is_live, now)
        elif previous.is_live != is_live:
            await self._write_started_at(now if is_live else None)
            changed = True
        else:
            changed = False

        checked_at = now
        if previous.checked_at is not None and previous.checked_at > now:
            checked_at = previous.checked_at

        state = LivenessState(
            phase=LivenessPhase.LIVE if is_live else LivenessPhase.OFFLINE,
            checked_at=checked_at,
            was_live=previous.is_live,
        )
        self._cache = LivenessCache(value=state, checked_at=self._clock())

        if changed:
            logger.info(f"Broadcast went {'live' if is_live else 'offline'}")
            self._notify(LivenessTransition(is_live=is_live, at=now))

        return state

    async def _probe(self) -> bool:
        try:
            resp = await self._client.get(
                self._manifest_url, timeout=httpx.Timeout(self._fetch_timeout)
            )
        except httpx.HTTPError as e:
            logger.debug(f"Manifest probe failed: {type(e).__name__}: {e}")
            return False
        return resp.is_success

    async def _reconcile(self, is_live: bool, now: datetime) -> bool:
        """First observation after startup: only touch a stale `started_at`."""
        try:
            current = await self._store.get()
        except Exception as e:
            logger.error(f"Failed to read stream config: {e}")
            return False

        if is_live and current.started_at is None:
            await self._write_started_at(now)
            return True
        if not is_live and current.started_at is not None:
            await self._write_started_at(None)
            return True
        return False

    async def _write_started_at(self, started_at: datetime | None) -> None:
        try:
            await self._store.set_started_at(started_at)
        except Exception as e:
            # The cached state still flips; the next flip rewrites the field
            logger.error(f"Failed to persist started_at={started_at}: {e}")

    def _notify(self, transition: LivenessTransition) -> None:
        for callback in self._listeners:
            task = asyncio.create_task(self._run_listener(callback, transition))
            self._listener_tasks.add(task)
            task.add_done_callback(self._listener_tasks.discard)

    @staticmethod
    async def _run_listener(callback: TransitionListener, transition: LivenessTransition) -> None:
        try:
            await callback(transition)
        except Exception as e:
            logger.exception(f"Liveness listener {callback!r} failed: {e}")

    async def run_polling(self) -> None:
        """Keep polling so transitions are seen even when nobody asks for status."""
        while True:
            try:
                await self.status()
            except Exception as e:
                logger.exception(f"Liveness poll failed: {e}")
            await asyncio.sleep(self._cache_ttl)

    async def aclose(self) -> None:
        pending = list(self._listener_tasks)
        if self._inflight is not None and not self._inflight.done():
            pending.append(self._inflight)
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
