"""Restream supervisor - one encoder process per enabled platform."""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from loguru import logger

from app.domain.live.liveness.liveness_models import LivenessTransition
from app.domain.vault.credential_vault import CredentialVault, DecryptionError
from app.schemas import RestreamState
from app.shared.domain.time_utils import utc_now

from .encoder import (
    EncoderProcess,
    Spawner,
    build_ffmpeg_command,
    build_ingest_url,
    is_error_line,
    iter_output_lines,
    redact,
    spawn_encoder,
)
from .restream_models import PlatformConfigRecord, RestreamStatusList, default_rtmp_url
from .restream_state_machine import RestreamStateMachine
from .restream_store import PlatformConfigStore, RestreamStatusStore


@dataclass(eq=False)
class RestreamHandle:
    platform_id: str
    process: EncoderProcess
    started_at: datetime
    # Set before an explicit stop so the exit watcher leaves the status alone
    stopping: bool = False
    tasks: set[asyncio.Task] = field(default_factory=set)


class RestreamSupervisor:
    """Starts, watches and stops encoder processes.

    Errors never escape `start()` or `stop()`; every failure ends up as an
    `error` status record instead.
    """

    def __init__(
        self,
        manifest_url: str,
        *,
        config_store: PlatformConfigStore,
        status_store: RestreamStatusStore,
        vault: CredentialVault,
        spawner: Spawner = spawn_encoder,
        ffmpeg_bin: str = "ffmpeg",
        audio_bitrate: str = "128k",
        stop_grace: float = 5.0,
    ):
        self._manifest_url = manifest_url
        self._configs = config_store
        self._statuses = status_store
        self._vault = vault
        self._spawner = spawner
        self._ffmpeg_bin = ffmpeg_bin
        self._audio_bitrate = audio_bitrate
        self._stop_grace = stop_grace

        self._handles: dict[str, RestreamHandle] = {}
        # Platforms between the start check and a recorded handle
        self._starting: set[str] = set()
        # Bumped by every stop; a spawn that finishes after a stop is torn down
        self._stop_epoch = 0
        self._states: dict[str, RestreamState] = {}

    # ==================== QUERIES ====================

    def active_count(self) -> int:
        return len(self._handles)

    def is_active(self, platform_id: str) -> bool:
        return platform_id in self._handles

    async def list_statuses(self) -> RestreamStatusList:
        statuses = await self._statuses.list_statuses()
        return RestreamStatusList(statuses=statuses, active_processes=self.active_count())

    # ==================== LIFECYCLE ====================

    async def recover(self) -> None:
        """Mark records left `active` by a previous process as idle.

        Encoders are never adopted across restarts, so nothing is running yet.
        """
        try:
            records = await self._statuses.list_statuses()
        except Exception as e:
            logger.error(f"Failed to load restream statuses: {e}")
            return

        for record in records:
            self._states[record.platform_id] = record.status
            if record.status == RestreamState.ACTIVE:
                logger.warning(f"Restream {record.platform_id} was active before restart, marking idle")
                await self._set_status(record.platform_id, RestreamState.IDLE, stopping=True, stopped_at=utc_now())

    async def start(self) -> None:
        logger.info("Starting restreaming")
        epoch = self._stop_epoch
        try:
            configs = await self._configs.list_configs()
        except Exception as e:
            logger.error(f"Failed to load platform configs: {e}")
            return

        for cfg in configs:
            if epoch != self._stop_epoch:
                logger.info("Restreaming stopped while starting, skipping remaining platforms")
                return

            if not cfg.enabled or not cfg.stream_key:
                logger.debug(f"Skipping {cfg.platform_id} (disabled or no key)")
                continue

            if cfg.platform_id in self._handles or cfg.platform_id in self._starting:
                logger.info(f"Restream {cfg.platform_id} already active, skipping")
                continue

            # Reserved before the first await so overlapping starts cannot both spawn
            self._starting.add(cfg.platform_id)
            try:
                await self._start_platform(cfg, epoch)
            except Exception as e:
                logger.exception(f"Unexpected error starting {cfg.platform_id}: {e}")
            finally:
                self._starting.discard(cfg.platform_id)

    async def _start_platform(self, cfg: PlatformConfigRecord, epoch: int) -> None:
        platform_id = cfg.platform_id

        rtmp_url = cfg.rtmp_url or default_rtmp_url(platform_id)
        if not rtmp_url:
            logger.error(f"No RTMP URL for {platform_id}, skipping")
            return

        try:
            stream_key = self._vault.decrypt(cfg.stream_key)
        except DecryptionError as e:
            logger.error(f"Cannot decrypt stream key for {platform_id}: {e}")
            await self._set_status(platform_id, RestreamState.ERROR, error_message=str(e), stopped_at=utc_now())
            return

        cmd = build_ffmpeg_command(
            self._manifest_url,
            build_ingest_url(rtmp_url, stream_key),
            ffmpeg_bin=self._ffmpeg_bin,
            audio_bitrate=self._audio_bitrate,
        )
        logger.info(f"Spawning encoder for {platform_id}: {redact(' '.join(cmd), stream_key)}")

        try:
            process = await self._spawner(cmd)
        except OSError as e:
            logger.error(f"Failed to spawn encoder for {platform_id}: {e}")
            await self._set_status(platform_id, RestreamState.ERROR, error_message=str(e), stopped_at=utc_now())
            return

        if epoch != self._stop_epoch:
            logger.info(f"Restreaming stopped while spawning {platform_id}, terminating encoder")
            await self._discard_process(platform_id, process, stream_key)
            return

        now = utc_now()
        handle = RestreamHandle(platform_id=platform_id, process=process, started_at=now)
        self._handles[platform_id] = handle

        await self._set_status(platform_id, RestreamState.ACTIVE, started_at=now, stopped_at=None, error_message=None)

        self._track(handle, self._drain_stderr(platform_id, process, stream_key))
        self._track(handle, self._watch_exit(handle))

    async def _discard_process(self, platform_id: str, process: EncoderProcess, stream_key: str) -> None:
        drain = asyncio.create_task(self._drain_stderr(platform_id, process, stream_key))
        try:
            await self._terminate(process)
        except Exception as e:
            logger.error(f"Error stopping encoder for {platform_id}: {e}")
        await asyncio.gather(drain, return_exceptions=True)
        await self._set_status(platform_id, RestreamStateMachine.stop_target(), stopping=True, stopped_at=utc_now())

    @staticmethod
    def _track(handle: RestreamHandle, coro) -> None:
        task = asyncio.create_task(coro)
        handle.tasks.add(task)
        task.add_done_callback(handle.tasks.discard)

    async def _watch_exit(self, handle: RestreamHandle) -> None:
        returncode = await handle.process.wait()
        platform_id = handle.platform_id

        if self._handles.get(platform_id) is handle:
            del self._handles[platform_id]

        if handle.stopping:
            logger.info(f"Encoder for {platform_id} stopped (code {returncode})")
            return

        logger.info(f"Encoder for {platform_id} exited with code {returncode}")
        target = RestreamStateMachine.exit_target(returncode)
        if target == RestreamState.IDLE:
            await self._set_status(platform_id, target, stopped_at=utc_now())
        else:
            await self._set_status(
                platform_id,
                target,
                stopped_at=utc_now(),
                error_message=f"ffmpeg exited with code {returncode}",
            )

    @staticmethod
    async def _drain_stderr(platform_id: str, process: EncoderProcess, stream_key: str) -> None:
        if process.stderr is None:
            return
        async for raw in iter_output_lines(process.stderr):
            line = raw.decode("utf-8", errors="replace").strip()
            if is_error_line(line):
                logger.error(f"[{platform_id}] {redact(line, stream_key)}")

    async def stop(self) -> None:
        """Stop every encoder and leave every known platform idle."""
        logger.info("Stopping all restreaming")
        self._stop_epoch += 1

        handles = list(self._handles.values())
        for handle in handles:
            handle.stopping = True

        await asyncio.gather(*(self._stop_handle(handle) for handle in handles))

        # Crashed or failed platforms have no handle left but still settle on idle
        stopped = {handle.platform_id for handle in handles}
        idle = RestreamStateMachine.stop_target()
        for platform_id, state in list(self._states.items()):
            if platform_id in stopped or platform_id in self._handles or platform_id in self._starting:
                continue
            if state != idle:
                await self._set_status(platform_id, idle, stopping=True, stopped_at=utc_now(), error_message=None)

    async def _stop_handle(self, handle: RestreamHandle) -> None:
        platform_id = handle.platform_id
        try:
            await self._terminate(handle.process)
        except Exception as e:
            logger.error(f"Error stopping encoder for {platform_id}: {e}")

        if self._handles.get(platform_id) is handle:
            del self._handles[platform_id]

        await self._set_status(platform_id, RestreamStateMachine.stop_target(), stopping=True, stopped_at=utc_now())

    async def _terminate(self, process: EncoderProcess) -> None:
        """SIGTERM, then SIGKILL once the grace period runs out."""
        if process.returncode is not None:
            return

        try:
            process.terminate()
        except ProcessLookupError:
            return

        try:
            await asyncio.wait_for(process.wait(), timeout=self._stop_grace)
            return
        except asyncio.TimeoutError:
            logger.warning(f"Encoder pid={process.pid} ignored SIGTERM, killing")

        try:
            process.kill()
        except ProcessLookupError:
            return
        await process.wait()

    async def follow_liveness(self, transition: LivenessTransition) -> None:
        """Liveness listener: restream while the broadcast is live."""
        if transition.is_live:
            await self.start()
        else:
            await self.stop()

    # ==================== STATUS ====================

    async def _set_status(
        self,
        platform_id: str,
        status: RestreamState,
        *,
        stopping: bool = False,
        **fields: Any,
    ) -> None:
        current = self._states.get(platform_id, RestreamState.IDLE)
        if not RestreamStateMachine.can_transition(current, status, stopping=stopping):
            expected = sorted(RestreamStateMachine.get_valid_transitions(current))
            logger.warning(f"Unexpected restream transition for {platform_id}: {current} -> {status}, expected one of {expected}")

        self._states[platform_id] = status
        try:
            await self._statuses.upsert(platform_id, status, **fields)
        except Exception as e:
            logger.error(f"Failed to persist restream status {platform_id}={status}: {e}")
