"""Tests for the debounced liveness detector."""

import asyncio

import httpx
import pytest

from app.domain.live.liveness.liveness_detector import LivenessDetector
from app.domain.live.liveness.liveness_models import (
    LivenessPhase,
    LivenessTransition,
    StreamConfigView,
)
from app.shared.domain.time_utils import utc_now
from tests.fixtures.fakes import FakeStreamConfigStore

MANIFEST_URL = "http://media.test:8888/live/live/index.m3u8"


class Upstream:
    """Scripted media server: answers with `status`, or raises `error`."""

    def __init__(self, status: int = 200):
        self.status = status
        self.error: Exception | None = None
        self.calls = 0
        self.gate: asyncio.Event | None = None

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return httpx.Response(self.status, text="#EXTM3U")


class Clock:
    def __init__(self):
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def upstream() -> Upstream:
    return Upstream()


@pytest.fixture
def clock() -> Clock:
    return Clock()


@pytest.fixture
def store() -> FakeStreamConfigStore:
    return FakeStreamConfigStore()


@pytest.fixture
async def http_client(upstream: Upstream):
    async with httpx.AsyncClient(transport=httpx.MockTransport(upstream.handler)) as client:
        yield client


@pytest.fixture
def detector(http_client, store, clock) -> LivenessDetector:
    return LivenessDetector(
        MANIFEST_URL,
        store,
        http_client=http_client,
        cache_ttl=5.0,
        fetch_timeout=3.0,
        clock=clock,
    )


async def settle():
    for _ in range(5):
        await asyncio.sleep(0)


class TestPolling:
    async def test_manifest_available_means_live(self, detector, upstream):
        """A 2xx manifest response should report live."""
        state = await detector.status()

        assert state.phase == LivenessPhase.LIVE
        assert state.is_live is True
        assert state.checked_at is not None
        assert upstream.calls == 1

    async def test_non_2xx_means_offline(self, detector, upstream):
        """A 404 manifest should report offline."""
        upstream.status = 404

        state = await detector.status()

        assert state.is_live is False
        assert state.phase == LivenessPhase.OFFLINE

    @pytest.mark.parametrize(
        "error",
        [
            httpx.ConnectTimeout("timed out"),
            httpx.ReadTimeout("timed out"),
            httpx.ConnectError("refused"),
        ],
    )
    async def test_transport_failure_is_offline(self, detector, upstream, error):
        """Timeouts and network errors should fail safe to offline."""
        upstream.error = error

        state = await detector.status()

        assert state.is_live is False

    async def test_calls_within_ttl_share_one_fetch(self, detector, upstream, clock):
        """Repeated status calls inside the TTL should not refetch."""
        for _ in range(10):
            await detector.status()
            clock.now += 0.4

        assert upstream.calls == 1

    async def test_expired_cache_triggers_new_fetch(self, detector, upstream, clock):
        """Once the TTL elapses the next call should poll again."""
        await detector.status()
        clock.now += 5.0

        await detector.status()

        assert upstream.calls == 2

    async def test_concurrent_callers_get_previous_value(self, detector, upstream):
        """While a poll is in flight other callers get the cached value immediately."""
        upstream.gate = asyncio.Event()

        first = asyncio.create_task(detector.status())
        await settle()
        others = await asyncio.gather(*(detector.status() for _ in range(5)))
        upstream.gate.set()
        result = await first

        assert upstream.calls == 1
        assert all(o.phase == LivenessPhase.UNKNOWN for o in others)
        assert result.phase == LivenessPhase.LIVE


class TestTransitions:
    async def test_offline_to_live_persists_started_at(self, detector, upstream, store, clock):
        """Going live should record started_at once."""
        upstream.status = 404
        await detector.status()
        clock.now += 10

        upstream.status = 200
        state = await detector.status()

        assert state.is_live is True
        assert state.was_live is False
        assert len(store.started_at_writes) == 1
        assert store.started_at_writes[0] is not None

    async def test_live_to_offline_clears_started_at(self, detector, upstream, store, clock):
        """Going offline should clear started_at."""
        await detector.status()
        clock.now += 10

        upstream.status = 503
        await detector.status()

        assert store.started_at_writes[-1] is None
        assert store.view.started_at is None

    async def test_unchanged_state_never_rewrites(self, detector, store, clock):
        """Staying live should not touch started_at again."""
        await detector.status()
        for _ in range(3):
            clock.now += 10
            await detector.status()

        assert len(store.started_at_writes) == 1

    async def test_startup_keeps_existing_started_at_when_live(self, http_client, clock):
        """A restart during a broadcast should not reset started_at."""
        started = utc_now()
        store = FakeStreamConfigStore(StreamConfigView(started_at=started))
        detector = LivenessDetector(MANIFEST_URL, store, http_client=http_client, clock=clock)

        await detector.status()

        assert store.started_at_writes == []
        assert store.view.started_at == started

    async def test_startup_clears_stale_started_at_when_offline(self, http_client, upstream, clock):
        """A started_at left behind by a previous process should be cleared."""
        upstream.status = 404
        store = FakeStreamConfigStore(StreamConfigView(started_at=utc_now()))
        detector = LivenessDetector(MANIFEST_URL, store, http_client=http_client, clock=clock)

        await detector.status()

        assert store.started_at_writes == [None]

    async def test_store_failure_still_flips_state(self, detector, upstream, store, clock):
        """A failed write should be logged, and the cached state should still change."""
        await detector.status()
        clock.now += 10
        store.fail_writes = True

        upstream.status = 404
        state = await detector.status()

        assert state.is_live is False


class TestListeners:
    async def test_listener_receives_transition(self, detector, upstream, clock):
        """Listeners should be told about each flip."""
        received: list[LivenessTransition] = []

        async def listener(transition: LivenessTransition):
            received.append(transition)

        detector.add_listener(listener)
        await detector.status()
        clock.now += 10
        upstream.status = 404
        await detector.status()
        await settle()

        assert [t.is_live for t in received] == [True, False]

    async def test_listener_error_is_absorbed(self, detector):
        """A failing listener should not break polling."""

        async def broken(transition: LivenessTransition):
            raise RuntimeError("boom")

        detector.add_listener(broken)

        state = await detector.status()
        await settle()

        assert state.is_live is True
        await detector.aclose()
