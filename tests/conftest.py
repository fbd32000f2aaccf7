"""
Pytest configuration and shared fixtures

Provides fake clocks, controllable sleeps, mock HTTP transports and sample
dashboard data shared by the realtime, validation, job and API tests.
"""

import asyncio
from datetime import UTC, datetime, timedelta

import httpx
import pytest

from dashsync.async_http_client import AsyncSecureHTTPClient
from dashsync.cache import MemoryCache
from dashsync.secure_config import PollingConfig, RealtimeConfig, SyncJobConfig, SyncTarget

# ===== Time Fixtures =====


class FakeClock:
    """Wall clock that only moves when told to."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FakeMonotonic:
    """Monotonic clock in seconds that only moves when told to."""

    def __init__(self, start: float = 1000.0):
        self.value = start

    def __call__(self) -> float:
        return self.value

    def advance(self, seconds: float) -> None:
        self.value += seconds


class ManualSleep:
    """
    Awaitable sleep that blocks until the test releases it.

    Every requested delay is recorded in `delays`.
    """

    def __init__(self):
        self.delays: list[float] = []
        self._waiters: list[asyncio.Future] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        waiter = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        await waiter

    @property
    def pending(self) -> int:
        return sum(1 for w in self._waiters if not w.done())

    def release(self) -> None:
        """Wake every sleeper currently waiting."""
        waiters, self._waiters = self._waiters, []
        for waiter in waiters:
            if not waiter.done():
                waiter.set_result(None)


class InstantSleep:
    """Awaitable sleep that records the delay and returns on the next loop turn."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)


async def _settle(turns: int = 50) -> None:
    for _ in range(turns):
        await asyncio.sleep(0)


async def _wait_until(predicate, turns: int = 2000) -> None:
    for _ in range(turns):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("Condition not reached")


@pytest.fixture
def sample_timestamp():
    """Provide a consistent timestamp for testing"""
    return datetime(2025, 1, 15, 12, 0, 0, tzinfo=UTC)


@pytest.fixture
def clock(sample_timestamp):
    return FakeClock(sample_timestamp)


@pytest.fixture
def monotonic():
    return FakeMonotonic()


@pytest.fixture
def manual_sleep():
    return ManualSleep()


@pytest.fixture
def manual_sleep_factory():
    """Build independent ManualSleep instances: `manual_sleep_factory()`."""
    return ManualSleep


@pytest.fixture
def instant_sleep_factory():
    return InstantSleep


@pytest.fixture
def instant_sleep():
    return InstantSleep()


@pytest.fixture
def settle():
    """Let pending tasks run: `await settle()`."""
    return _settle


@pytest.fixture
def wait_until():
    """Run the loop until a condition holds: `await wait_until(lambda: ...)`."""
    return _wait_until


# ===== HTTP Fixtures =====


@pytest.fixture
def http_factory():
    """
    Build an AsyncSecureHTTPClient factory backed by httpx.MockTransport.

    Example:
        factory = http_factory(lambda request: httpx.Response(200, json={}))
    """

    def build(handler):
        transport = httpx.MockTransport(handler)
        return lambda: AsyncSecureHTTPClient(http2=False, transport=transport)

    return build


# ===== Config Fixtures =====


@pytest.fixture
def realtime_config():
    return RealtimeConfig(server_url="http://dashboard.test")


@pytest.fixture
def offline_realtime_config():
    return RealtimeConfig(server_url="http://dashboard.test", push_enabled=False)


@pytest.fixture
def polling_config():
    return PollingConfig()


@pytest.fixture
def sync_target():
    return SyncTarget("Product - Data as a Service", "Product", "Data Team")


@pytest.fixture
def sync_job_config(sync_target):
    return SyncJobConfig(projects=(sync_target,))


# ===== Cache and Data Fixtures =====


@pytest.fixture
def cache(monotonic):
    return MemoryCache(clock=monotonic)


@pytest.fixture
def upstream_sprints():
    """Sprints as returned by the upstream adapter"""
    return {
        "sprints": [
            {"id": "s-11", "name": "Sprint 11", "startDate": "2024-12-18", "endDate": "2024-12-31"},
            {"id": "s-12", "name": "Sprint 12", "startDate": "2025-01-01", "endDate": "2025-01-14"},
        ]
    }


@pytest.fixture
def upstream_counts():
    """Current-sprint work item counts as returned by the upstream adapter"""
    return {"total": 100, "bugs": 10, "stories": 50, "tasks": 40, "iteration": "Sprint 12"}


class FakeUpstream:
    """UpstreamAdapter returning canned data and counting calls."""

    def __init__(self, sprints=None, counts=None, error: Exception | None = None):
        self.sprints = sprints
        self.counts = counts
        self.error = error
        self.calls: list[tuple[str, str, str]] = []

    async def get_accurate_sprint_dates(self, project, team):
        self.calls.append(("sprints", project, team))
        if self.error is not None:
            raise self.error
        return self.sprints

    async def get_current_sprint_work_items(self, project, team):
        self.calls.append(("work_items", project, team))
        if self.error is not None:
            raise self.error
        return self.counts


@pytest.fixture
def fake_upstream(upstream_sprints, upstream_counts):
    return FakeUpstream(sprints=upstream_sprints, counts=upstream_counts)


@pytest.fixture
def upstream_factory():
    """Build a FakeUpstream with custom data: `upstream_factory(sprints=..., counts=...)`."""
    return FakeUpstream
