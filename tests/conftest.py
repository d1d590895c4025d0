"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import sys
from collections.abc import Callable
from pathlib import Path

import httpx
import pytest

from courier.config import Settings
from courier.models import Event, Subscription
from courier.service import WebhookService
from courier.storage import InMemoryAdapter
from courier.webhooks import CancelToken, Scheduler
from courier.webhooks.scheduler import TimerCallback

# Add tests directory to path so helpers can be imported
tests_dir = Path(__file__).parent
if str(tests_dir) not in sys.path:
    sys.path.insert(0, str(tests_dir))


class _Timer:
    def __init__(self, due: float, callback: TimerCallback, seq: int) -> None:
        self.due = due
        self.callback = callback
        self.seq = seq


class FakeScheduler(Scheduler):
    """Deterministic scheduler: timers fire only when a test advances time.

    ``delays`` records every requested delay in seconds, in arming order.
    """

    def __init__(self) -> None:
        self.now = 0.0
        self.delays: list[float] = []
        self._timers: list[_Timer] = []
        self._seq = 0

    def after(self, delay_seconds: float, callback: TimerCallback) -> CancelToken:
        self._seq += 1
        timer = _Timer(self.now + delay_seconds, callback, self._seq)
        self._timers.append(timer)
        self.delays.append(delay_seconds)

        def disarm() -> None:
            if timer in self._timers:
                self._timers.remove(timer)

        return CancelToken(disarm)

    @property
    def pending(self) -> int:
        return len(self._timers)

    def _pop_next(self, until: float | None = None) -> _Timer | None:
        if not self._timers:
            return None
        timer = min(self._timers, key=lambda t: (t.due, t.seq))
        if until is not None and timer.due > until:
            return None
        self._timers.remove(timer)
        return timer

    async def run_next(self) -> bool:
        """Fire the earliest timer. Returns False if none is armed."""
        timer = self._pop_next()
        if timer is None:
            return False
        self.now = max(self.now, timer.due)
        await timer.callback()
        return True

    async def advance(self, seconds: float) -> int:
        """Move time forward, firing every timer that falls due. Returns fired count."""
        target = self.now + seconds
        fired = 0
        while (timer := self._pop_next(until=target)) is not None:
            self.now = max(self.now, timer.due)
            await timer.callback()
            fired += 1
        self.now = target
        return fired

    async def run_all(self, max_steps: int = 100) -> int:
        """Fire timers until none are left (bounded to catch runaway re-arming)."""
        fired = 0
        while fired < max_steps and await self.run_next():
            fired += 1
        return fired

    async def close(self) -> None:
        self._timers.clear()


class RecordingEndpoint:
    """httpx.MockTransport handler that records requests.

    Replies with ``statuses`` in order, repeating the last one. A status of
    0 raises a connection error instead of responding.
    """

    def __init__(self, *statuses: int, body: bytes = b'{"ok":true}') -> None:
        self.statuses = list(statuses) or [200]
        self.body = body
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        index = min(len(self.requests), len(self.statuses) - 1)
        self.requests.append(request)
        status = self.statuses[index]
        if status == 0:
            raise httpx.ConnectError("Connection refused", request=request)
        return httpx.Response(status, content=self.body)

    @property
    def calls(self) -> int:
        return len(self.requests)


def make_client(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.fixture
def scheduler() -> FakeScheduler:
    """Create a deterministic scheduler."""
    return FakeScheduler()


@pytest.fixture
def adapter() -> InMemoryAdapter:
    """Create an in-memory persistence adapter."""
    return InMemoryAdapter()


@pytest.fixture
def endpoint() -> RecordingEndpoint:
    """Create a subscriber endpoint that always answers 200."""
    return RecordingEndpoint(200)


@pytest.fixture
def test_settings() -> Settings:
    """Settings for tests: in-memory, small queue."""
    return Settings(env="test", data_dir=None, queue_capacity=100)


@pytest.fixture
def service(
    test_settings: Settings,
    adapter: InMemoryAdapter,
    scheduler: FakeScheduler,
    endpoint: RecordingEndpoint,
) -> WebhookService:
    """Create a WebhookService wired to fakes. Call ``initialize(start_workers=False)``."""
    return WebhookService.create(
        test_settings,
        adapter=adapter,
        scheduler=scheduler,
        http_client=make_client(endpoint),
    )


@pytest.fixture
def sample_subscription() -> Subscription:
    """Create a sample subscription."""
    return Subscription(
        id="sub_test123",
        url="https://example.com/hook",
        events=["document.processed"],
        secret="test_secret",
    )


@pytest.fixture
def sample_event() -> Event:
    """Create a sample event."""
    return Event(
        id="evt_test456",
        type="document.processed",
        data={"documentId": "doc_1", "fileName": "Report.PDF", "pages": 12},
        source="ocr",
        user_id="user_1",
    )
