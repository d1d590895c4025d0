"""Tests for attempt sequencing, backoff and manual retry."""

from __future__ import annotations

import pytest
from conftest import FakeScheduler, RecordingEndpoint, make_client

from courier.exceptions import DeliveryStateError, NotFoundError, PersistenceError
from courier.models import Delivery, Event, RetryPolicy, Subscription
from courier.storage import DeliveryStore, InMemoryAdapter, SubscriptionRegistry
from courier.webhooks import DeliveryExecutor, RetryScheduler, compute_delay_ms


class FlakyAdapter(InMemoryAdapter):
    """In-memory adapter that fails the next ``failures`` delivery snapshots."""

    def __init__(self, failures: int = 1) -> None:
        super().__init__()
        self.failures = failures

    async def save(self, collection, records):
        if collection == "deliveries" and self.failures > 0:
            self.failures -= 1
            raise PersistenceError("disk full")
        await super().save(collection, records)


class Harness:
    """Retry scheduler wired to in-memory stores and a scripted endpoint."""

    def __init__(
        self,
        endpoint: RecordingEndpoint,
        max_delay_ms: int | None = None,
        adapter: InMemoryAdapter | None = None,
    ) -> None:
        adapter = adapter or InMemoryAdapter()
        self.endpoint = endpoint
        self.scheduler = FakeScheduler()
        self.registry = SubscriptionRegistry(adapter)
        self.deliveries = DeliveryStore(adapter)
        self.retries = RetryScheduler(
            DeliveryExecutor(client=make_client(endpoint)),
            self.deliveries,
            self.registry,
            self.scheduler,
            max_delay_ms=max_delay_ms,
        )

    async def subscribe(self, **retry: float) -> Subscription:
        return await self.registry.register(
            {
                "url": "https://ex.com/hook",
                "events": ["doc.processed"],
                "retry_policy": retry or None,
            }
        )

    async def new_delivery(self, subscription: Subscription) -> Delivery:
        event = Event(type="doc.processed", data={"n": 1})
        delivery = Delivery(
            subscription_id=subscription.id,
            event_id=event.id,
            url=str(subscription.url),
            event=event,
        )
        return await self.deliveries.create(delivery)


class TestComputeDelay:
    """Tests for the backoff law."""

    def test_exponential(self) -> None:
        policy = RetryPolicy(max_retries=5, base_delay_ms=100, backoff_multiplier=2)
        assert [compute_delay_ms(policy, n) for n in range(1, 5)] == [100, 200, 400, 800]

    def test_multiplier_one_is_constant(self) -> None:
        policy = RetryPolicy(base_delay_ms=250, backoff_multiplier=1)
        assert {compute_delay_ms(policy, n) for n in range(1, 6)} == {250}

    def test_non_decreasing(self) -> None:
        policy = RetryPolicy(max_retries=10, base_delay_ms=1000, backoff_multiplier=1.5)
        delays = [compute_delay_ms(policy, n) for n in range(1, 11)]
        assert delays == sorted(delays)

    def test_cap(self) -> None:
        policy = RetryPolicy(max_retries=10, base_delay_ms=60_000, backoff_multiplier=5)
        assert compute_delay_ms(policy, 6, max_delay_ms=3_600_000) == 3_600_000
        assert compute_delay_ms(policy, 6) == 60_000 * 5**5


class TestRunAttempt:
    """Tests for the attempt path and state transitions."""

    @pytest.mark.asyncio
    async def test_first_attempt_success(self) -> None:
        h = Harness(RecordingEndpoint(200))
        sub = await h.subscribe()
        delivery = await h.new_delivery(sub)

        updated = await h.retries.run_attempt(delivery.id, sub, 1)

        assert updated.status == "success"
        assert updated.attempts == 1
        assert updated.response_status == 200
        assert updated.completed_at is not None
        assert h.scheduler.pending == 0

    @pytest.mark.asyncio
    async def test_gives_up_after_budget(self) -> None:
        """maxRetries=2: three attempts, delays 100ms then 200ms, final status failed."""
        h = Harness(RecordingEndpoint(500, 500, 500, 200))
        sub = await h.subscribe(max_retries=2, base_delay_ms=100, backoff_multiplier=2)
        delivery = await h.new_delivery(sub)

        first = await h.retries.run_attempt(delivery.id, sub, 1)
        assert first.status == "retrying"
        assert first.next_retry_at is not None

        await h.scheduler.run_all()

        final = h.deliveries.get(delivery.id)
        assert final.status == "failed"
        assert final.attempts == 3
        assert final.next_retry_at is None
        assert h.endpoint.calls == 3
        assert h.scheduler.delays == pytest.approx([0.1, 0.2])
        assert h.retries.pending_timers == 0

    @pytest.mark.asyncio
    async def test_recovers_on_retry(self) -> None:
        h = Harness(RecordingEndpoint(503, 200))
        sub = await h.subscribe(max_retries=3, base_delay_ms=1000, backoff_multiplier=2)
        delivery = await h.new_delivery(sub)

        await h.retries.run_attempt(delivery.id, sub, 1)
        await h.scheduler.advance(1.0)

        final = h.deliveries.get(delivery.id)
        assert final.status == "success"
        assert final.attempts == 2
        assert final.error is None

    @pytest.mark.asyncio
    async def test_zero_retries_fails_immediately(self) -> None:
        h = Harness(RecordingEndpoint(500))
        sub = await h.subscribe(max_retries=0)
        delivery = await h.new_delivery(sub)

        updated = await h.retries.run_attempt(delivery.id, sub, 1)

        assert updated.status == "failed"
        assert h.scheduler.pending == 0

    @pytest.mark.asyncio
    async def test_timer_not_fired_before_delay(self) -> None:
        h = Harness(RecordingEndpoint(500))
        sub = await h.subscribe(max_retries=2, base_delay_ms=1000)
        delivery = await h.new_delivery(sub)

        await h.retries.run_attempt(delivery.id, sub, 1)
        assert await h.scheduler.advance(0.5) == 0
        assert h.endpoint.calls == 1

    @pytest.mark.asyncio
    async def test_stale_attempt_skipped(self) -> None:
        """An attempt number already recorded is not re-sent."""
        h = Harness(RecordingEndpoint(500))
        sub = await h.subscribe(max_retries=3)
        delivery = await h.new_delivery(sub)
        await h.retries.run_attempt(delivery.id, sub, 1)

        assert await h.retries.run_attempt(delivery.id, sub, 1) is None
        assert h.endpoint.calls == 1

    @pytest.mark.asyncio
    async def test_cap_applied_to_timer(self) -> None:
        h = Harness(RecordingEndpoint(500), max_delay_ms=1500)
        sub = await h.subscribe(max_retries=3, base_delay_ms=1000, backoff_multiplier=4)
        delivery = await h.new_delivery(sub)

        await h.retries.run_attempt(delivery.id, sub, 1)
        await h.scheduler.run_next()

        assert h.scheduler.delays == pytest.approx([1.0, 1.5])


class TestLoweredBudget:
    """Retry policy changes made while a delivery is retrying."""

    @pytest.mark.asyncio
    async def test_armed_retry_beyond_new_budget_fails_without_sending(self) -> None:
        h = Harness(RecordingEndpoint(500))
        sub = await h.subscribe(max_retries=3, base_delay_ms=100, backoff_multiplier=2)
        delivery = await h.new_delivery(sub)
        await h.retries.run_attempt(delivery.id, sub, 1)
        await h.scheduler.advance(0.1)
        assert h.deliveries.get(delivery.id).attempts == 2

        await h.registry.update(sub.id, {"retry_policy": {"max_retries": 1}})
        await h.scheduler.run_all()

        final = h.deliveries.get(delivery.id)
        assert final.status == "failed"
        assert final.attempts == 2
        assert final.completed_at is not None
        assert final.next_retry_at is None
        assert h.endpoint.calls == 2
        assert h.retries.pending_timers == 0

    @pytest.mark.asyncio
    async def test_raised_budget_keeps_retrying(self) -> None:
        h = Harness(RecordingEndpoint(500, 500, 200))
        sub = await h.subscribe(max_retries=1, base_delay_ms=100)
        delivery = await h.new_delivery(sub)
        await h.retries.run_attempt(delivery.id, sub, 1)

        raised = await h.registry.update(sub.id, {"retry_policy": {"max_retries": 3}})
        await h.scheduler.run_next()
        assert h.deliveries.get(delivery.id).status == "retrying"

        await h.scheduler.run_all()

        final = h.deliveries.get(delivery.id)
        assert final.status == "success"
        assert final.attempts == 3
        assert final.attempts <= raised.retry_policy.max_retries + 1


class TestSnapshotFailure:
    """Attempt outcomes survive a failed delivery snapshot."""

    async def _setup(
        self, endpoint: RecordingEndpoint, failures: int, **retry: float
    ) -> tuple[Harness, FlakyAdapter, Delivery, Subscription]:
        adapter = FlakyAdapter(failures=0)
        h = Harness(endpoint, adapter=adapter)
        sub = await h.subscribe(**retry)
        delivery = await h.new_delivery(sub)
        adapter.failures = failures
        return h, adapter, delivery, sub

    @pytest.mark.asyncio
    async def test_success_kept_in_memory_and_flushed(self) -> None:
        """A 2xx answer is never lost because the write after it failed."""
        h, adapter, delivery, sub = await self._setup(RecordingEndpoint(200), failures=1)

        updated = await h.retries.run_attempt(delivery.id, sub, 1)

        assert updated.status == "success"
        assert h.deliveries.get(delivery.id).status == "success"
        assert h.deliveries.dirty
        assert h.endpoint.calls == 1
        assert h.scheduler.pending == 1

        await h.scheduler.run_all()

        assert not h.deliveries.dirty
        assert (await adapter.load("deliveries"))[0]["status"] == "success"
        assert h.endpoint.calls == 1

    @pytest.mark.asyncio
    async def test_retrying_still_arms_next_attempt(self) -> None:
        h, _, delivery, sub = await self._setup(
            RecordingEndpoint(500, 200), failures=1, max_retries=2, base_delay_ms=100
        )

        updated = await h.retries.run_attempt(delivery.id, sub, 1)

        assert updated.status == "retrying"
        assert h.retries.has_timer(delivery.id)

        await h.scheduler.run_all()

        final = h.deliveries.get(delivery.id)
        assert final.status == "success"
        assert final.attempts == 2
        assert not h.deliveries.dirty

    @pytest.mark.asyncio
    async def test_flush_retried_until_write_succeeds(self) -> None:
        h, adapter, delivery, sub = await self._setup(
            RecordingEndpoint(500), failures=3, max_retries=0
        )

        await h.retries.run_attempt(delivery.id, sub, 1)
        await h.scheduler.run_all()

        assert not h.deliveries.dirty
        assert h.scheduler.delays == [5.0, 5.0, 5.0]
        saved = (await adapter.load("deliveries"))[0]
        assert saved["status"] == "failed"
        assert saved["attempts"] == 1

    @pytest.mark.asyncio
    async def test_cancel_all_disarms_flush(self) -> None:
        h, _, delivery, sub = await self._setup(RecordingEndpoint(200), failures=1)
        await h.retries.run_attempt(delivery.id, sub, 1)
        assert h.scheduler.pending == 1

        h.retries.cancel_all()

        assert h.scheduler.pending == 0
        assert h.deliveries.dirty


class TestTimerCancellation:
    """Tests for timers outliving their delivery or subscription."""

    @pytest.mark.asyncio
    async def test_subscription_deleted_timer_is_noop(self) -> None:
        """Timer fires with no HTTP call and leaves status unchanged."""
        h = Harness(RecordingEndpoint(500))
        sub = await h.subscribe(max_retries=3, base_delay_ms=100)
        delivery = await h.new_delivery(sub)
        await h.retries.run_attempt(delivery.id, sub, 1)

        await h.registry.delete(sub.id)
        await h.scheduler.run_all()

        assert h.endpoint.calls == 1
        assert h.deliveries.get(delivery.id).status == "retrying"

    @pytest.mark.asyncio
    async def test_delivery_deleted_timer_is_noop(self) -> None:
        h = Harness(RecordingEndpoint(500))
        sub = await h.subscribe(max_retries=3, base_delay_ms=100)
        delivery = await h.new_delivery(sub)
        await h.retries.run_attempt(delivery.id, sub, 1)

        await h.deliveries.delete(delivery.id)
        await h.scheduler.run_all()

        assert h.endpoint.calls == 1

    @pytest.mark.asyncio
    async def test_cancel_for_subscription(self) -> None:
        h = Harness(RecordingEndpoint(500))
        sub = await h.subscribe(max_retries=3, base_delay_ms=100)
        for _ in range(3):
            delivery = await h.new_delivery(sub)
            await h.retries.run_attempt(delivery.id, sub, 1)

        assert h.retries.pending_timers == 3
        assert h.retries.cancel_for_subscription(sub.id) == 3
        assert h.scheduler.pending == 0
        assert h.retries.pending_timers == 0

    @pytest.mark.asyncio
    async def test_cancel_unknown_delivery(self) -> None:
        h = Harness(RecordingEndpoint(200))
        assert h.retries.cancel("dlv_missing") is False


class TestRetryNow:
    """Tests for operator-initiated retries."""

    @pytest.mark.asyncio
    async def test_rejected_on_success(self) -> None:
        h = Harness(RecordingEndpoint(200))
        sub = await h.subscribe()
        delivery = await h.new_delivery(sub)
        await h.retries.run_attempt(delivery.id, sub, 1)

        with pytest.raises(DeliveryStateError):
            await h.retries.retry_now(delivery.id)
        assert h.endpoint.calls == 1

    @pytest.mark.asyncio
    async def test_failed_delivery_gets_one_more_attempt(self) -> None:
        h = Harness(RecordingEndpoint(500, 500, 200))
        sub = await h.subscribe(max_retries=1, base_delay_ms=100)
        delivery = await h.new_delivery(sub)
        await h.retries.run_attempt(delivery.id, sub, 1)
        await h.scheduler.run_all()
        assert h.deliveries.get(delivery.id).status == "failed"

        await h.registry.update(sub.id, {"url": "https://new.example.com/hook"})
        updated = await h.retries.retry_now(delivery.id)

        assert h.endpoint.calls == 3
        assert h.endpoint.requests[-1].url.host == "ex.com"
        assert updated.status == "success"
        assert updated.attempts == 2
        assert updated.manual_retries == 1

    @pytest.mark.asyncio
    async def test_failed_retry_stays_failed_within_budget(self) -> None:
        """A failing manual retry does not grow attempts past max_retries + 1."""
        h = Harness(RecordingEndpoint(500))
        sub = await h.subscribe(max_retries=1, base_delay_ms=100)
        delivery = await h.new_delivery(sub)
        await h.retries.run_attempt(delivery.id, sub, 1)
        await h.scheduler.run_all()

        updated = await h.retries.retry_now(delivery.id)

        assert updated.status == "failed"
        assert updated.attempts == 2
        assert h.scheduler.pending == 0

    @pytest.mark.asyncio
    async def test_cancels_armed_timer(self) -> None:
        h = Harness(RecordingEndpoint(500, 200))
        sub = await h.subscribe(max_retries=3, base_delay_ms=100)
        delivery = await h.new_delivery(sub)
        await h.retries.run_attempt(delivery.id, sub, 1)
        assert h.scheduler.pending == 1

        updated = await h.retries.retry_now(delivery.id)

        assert updated.status == "success"
        assert h.scheduler.pending == 0
        assert h.endpoint.calls == 2

    @pytest.mark.asyncio
    async def test_missing_delivery(self) -> None:
        h = Harness(RecordingEndpoint(200))
        with pytest.raises(NotFoundError):
            await h.retries.retry_now("dlv_missing")

    @pytest.mark.asyncio
    async def test_missing_subscription(self) -> None:
        h = Harness(RecordingEndpoint(500))
        sub = await h.subscribe(max_retries=0)
        delivery = await h.new_delivery(sub)
        await h.retries.run_attempt(delivery.id, sub, 1)
        await h.registry.delete(sub.id)

        with pytest.raises(NotFoundError):
            await h.retries.retry_now(delivery.id)


class TestResume:
    """Tests for re-arming deliveries loaded from a snapshot."""

    @pytest.mark.asyncio
    async def test_resume_retrying_and_pending(self) -> None:
        h = Harness(RecordingEndpoint(200))
        sub = await h.subscribe(max_retries=3)
        pending = await h.new_delivery(sub)
        retrying = await h.new_delivery(sub)
        await h.deliveries.update(retrying.id, lambda d: setattr(d, "status", "retrying"))
        await h.deliveries.update(retrying.id, lambda d: setattr(d, "attempts", 1))

        armed = h.retries.resume(h.deliveries.all())
        await h.scheduler.run_all()

        assert armed == 2
        assert h.deliveries.get(pending.id).status == "success"
        assert h.deliveries.get(retrying.id).attempts == 2
