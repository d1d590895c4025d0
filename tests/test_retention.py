"""Unit tests for the delivery retention sweeper."""

from datetime import UTC, datetime, timedelta

import pytest
from conftest import FakeScheduler

from courier.exceptions import PersistenceError
from courier.models import Delivery, Event
from courier.storage import DeliveryStore, InMemoryAdapter
from courier.webhooks import RetentionSweeper


async def _seed(store, *ages_days):
    now = datetime.now(UTC)
    for age in ages_days:
        event = Event(type="x")
        await store.create(
            Delivery(
                subscription_id="sub_1",
                event_id=event.id,
                url="https://example.com/h",
                event=event,
                created_at=now - timedelta(days=age),
            )
        )


class TestSweep:
    """Tests for a single sweep."""

    @pytest.mark.asyncio
    async def test_purges_only_old_deliveries(self):
        store = DeliveryStore(InMemoryAdapter())
        await _seed(store, 45, 31, 29, 1)
        sweeper = RetentionSweeper(store, FakeScheduler(), retention_days=30)

        assert await sweeper.sweep() == 2
        assert len(store) == 2
        assert sweeper.last_run_at is not None

    @pytest.mark.asyncio
    async def test_idempotent(self):
        """A second sweep in the same window deletes nothing."""
        store = DeliveryStore(InMemoryAdapter())
        await _seed(store, 40, 2)
        sweeper = RetentionSweeper(store, FakeScheduler(), retention_days=30)
        now = datetime.now(UTC)

        assert await sweeper.sweep(now) == 1
        assert await sweeper.sweep(now) == 0

    @pytest.mark.asyncio
    async def test_explicit_now(self):
        store = DeliveryStore(InMemoryAdapter())
        await _seed(store, 5)
        sweeper = RetentionSweeper(store, FakeScheduler(), retention_days=7)

        assert await sweeper.sweep(datetime.now(UTC) + timedelta(days=3)) == 1


class TestSchedule:
    """Tests for the recurring schedule."""

    @pytest.mark.asyncio
    async def test_rearms_after_each_run(self):
        scheduler = FakeScheduler()
        store = DeliveryStore(InMemoryAdapter())
        sweeper = RetentionSweeper(store, scheduler, retention_days=30, interval_hours=1)

        sweeper.start()
        assert scheduler.delays == [3600]

        await scheduler.advance(3600)
        await scheduler.advance(3600)

        assert scheduler.delays == [3600, 3600, 3600]
        assert sweeper.scheduled

    @pytest.mark.asyncio
    async def test_start_twice_arms_once(self):
        scheduler = FakeScheduler()
        sweeper = RetentionSweeper(DeliveryStore(InMemoryAdapter()), scheduler)
        sweeper.start()
        sweeper.start()
        assert scheduler.pending == 1

    @pytest.mark.asyncio
    async def test_stop_disarms(self):
        scheduler = FakeScheduler()
        sweeper = RetentionSweeper(DeliveryStore(InMemoryAdapter()), scheduler)
        sweeper.start()
        sweeper.stop()

        assert scheduler.pending == 0
        assert not sweeper.scheduled

    @pytest.mark.asyncio
    async def test_failure_keeps_schedule(self):
        """A failed sweep is logged and the next one is still armed."""

        class BrokenStore(DeliveryStore):
            async def purge_older_than(self, cutoff):
                raise PersistenceError("disk gone")

        scheduler = FakeScheduler()
        sweeper = RetentionSweeper(BrokenStore(InMemoryAdapter()), scheduler, interval_hours=1)
        sweeper.start()

        await scheduler.run_next()

        assert scheduler.pending == 1
        assert sweeper.last_run_at is None
