"""Attempt sequencing and exponential backoff for deliveries.

Every HTTP attempt for a delivery, whether the first one from the
dispatcher, a timer-driven retry or an operator's manual retry, goes
through ``RetryScheduler.run_attempt``. A per-delivery lock keeps the
attempts for one delivery strictly sequential.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from courier.exceptions import DeliveryStateError, NotFoundError, PersistenceError
from courier.models import ATTEMPTABLE_STATUSES, Delivery, DeliveryResult, RetryPolicy
from courier.storage import KeyedLock

if TYPE_CHECKING:
    from courier.models import Subscription
    from courier.storage import DeliveryStore, SubscriptionRegistry

    from .delivery import DeliveryExecutor
    from .scheduler import CancelToken, Scheduler

logger = logging.getLogger(__name__)

# Delay before re-trying a delivery snapshot that failed to write.
FLUSH_RETRY_SECONDS = 5.0


def compute_delay_ms(
    policy: RetryPolicy, attempt_number: int, max_delay_ms: int | None = None
) -> float:
    """Delay before the retry that follows failed attempt ``attempt_number``.

    ``base_delay_ms * backoff_multiplier ** (attempt_number - 1)``, clamped
    to ``max_delay_ms`` when a cap is given.
    """
    delay = policy.base_delay_ms * policy.backoff_multiplier ** (attempt_number - 1)
    if max_delay_ms is not None:
        delay = min(delay, float(max_delay_ms))
    return delay


class RetryScheduler:
    """Runs delivery attempts and arms timers for the ones that must retry.

    Example:
        ```python
        retries = RetryScheduler(executor, deliveries, registry, AsyncioScheduler())
        delivery = await retries.run_attempt(delivery.id, subscription, 1)
        ```
    """

    def __init__(
        self,
        executor: DeliveryExecutor,
        deliveries: DeliveryStore,
        registry: SubscriptionRegistry,
        scheduler: Scheduler,
        max_delay_ms: int | None = None,
    ) -> None:
        self._executor = executor
        self._deliveries = deliveries
        self._registry = registry
        self._scheduler = scheduler
        self._max_delay_ms = max_delay_ms
        self._attempt_locks = KeyedLock()
        # delivery_id -> (subscription_id, token)
        self._timers: dict[str, tuple[str, CancelToken]] = {}
        self._flush_token: CancelToken | None = None

    @property
    def pending_timers(self) -> int:
        return len(self._timers)

    def has_timer(self, delivery_id: str) -> bool:
        return delivery_id in self._timers

    def delay_for(self, policy: RetryPolicy, attempt_number: int) -> float:
        return compute_delay_ms(policy, attempt_number, self._max_delay_ms)

    async def run_attempt(
        self,
        delivery_id: str,
        subscription: Subscription,
        attempt_number: int,
        *,
        manual: bool = False,
    ) -> Delivery | None:
        """Make one HTTP attempt and fold the outcome into the delivery.

        Args:
            delivery_id: Delivery to attempt.
            subscription: Subscription supplying headers, secret and retry policy.
            attempt_number: Attempt number to record (1 for the first attempt).
            manual: Operator-initiated retry. Bumps ``manual_retries`` and is
                allowed from ``failed``; refused from ``success``.

        Returns:
            The updated Delivery, or None if it was deleted or the attempt
            was stale and skipped.

        Raises:
            DeliveryStateError: If a manual retry targets a successful delivery.
        """
        async with self._attempt_locks.acquire(delivery_id):
            delivery = self._deliveries.get(delivery_id)
            if delivery is None:
                return None

            if manual:
                if delivery.status == "success":
                    raise DeliveryStateError(delivery_id, delivery.status)
            elif delivery.status not in ATTEMPTABLE_STATUSES or delivery.attempts >= attempt_number:
                logger.debug(
                    "Skipping stale attempt %d for delivery %s (status %s, attempts %d)",
                    attempt_number,
                    delivery_id,
                    delivery.status,
                    delivery.attempts,
                )
                return None

            if not manual and attempt_number > subscription.retry_policy.max_attempts:
                return await self._exhaust(delivery_id, subscription, attempt_number)

            result = await self._executor.attempt(
                subscription,
                delivery.event,
                attempt_number,
                delivery_id=delivery_id,
                url=delivery.url,
            )
            return await self._record(delivery_id, subscription, attempt_number, result, manual)

    async def _record(
        self,
        delivery_id: str,
        subscription: Subscription,
        attempt_number: int,
        result: DeliveryResult,
        manual: bool,
    ) -> Delivery | None:
        policy = subscription.retry_policy
        delay_ms: float | None = None

        if result.success:

            def mutate(d: Delivery) -> None:
                d.mark_success(attempt_number, result)

        elif attempt_number < policy.max_attempts:
            delay_ms = self.delay_for(policy, attempt_number)
            next_retry_at = datetime.now(UTC) + timedelta(milliseconds=delay_ms)

            def mutate(d: Delivery) -> None:
                d.mark_retrying(attempt_number, result, next_retry_at)

        else:

            def mutate(d: Delivery) -> None:
                d.mark_failed(attempt_number, result)

        def apply(d: Delivery) -> None:
            mutate(d)
            if manual:
                d.manual_retries += 1

        updated = await self._deliveries.update(delivery_id, apply, keep_on_failure=True)
        if self._deliveries.dirty:
            logger.error(
                "Attempt %d for delivery %s recorded in memory only", attempt_number, delivery_id
            )
            self._arm_flush()

        if updated is None:
            logger.info("Delivery %s deleted during attempt %d", delivery_id, attempt_number)
            return None

        if delay_ms is not None:
            self._arm(updated, attempt_number + 1, delay_ms)
        elif updated.status == "failed":
            logger.warning(
                "Delivery %s failed after %d attempts: %s",
                delivery_id,
                updated.attempts,
                updated.error,
            )
        return updated

    async def _exhaust(
        self, delivery_id: str, subscription: Subscription, attempt_number: int
    ) -> Delivery | None:
        logger.warning(
            "Delivery %s failed: attempt %d exceeds the %d allowed by subscription %s",
            delivery_id,
            attempt_number,
            subscription.retry_policy.max_attempts,
            subscription.id,
        )
        updated = await self._deliveries.update(
            delivery_id, lambda d: d.mark_exhausted(), keep_on_failure=True
        )
        if self._deliveries.dirty:
            self._arm_flush()
        return updated

    def _arm_flush(self) -> None:
        if self._flush_token is not None:
            return

        async def fire() -> None:
            self._flush_token = None
            try:
                await self._deliveries.flush()
            except PersistenceError as e:
                logger.error("Delivery snapshot still failing: %s", e)
                self._arm_flush()

        self._flush_token = self._scheduler.after(FLUSH_RETRY_SECONDS, fire)

    def _arm(self, delivery: Delivery, next_attempt: int, delay_ms: float) -> None:
        self.cancel(delivery.id)
        delivery_id = delivery.id

        async def fire() -> None:
            entry = self._timers.get(delivery_id)
            if entry is not None and entry[1] is token:
                del self._timers[delivery_id]
            await self._on_timer(delivery_id, next_attempt)

        token = self._scheduler.after(delay_ms / 1000, fire)
        self._timers[delivery_id] = (delivery.subscription_id, token)
        logger.info(
            "Retry %d for delivery %s scheduled in %.0fms", next_attempt, delivery_id, delay_ms
        )

    async def _on_timer(self, delivery_id: str, attempt_number: int) -> None:
        delivery = self._deliveries.get(delivery_id)
        if delivery is None or delivery.is_terminal:
            return

        subscription = self._registry.get(delivery.subscription_id)
        if subscription is None:
            logger.info(
                "Subscription %s gone; dropping retry for delivery %s",
                delivery.subscription_id,
                delivery_id,
            )
            return

        await self.run_attempt(delivery_id, subscription, attempt_number)

    async def retry_now(self, delivery_id: str) -> Delivery:
        """Manually re-attempt a delivery with its current attempt number.

        Any armed timer is cancelled first. The retry policy still decides
        whether a failure is terminal, so the attempt counter never grows
        past ``max_retries + 1``.

        Raises:
            NotFoundError: If the delivery or its subscription does not exist.
            DeliveryStateError: If the delivery already succeeded.
        """
        delivery = self._deliveries.get(delivery_id)
        if delivery is None:
            raise NotFoundError("delivery", delivery_id)
        if delivery.status == "success":
            raise DeliveryStateError(delivery_id, delivery.status)

        subscription = self._registry.get(delivery.subscription_id)
        if subscription is None:
            raise NotFoundError("subscription", delivery.subscription_id)

        self.cancel(delivery_id)
        updated = await self.run_attempt(
            delivery_id, subscription, max(delivery.attempts, 1), manual=True
        )
        if updated is None:
            raise NotFoundError("delivery", delivery_id)
        return updated

    def resume(self, deliveries: list[Delivery]) -> int:
        """Re-arm attempts for deliveries restored from a snapshot.

        ``retrying`` deliveries fire at their recorded ``next_retry_at`` (or
        immediately if it has passed); ``pending`` ones get their first
        attempt right away.

        Returns:
            Number of timers armed.
        """
        now = datetime.now(UTC)
        armed = 0
        for delivery in deliveries:
            if delivery.status == "retrying":
                due = delivery.next_retry_at or now
                delay_ms = max((due - now).total_seconds() * 1000, 0.0)
                self._arm(delivery, delivery.attempts + 1, delay_ms)
            elif delivery.status == "pending" and delivery.attempts == 0:
                self._arm(delivery, 1, 0.0)
            else:
                continue
            armed += 1
        if armed:
            logger.info("Resumed %d unfinished deliveries", armed)
        return armed

    def cancel(self, delivery_id: str) -> bool:
        """Disarm the retry timer for a delivery, if any."""
        entry = self._timers.pop(delivery_id, None)
        if entry is None:
            return False
        entry[1].cancel()
        return True

    def cancel_for_subscription(self, subscription_id: str) -> int:
        """Disarm every retry timer belonging to a subscription."""
        ids = [d_id for d_id, (sub_id, _) in self._timers.items() if sub_id == subscription_id]
        for delivery_id in ids:
            self.cancel(delivery_id)
        if ids:
            logger.info("Cancelled %d retries for subscription %s", len(ids), subscription_id)
        return len(ids)

    def cancel_all(self) -> None:
        for delivery_id in list(self._timers):
            self.cancel(delivery_id)
        if self._flush_token is not None:
            self._flush_token.cancel()
            self._flush_token = None


__all__ = ["RetryScheduler", "compute_delay_ms"]
