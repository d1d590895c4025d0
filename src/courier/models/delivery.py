"""Delivery models for tracking event callbacks to subscribers.

A Delivery is one logical effort to get an event to a subscription.
It may take several HTTP attempts; each attempt's outcome is folded
into the record.
"""

from datetime import UTC, datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from .base import generate_id
from .event import Event

# Delivery status
DeliveryStatus = Literal["pending", "success", "failed", "retrying"]

TERMINAL_STATUSES: frozenset[str] = frozenset({"success", "failed"})
ATTEMPTABLE_STATUSES: frozenset[str] = frozenset({"pending", "retrying"})


class DeliveryResult(BaseModel):
    """Outcome of a single HTTP attempt.

    Attributes:
        success: True iff a 2xx response was received.
        status_code: HTTP response status (None on network failure).
        response_body: Response body, truncated.
        error: Description of the failure, if any.
        duration_ms: Wall-clock time of the attempt.
        started_at: When the attempt began.
    """

    model_config = ConfigDict(extra="forbid")

    success: bool
    status_code: int | None = None
    response_body: str | None = None
    error: str | None = None
    duration_ms: float = Field(default=0.0, ge=0.0)
    started_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class Delivery(BaseModel):
    """Record of an event delivery to one subscription.

    Attributes:
        id: Unique identifier for this delivery.
        subscription_id: Subscription being delivered to.
        event_id: ID of the event being delivered.
        url: Target URL captured at dispatch time.
        event: Snapshot of the event, resent on retries.
        status: pending, success, failed or retrying.
        attempts: HTTP attempts made so far.
        manual_retries: Operator-initiated re-attempts.
        last_attempt_at: When the most recent attempt started.
        next_retry_at: When the scheduled retry fires (status retrying only).
        response_status: HTTP status of the most recent attempt.
        response_body: Truncated body of the most recent response.
        error: Error message of the most recent failed attempt.
        duration_ms: Duration of the most recent attempt.
        created_at: When the delivery was created.
        completed_at: When a terminal status was reached.
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=lambda: generate_id("dlv"))
    subscription_id: str
    event_id: str
    url: str
    event: Event
    status: DeliveryStatus = Field(default="pending")
    attempts: int = Field(default=0, ge=0)
    manual_retries: int = Field(default=0, ge=0)
    last_attempt_at: datetime | None = None
    next_retry_at: datetime | None = None
    response_status: int | None = None
    response_body: str | None = None
    error: str | None = None
    duration_ms: float | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    completed_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def _apply_attempt(self, attempt_number: int, result: DeliveryResult) -> None:
        self.attempts = max(self.attempts, attempt_number)
        self.last_attempt_at = result.started_at
        self.response_status = result.status_code
        self.response_body = result.response_body
        self.duration_ms = result.duration_ms
        self.error = result.error

    def mark_success(self, attempt_number: int, result: DeliveryResult) -> "Delivery":
        """Record a 2xx attempt."""
        self._apply_attempt(attempt_number, result)
        self.status = "success"
        self.error = None
        self.next_retry_at = None
        self.completed_at = datetime.now(UTC)
        return self

    def mark_retrying(
        self, attempt_number: int, result: DeliveryResult, next_retry_at: datetime
    ) -> "Delivery":
        """Record a failed attempt with another attempt scheduled."""
        self._apply_attempt(attempt_number, result)
        self.status = "retrying"
        self.next_retry_at = next_retry_at
        return self

    def mark_failed(self, attempt_number: int, result: DeliveryResult) -> "Delivery":
        """Record a failed attempt with the retry budget exhausted."""
        self._apply_attempt(attempt_number, result)
        self.status = "failed"
        self.next_retry_at = None
        self.completed_at = datetime.now(UTC)
        return self

    def mark_exhausted(self) -> "Delivery":
        """Fail without a new attempt once the retry budget has shrunk below it."""
        self.status = "failed"
        self.next_retry_at = None
        self.completed_at = datetime.now(UTC)
        return self


class DeliveryPage(BaseModel):
    """One page of deliveries, newest first."""

    items: list[Delivery]
    total: int
    limit: int
    offset: int

    @property
    def has_more(self) -> bool:
        return self.offset + self.limit < self.total


class WebhookStats(BaseModel):
    """Aggregate counters across subscriptions and deliveries."""

    total_subscriptions: int = 0
    active_subscriptions: int = 0
    total_deliveries: int = 0
    successful_deliveries: int = 0
    failed_deliveries: int = 0
    retrying_deliveries: int = 0
    pending_deliveries: int = 0
    average_response_time_ms: float = 0.0

    @property
    def success_rate(self) -> float:
        """Percentage of deliveries that succeeded."""
        if self.total_deliveries == 0:
            return 0.0
        return self.successful_deliveries / self.total_deliveries * 100

    @property
    def failure_rate(self) -> float:
        """Percentage of deliveries that failed terminally."""
        if self.total_deliveries == 0:
            return 0.0
        return self.failed_deliveries / self.total_deliveries * 100


__all__ = [
    "ATTEMPTABLE_STATUSES",
    "TERMINAL_STATUSES",
    "Delivery",
    "DeliveryPage",
    "DeliveryResult",
    "DeliveryStatus",
    "WebhookStats",
]
