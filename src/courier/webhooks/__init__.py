"""Webhook delivery engine.

Components, leaf first:
    - signing: HMAC-SHA256 signatures over payload bytes
    - filters: Subscriber filter evaluation
    - delivery: One HTTP attempt (DeliveryExecutor)
    - scheduler: Cancellable deferred callbacks
    - retry: Attempt sequencing and backoff (RetryScheduler)
    - dispatcher: Queue and fan-out (EventDispatcher)
    - retention: Periodic purge of old deliveries (RetentionSweeper)
"""

from .delivery import DeliveryExecutor
from .dispatcher import EventDispatcher
from .filters import evaluate_condition, matches_filter, resolve_path
from .retention import RetentionSweeper
from .retry import RetryScheduler, compute_delay_ms
from .scheduler import AsyncioScheduler, CancelToken, Scheduler
from .signing import SIGNATURE_PREFIX, compute_signature, verify_signature

__all__ = [
    "SIGNATURE_PREFIX",
    "AsyncioScheduler",
    "CancelToken",
    "DeliveryExecutor",
    "EventDispatcher",
    "RetentionSweeper",
    "RetryScheduler",
    "Scheduler",
    "compute_delay_ms",
    "compute_signature",
    "evaluate_condition",
    "matches_filter",
    "resolve_path",
    "verify_signature",
]
