"""Deferred callback scheduling.

Retries and the retention sweep never call ``asyncio.sleep`` or
``loop.call_later`` directly; they go through a Scheduler so tests can
drive time by hand and so every armed timer has an explicit CancelToken.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

TimerCallback = Callable[[], Awaitable[None]]


class CancelToken:
    """Handle for an armed timer. ``cancel()`` is idempotent."""

    def __init__(self, on_cancel: Callable[[], None] | None = None) -> None:
        self._on_cancel = on_cancel
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        if self._on_cancel is not None:
            self._on_cancel()
            self._on_cancel = None


class Scheduler(ABC):
    """Abstract base class for timer schedulers.

    All schedulers must implement after(), which runs an async callback
    once the delay has elapsed unless the returned token is cancelled first.
    """

    @abstractmethod
    def after(self, delay_seconds: float, callback: TimerCallback) -> CancelToken:
        """Arm a one-shot timer.

        Args:
            delay_seconds: Seconds to wait before running ``callback``.
            callback: Coroutine function invoked with no arguments.

        Returns:
            CancelToken that disarms the timer.
        """
        ...

    async def close(self) -> None:  # noqa: B027
        """Cancel every armed timer and wait for running callbacks."""


class AsyncioScheduler(Scheduler):
    """Scheduler backed by the running event loop.

    Not durable: armed timers are lost when the process exits.
    """

    def __init__(self) -> None:
        self._handles: set[asyncio.TimerHandle] = set()
        self._tasks: set[asyncio.Task[None]] = set()

    def after(self, delay_seconds: float, callback: TimerCallback) -> CancelToken:
        loop = asyncio.get_running_loop()

        def fire() -> None:
            self._handles.discard(handle)
            task = loop.create_task(self._run(callback))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

        handle = loop.call_later(max(delay_seconds, 0.0), fire)
        self._handles.add(handle)

        def disarm() -> None:
            handle.cancel()
            self._handles.discard(handle)

        return CancelToken(disarm)

    @property
    def pending(self) -> int:
        """Timers armed but not yet fired."""
        return len(self._handles)

    async def close(self) -> None:
        for handle in list(self._handles):
            handle.cancel()
        self._handles.clear()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    @staticmethod
    async def _run(callback: TimerCallback) -> None:
        try:
            await callback()
        except Exception:
            logger.exception("Scheduled callback failed")


__all__ = ["AsyncioScheduler", "CancelToken", "Scheduler", "TimerCallback"]
