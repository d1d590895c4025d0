"""Base record store and per-record locking.

Contains the in-memory cache, snapshot commit path and the keyed lock
used to make read-modify-write atomic per record id.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable, Iterable
from contextlib import asynccontextmanager
from typing import ClassVar, Generic, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from courier.exceptions import PersistenceError

from .adapters import PersistenceAdapter

logger = logging.getLogger(__name__)


RecordT = TypeVar("RecordT", bound=BaseModel)


class KeyedLock:
    """One asyncio.Lock per key, created on demand and dropped when idle."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._holders: dict[str, int] = {}

    @asynccontextmanager
    async def acquire(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._holders[key] = self._holders.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[key] -= 1
            if self._holders[key] == 0:
                del self._holders[key]
                self._locks.pop(key, None)

    def locked(self, key: str) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    def __len__(self) -> int:
        return len(self._locks)


class RecordStore(Generic[RecordT]):
    """In-memory record cache snapshotted through a persistence adapter.

    Every mutation stages a new mapping, writes it through the adapter
    and only then replaces the in-memory state, so a failed write leaves
    memory exactly as it was. Mutations made with ``keep_on_failure``
    are the exception: they stay in memory, the store is marked dirty and
    the next successful snapshot (or ``flush``) persists them. A collection-wide write lock serializes
    snapshots; the keyed lock serializes read-modify-write per record.

    Subclasses set ``collection`` and ``model``.
    """

    collection: ClassVar[str]
    model: ClassVar[type[BaseModel]]

    def __init__(self, adapter: PersistenceAdapter) -> None:
        self._adapter = adapter
        self._records: dict[str, RecordT] = {}
        self._locks = KeyedLock()
        self._write_lock = asyncio.Lock()
        self._dirty = False

    async def load(self) -> int:
        """Populate the cache from the adapter.

        Records that no longer validate are skipped with a warning.

        Returns:
            Number of records loaded.
        """
        try:
            raw = await self._adapter.load(self.collection)
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"Failed to load {self.collection}: {e}") from e

        records: dict[str, RecordT] = {}
        for item in raw:
            try:
                record = self.model.model_validate(item)
            except PydanticValidationError as e:
                logger.warning(
                    "Skipping unreadable %s record %s: %s",
                    self.collection,
                    item.get("id", "<no id>"),
                    e.error_count(),
                )
                continue
            records[record.id] = record  # type: ignore[attr-defined]
        self._records = records  # type: ignore[assignment]
        logger.info("Loaded %d %s", len(records), self.collection)
        return len(records)

    def __len__(self) -> int:
        return len(self._records)

    @property
    def dirty(self) -> bool:
        """True while memory holds changes the last snapshot failed to write."""
        return self._dirty

    async def flush(self) -> bool:
        """Snapshot the current state if a previous write failed.

        Returns:
            True if a snapshot was written, False if nothing was pending.

        Raises:
            PersistenceError: If the write fails again.
        """
        async with self._write_lock:
            if not self._dirty:
                return False
            await self._snapshot(self._records)
            self._dirty = False
        logger.info("Flushed pending %s changes", self.collection)
        return True

    def _get(self, record_id: str) -> RecordT | None:
        return self._records.get(record_id)

    def _values(self) -> list[RecordT]:
        return list(self._records.values())

    async def _commit(
        self,
        upserts: Iterable[RecordT] = (),
        removals: Iterable[str] = (),
        keep_on_failure: bool = False,
    ) -> None:
        async with self._write_lock:
            staged = dict(self._records)
            for record in upserts:
                staged[record.id] = record
            for record_id in removals:
                staged.pop(record_id, None)
            try:
                await self._snapshot(staged)
            except PersistenceError:
                if not keep_on_failure:
                    raise
                self._records = staged
                self._dirty = True
                logger.warning(
                    "Keeping unsaved %s change in memory until the next snapshot",
                    self.collection,
                )
                return
            self._records = staged
            self._dirty = False

    async def _snapshot(self, records: dict[str, RecordT]) -> None:
        payload = [record.model_dump(mode="json") for record in records.values()]
        try:
            await self._adapter.save(self.collection, payload)
        except PersistenceError:
            raise
        except Exception as e:
            logger.error("Snapshot of %s failed: %s", self.collection, e)
            raise PersistenceError(f"Failed to save {self.collection}: {e}") from e

    async def _insert(self, record: RecordT) -> RecordT:
        async with self._locks.acquire(record.id):
            await self._commit(upserts=[record])
        return record

    async def _mutate(
        self,
        record_id: str,
        mutator: Callable[[RecordT], None],
        keep_on_failure: bool = False,
    ) -> RecordT | None:
        """Atomically apply ``mutator`` to a copy of the record and commit it.

        Args:
            record_id: Record to change.
            mutator: Applied in place to a deep copy of the record.
            keep_on_failure: Keep the change in memory if the snapshot fails
                instead of raising.

        Returns:
            The committed record, or None if it does not exist.
        """
        async with self._locks.acquire(record_id):
            current = self._records.get(record_id)
            if current is None:
                return None
            updated = current.model_copy(deep=True)
            mutator(updated)
            await self._commit(upserts=[updated], keep_on_failure=keep_on_failure)
            return updated

    async def _remove(self, record_id: str) -> bool:
        async with self._locks.acquire(record_id):
            if record_id not in self._records:
                return False
            await self._commit(removals=[record_id])
            return True

    async def _remove_many(self, record_ids: Iterable[str]) -> int:
        ids = [record_id for record_id in record_ids if record_id in self._records]
        if not ids:
            return 0
        await self._commit(removals=ids)
        return len(ids)


__all__ = ["KeyedLock", "RecordStore"]
