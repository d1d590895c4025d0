"""Persistence adapters for Courier record stores.

An adapter loads and saves whole collections of JSON-compatible records.
Stores keep the authoritative copy in memory and snapshot through the
adapter after every mutation.
"""

from __future__ import annotations

import asyncio
import copy
import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from courier.exceptions import PersistenceError

from .retry import snapshot_retry

logger = logging.getLogger(__name__)

Record = dict[str, Any]


class PersistenceAdapter(ABC):
    """Loads and saves named collections of records."""

    @abstractmethod
    async def load(self, collection: str) -> list[Record]:
        """Return every stored record in the collection (empty if none)."""

    @abstractmethod
    async def save(self, collection: str, records: list[Record]) -> None:
        """Replace the stored collection with ``records``."""


class InMemoryAdapter(PersistenceAdapter):
    """Adapter that keeps snapshots in a dict. Used for tests and ephemeral runs."""

    def __init__(self) -> None:
        self._collections: dict[str, list[Record]] = {}
        self.save_count = 0

    async def load(self, collection: str) -> list[Record]:
        return copy.deepcopy(self._collections.get(collection, []))

    async def save(self, collection: str, records: list[Record]) -> None:
        self._collections[collection] = copy.deepcopy(records)
        self.save_count += 1


class JsonFileAdapter(PersistenceAdapter):
    """Adapter that writes one ``<collection>.json`` file per collection.

    Writes go to a temporary file in the same directory and are moved
    into place with ``os.replace`` so a crash never leaves a torn file.
    File I/O runs in a worker thread to keep the event loop free.

    Example:
        ```python
        adapter = JsonFileAdapter("/var/lib/courier")
        registry = SubscriptionRegistry(adapter)
        await registry.load()
        ```
    """

    def __init__(self, data_dir: str | Path) -> None:
        self._data_dir = Path(data_dir).expanduser()

    @property
    def data_dir(self) -> Path:
        return self._data_dir

    def _path(self, collection: str) -> Path:
        return self._data_dir / f"{collection}.json"

    async def load(self, collection: str) -> list[Record]:
        try:
            return await asyncio.to_thread(self._read_file, self._path(collection))
        except (OSError, ValueError) as e:
            logger.error("Failed to load %s from %s: %s", collection, self._data_dir, e)
            raise PersistenceError(f"Failed to load {collection}: {e}") from e

    async def save(self, collection: str, records: list[Record]) -> None:
        try:
            await asyncio.to_thread(self._write_file, self._path(collection), records)
        except (OSError, TypeError, ValueError) as e:
            logger.error("Failed to save %s to %s: %s", collection, self._data_dir, e)
            raise PersistenceError(f"Failed to save {collection}: {e}") from e

    @staticmethod
    def _read_file(path: Path) -> list[Record]:
        if not path.exists():
            logger.info("No existing snapshot at %s", path)
            return []
        with path.open(encoding="utf-8") as fh:
            data = json.load(fh)
        if not isinstance(data, list):
            raise ValueError(f"{path} does not contain a JSON array")
        return data

    @staticmethod
    @snapshot_retry
    def _write_file(path: Path, records: list[Record]) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        body = json.dumps(records, indent=2, ensure_ascii=False)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.stem}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(body)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise


__all__ = ["InMemoryAdapter", "JsonFileAdapter", "PersistenceAdapter", "Record"]
