"""In-process document backend.

Each operation yields to the event loop before touching data, the way a
network round trip would, so interleavings between concurrent callers are
realistic: two read-modify-write sequences started together both read before
either writes.
"""

import asyncio
import copy
import logging
import uuid
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from ..errors import NotFound, StoreUnavailable, VersionConflict
from .backend import DocumentBackend, DocumentChange, resolve_timestamps

logger = logging.getLogger(__name__)


class MemoryBackend(DocumentBackend):
    """Dict-backed document store."""

    def __init__(
        self,
        latency: float = 0.0,
        clock: Callable[[], datetime] | None = None,
    ):
        super().__init__()
        self.latency = latency
        self.available = True
        self._clock = clock or (lambda: datetime.now(UTC))
        self._last_timestamp: datetime | None = None
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}

    async def _round_trip(self) -> None:
        if not self.available:
            raise StoreUnavailable("Memory backend marked unavailable")
        await asyncio.sleep(self.latency)
        if not self.available:
            raise StoreUnavailable("Memory backend marked unavailable")

    def _now(self) -> datetime:
        now = self._clock()
        if self._last_timestamp is not None and now < self._last_timestamp:
            now = self._last_timestamp
        self._last_timestamp = now
        return now

    def _snapshot(self, doc_id: str, stored: dict[str, Any]) -> dict[str, Any]:
        return {**copy.deepcopy(stored), "id": doc_id}

    async def _notify(self, collection: str, doc_id: str, stored: dict[str, Any] | None) -> None:
        document = self._snapshot(doc_id, stored) if stored is not None else None
        await self.changes.publish(collection, DocumentChange(doc_id, document))

    async def ping(self) -> bool:
        try:
            await self._round_trip()
        except StoreUnavailable:
            return False
        return True

    async def insert(
        self, collection: str, data: dict[str, Any], doc_id: str | None = None
    ) -> str:
        await self._round_trip()
        doc_id = doc_id or uuid.uuid4().hex[:20]
        stored = resolve_timestamps(copy.deepcopy(data), self._now())
        stored.pop("id", None)
        stored["version"] = 1
        self._collections.setdefault(collection, {})[doc_id] = stored
        logger.debug(f"Inserted {collection}/{doc_id}")
        await self._notify(collection, doc_id, stored)
        return doc_id

    async def fetch(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        await self._round_trip()
        stored = self._collections.get(collection, {}).get(doc_id)
        return self._snapshot(doc_id, stored) if stored is not None else None

    async def merge(
        self,
        collection: str,
        doc_id: str,
        fields: dict[str, Any],
        expected_version: int | None = None,
    ) -> dict[str, Any]:
        await self._round_trip()
        stored = self._collections.get(collection, {}).get(doc_id)
        if stored is None:
            raise NotFound(collection, doc_id)
        if expected_version is not None and stored["version"] != expected_version:
            raise VersionConflict(doc_id, expected_version, stored["version"])

        updates = resolve_timestamps(copy.deepcopy(fields), self._now())
        updates.pop("id", None)
        updates.pop("version", None)
        stored.update(updates)
        stored["version"] += 1
        logger.debug(f"Merged {sorted(updates)} into {collection}/{doc_id}")
        await self._notify(collection, doc_id, stored)
        return self._snapshot(doc_id, stored)

    async def remove(self, collection: str, doc_id: str) -> bool:
        await self._round_trip()
        stored = self._collections.get(collection, {}).pop(doc_id, None)
        if stored is None:
            return False
        logger.debug(f"Removed {collection}/{doc_id}")
        await self._notify(collection, doc_id, None)
        return True

    async def query(
        self,
        collection: str,
        where: dict[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        await self._round_trip()
        docs = [
            self._snapshot(doc_id, stored)
            for doc_id, stored in self._collections.get(collection, {}).items()
            if all(stored.get(k) == v for k, v in (where or {}).items())
        ]
        if order_by:
            docs.sort(key=lambda d: d.get(order_by), reverse=descending)
        if limit is not None:
            docs = docs[:limit]
        return docs
