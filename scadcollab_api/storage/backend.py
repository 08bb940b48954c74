"""Document store abstraction shared by the in-memory and PostgreSQL backends."""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, NamedTuple

from ..pubsub import Publisher


class _ServerTimestamp:
    """Sentinel replaced with the backend clock at write time."""

    _instance: "_ServerTimestamp | None" = None

    def __new__(cls) -> "_ServerTimestamp":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"

    def __deepcopy__(self, memo: dict) -> "_ServerTimestamp":
        return self


SERVER_TIMESTAMP = _ServerTimestamp()


class DocumentChange(NamedTuple):
    """Change notification: the written document, or None after deletion."""

    doc_id: str
    document: dict[str, Any] | None


def resolve_timestamps(value: Any, now: datetime) -> Any:
    """Replace every SERVER_TIMESTAMP sentinel inside ``value`` with ``now``."""
    if value is SERVER_TIMESTAMP:
        return now
    if isinstance(value, dict):
        return {k: resolve_timestamps(v, now) for k, v in value.items()}
    if isinstance(value, list):
        return [resolve_timestamps(v, now) for v in value]
    return value


class DocumentBackend(ABC):
    """Async document store with push notifications.

    Documents are plain dicts grouped in named collections. Every document
    carries ``id`` and ``version`` keys when read back; ``version`` increases
    by one on every write. After each successful write the backend publishes a
    :class:`DocumentChange` on :attr:`changes` under the collection name,
    including for writes made through this very instance.
    """

    def __init__(self) -> None:
        self.changes: Publisher[DocumentChange] = Publisher("document-changes")

    async def connect(self) -> None:
        """Open connections. Default is a no-op."""

    async def disconnect(self) -> None:
        """Release connections. Default is a no-op."""

    @abstractmethod
    async def ping(self) -> bool:
        """Return True when the store is reachable."""

    @abstractmethod
    async def insert(
        self, collection: str, data: dict[str, Any], doc_id: str | None = None
    ) -> str:
        """Create a document (overwriting ``doc_id`` if given and present)."""

    @abstractmethod
    async def fetch(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        """Point read. Absent documents return None."""

    @abstractmethod
    async def merge(
        self,
        collection: str,
        doc_id: str,
        fields: dict[str, Any],
        expected_version: int | None = None,
    ) -> dict[str, Any]:
        """Merge top-level ``fields`` into an existing document.

        Raises:
            NotFound: the document does not exist
            VersionConflict: ``expected_version`` is set and does not match
        """

    @abstractmethod
    async def remove(self, collection: str, doc_id: str) -> bool:
        """Delete a document. Returns False when it did not exist."""

    @abstractmethod
    async def query(
        self,
        collection: str,
        where: dict[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """Equality-filtered listing with optional ordering and limit."""

    async def remove_where(self, collection: str, where: dict[str, Any]) -> int:
        """Delete every document matching ``where``."""
        removed = 0
        for doc in await self.query(collection, where=where):
            if await self.remove(collection, doc["id"]):
                removed += 1
        return removed
