"""Document store on PostgreSQL via asyncpg, with LISTEN/NOTIFY change delivery."""

import asyncio
import json
import logging
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any

import asyncpg

from ..config import settings
from ..errors import NotFound, StoreUnavailable, VersionConflict
from .backend import DocumentBackend, DocumentChange, resolve_timestamps
from .memory import MemoryBackend
from .schema import INIT_SCHEMA, NOTIFY_CHANNEL

logger = logging.getLogger(__name__)

_CONNECTION_ERRORS = (
    OSError,
    asyncio.TimeoutError,
    asyncpg.exceptions.PostgresConnectionError,
    asyncpg.exceptions.InterfaceError,
)


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _dumps(data: dict[str, Any]) -> str:
    return json.dumps(data, default=_json_default)


def _loads(value: Any) -> dict[str, Any]:
    return json.loads(value) if isinstance(value, str) else dict(value)


class PostgresBackend(DocumentBackend):
    """Async PostgreSQL document store using asyncpg."""

    def __init__(self, db_url: str):
        """Initialize backend with connection URL."""
        super().__init__()
        self.db_url = db_url
        self._pool: asyncpg.Pool | None = None
        self._listener: asyncpg.Connection | None = None
        self._relay_tasks: set[asyncio.Task] = set()

    async def connect(self) -> None:
        """Establish the connection pool, initialize schema and start listening."""
        if self._pool is not None:
            return

        try:
            self._pool = await asyncpg.create_pool(
                self.db_url,
                min_size=settings.database_pool_min_size,
                max_size=settings.database_pool_max_size,
                command_timeout=60,
            )
            async with self._pool.acquire() as conn:
                await conn.execute(INIT_SCHEMA)

            self._listener = await asyncpg.connect(self.db_url)
            await self._listener.add_listener(NOTIFY_CHANNEL, self._on_notify)
        except _CONNECTION_ERRORS as e:
            raise StoreUnavailable(f"Could not connect to database: {e}") from e

        logger.info(f"Database connected: {self.db_url.split('@')[-1]}")  # Don't log password

    async def disconnect(self) -> None:
        """Stop listening and close the connection pool."""
        if self._listener is not None:
            await self._listener.remove_listener(NOTIFY_CHANNEL, self._on_notify)
            await self._listener.close()
            self._listener = None
        if self._pool:
            await self._pool.close()
            self._pool = None
            logger.info("Database disconnected")

    @asynccontextmanager
    async def _acquire(self) -> AsyncIterator[asyncpg.Connection]:
        if not self._pool:
            raise StoreUnavailable("Database not connected")
        try:
            async with self._pool.acquire() as conn:
                yield conn
        except _CONNECTION_ERRORS as e:
            logger.error(f"Database unreachable: {e}")
            raise StoreUnavailable(str(e)) from e

    def _on_notify(
        self, connection: asyncpg.Connection, pid: int, channel: str, payload: str
    ) -> None:
        task = asyncio.get_running_loop().create_task(self._relay(payload))
        self._relay_tasks.add(task)
        task.add_done_callback(self._relay_tasks.discard)

    async def _relay(self, payload: str) -> None:
        message = json.loads(payload)
        collection, doc_id = message["collection"], message["doc_id"]
        try:
            document = await self.fetch(collection, doc_id)
        except StoreUnavailable as e:
            logger.error(f"Dropping change notification for {collection}/{doc_id}: {e}")
            return
        await self.changes.publish(collection, DocumentChange(doc_id, document))

    async def _notify(self, conn: asyncpg.Connection, collection: str, doc_id: str) -> None:
        await conn.execute(
            "SELECT pg_notify($1, $2)",
            NOTIFY_CHANNEL,
            json.dumps({"collection": collection, "doc_id": doc_id}),
        )

    @staticmethod
    def _row_to_document(row: asyncpg.Record) -> dict[str, Any]:
        return {**_loads(row["data"]), "id": row["doc_id"], "version": row["version"]}

    async def ping(self) -> bool:
        try:
            async with self._acquire() as conn:
                await conn.fetchval("SELECT 1")
        except StoreUnavailable:
            return False
        return True

    async def insert(
        self, collection: str, data: dict[str, Any], doc_id: str | None = None
    ) -> str:
        doc_id = doc_id or uuid.uuid4().hex[:20]

        async with self._acquire() as conn:
            async with conn.transaction():
                now = await conn.fetchval("SELECT clock_timestamp()")
                stored = resolve_timestamps(dict(data), now)
                stored.pop("id", None)
                stored.pop("version", None)
                await conn.execute(
                    """
                    INSERT INTO documents (collection, doc_id, data, version)
                    VALUES ($1, $2, $3::jsonb, 1)
                    ON CONFLICT (collection, doc_id) DO UPDATE
                    SET data = EXCLUDED.data, version = documents.version + 1
                    """,
                    collection,
                    doc_id,
                    _dumps(stored),
                )
                await self._notify(conn, collection, doc_id)

        logger.debug(f"Inserted {collection}/{doc_id}")
        return doc_id

    async def fetch(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        async with self._acquire() as conn:
            row = await conn.fetchrow(
                "SELECT doc_id, data, version FROM documents WHERE collection = $1 AND doc_id = $2",
                collection,
                doc_id,
            )
        return self._row_to_document(row) if row else None

    async def merge(
        self,
        collection: str,
        doc_id: str,
        fields: dict[str, Any],
        expected_version: int | None = None,
    ) -> dict[str, Any]:
        async with self._acquire() as conn:
            async with conn.transaction():
                row = await conn.fetchrow(
                    """
                    SELECT doc_id, data, version FROM documents
                    WHERE collection = $1 AND doc_id = $2
                    FOR UPDATE
                    """,
                    collection,
                    doc_id,
                )
                if row is None:
                    raise NotFound(collection, doc_id)
                if expected_version is not None and row["version"] != expected_version:
                    raise VersionConflict(doc_id, expected_version, row["version"])

                now = await conn.fetchval("SELECT clock_timestamp()")
                updates = resolve_timestamps(dict(fields), now)
                updates.pop("id", None)
                updates.pop("version", None)
                data = {**_loads(row["data"]), **updates}
                version = row["version"] + 1
                await conn.execute(
                    """
                    UPDATE documents SET data = $1::jsonb, version = $2
                    WHERE collection = $3 AND doc_id = $4
                    """,
                    _dumps(data),
                    version,
                    collection,
                    doc_id,
                )
                await self._notify(conn, collection, doc_id)

        logger.debug(f"Merged {sorted(updates)} into {collection}/{doc_id}")
        return {**json.loads(_dumps(data)), "id": doc_id, "version": version}

    async def remove(self, collection: str, doc_id: str) -> bool:
        async with self._acquire() as conn:
            async with conn.transaction():
                result = await conn.execute(
                    "DELETE FROM documents WHERE collection = $1 AND doc_id = $2",
                    collection,
                    doc_id,
                )
                deleted = result.split()[-1] != "0" if result else False
                if deleted:
                    await self._notify(conn, collection, doc_id)

        if deleted:
            logger.debug(f"Removed {collection}/{doc_id}")
        return deleted

    async def query(
        self,
        collection: str,
        where: dict[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        sql = "SELECT doc_id, data, version FROM documents WHERE collection = $1"
        params: list[Any] = [collection]

        for key, value in (where or {}).items():
            sql += f" AND data->${len(params) + 1} = ${len(params) + 2}::jsonb"
            params.extend([key, json.dumps(value, default=_json_default)])

        if order_by:
            sql += f" ORDER BY data->>${len(params) + 1} {'DESC' if descending else 'ASC'}"
            params.append(order_by)
        if limit is not None:
            sql += f" LIMIT ${len(params) + 1}"
            params.append(limit)

        async with self._acquire() as conn:
            rows = await conn.fetch(sql, *params)

        return [self._row_to_document(row) for row in rows]


# Global backend instance
_backend: DocumentBackend | None = None


async def init_backend() -> DocumentBackend:
    """Initialize and return the global document backend."""
    global _backend
    if _backend is None:
        if settings.store_backend == "postgres":
            backend: DocumentBackend = PostgresBackend(settings.get_database_url())
        else:
            backend = MemoryBackend()
        await backend.connect()
        _backend = backend
        logger.info(f"Document store initialized: {settings.store_backend}")

    return _backend


async def get_backend() -> DocumentBackend:
    """Get backend instance (dependency injection).

    Auto-initializes if not already initialized (useful for tests).
    """
    global _backend
    if _backend is None:
        _backend = await init_backend()
    return _backend


async def close_backend() -> None:
    """Disconnect and forget the global backend."""
    global _backend
    if _backend is not None:
        await _backend.disconnect()
        _backend = None
