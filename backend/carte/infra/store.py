"""Authoritative document store.

The loyalty core treats the remote store as an opaque document database with
CRUD and subscribe semantics. Two implementations are provided:

- ``PostgresDocumentStore`` keeps every collection in one JSONB ``documents``
  table and uses LISTEN/NOTIFY to drive live subscriptions.
- ``MemoryDocumentStore`` keeps everything in-process, for local development
  without a database.

Connectivity failures surface as ``RemoteUnavailable`` so callers can apply
their local fallback.
"""

from __future__ import annotations

import asyncio
import json
import logging
from contextlib import contextmanager
from copy import deepcopy
from typing import Any, AsyncIterator, Dict, Iterator, List, Mapping, Optional, Protocol, Tuple
from uuid import uuid4

import asyncpg

from carte.domain.errors import RemoteUnavailable
from carte.infra.postgres import NOTIFY_CHANNEL, get_pool

logger = logging.getLogger(__name__)

Record = Dict[str, Any]
Filters = Mapping[str, Any]
OrderBy = Tuple[str, str]


class DocumentNotFound(LookupError):
    """Raised when updating a document that does not exist."""


class DocumentStore(Protocol):
    async def get_document(self, collection: str, doc_id: str) -> Optional[Record]: ...

    async def query(
        self,
        collection: str,
        filters: Optional[Filters] = None,
        order_by: Optional[OrderBy] = None,
        limit: Optional[int] = None,
    ) -> List[Record]: ...

    def subscribe(self, collection: str, filters: Optional[Filters] = None) -> AsyncIterator[List[Record]]: ...

    async def create_document(self, collection: str, data: Mapping[str, Any], doc_id: Optional[str] = None) -> str: ...

    async def update_document(self, collection: str, doc_id: str, partial: Mapping[str, Any]) -> None: ...

    async def delete_document(self, collection: str, doc_id: str) -> None: ...


def new_document_id() -> str:
    return uuid4().hex


def _direction(order_by: Optional[OrderBy]) -> str:
    if not order_by:
        return "ASC"
    direction = order_by[1].strip().upper()
    if direction not in ("ASC", "DESC"):
        raise ValueError(f"invalid order direction: {order_by[1]!r}")
    return direction


@contextmanager
def _remote(operation: str) -> Iterator[None]:
    """Translate driver and network failures into RemoteUnavailable."""
    try:
        yield
    except asyncpg.InsufficientPrivilegeError as exc:
        raise RemoteUnavailable(operation, "permission") from exc
    except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as exc:
        logger.warning("document store failure", extra={"operation": operation, "error": type(exc).__name__})
        raise RemoteUnavailable(operation, type(exc).__name__) from exc


def _to_record(doc_id: str, data: Any) -> Record:
    payload = json.loads(data) if isinstance(data, str) else dict(data or {})
    payload["id"] = doc_id
    return payload


class PostgresDocumentStore:
    """JSONB-backed document store on the shared asyncpg pool."""

    async def get_document(self, collection: str, doc_id: str) -> Optional[Record]:
        with _remote(f"get:{collection}"):
            pool = await get_pool()
            async with pool.acquire() as conn:
                row = await conn.fetchrow(
                    "SELECT id, data FROM documents WHERE collection = $1 AND id = $2",
                    collection,
                    doc_id,
                )
        if not row:
            return None
        return _to_record(row["id"], row["data"])

    async def query(
        self,
        collection: str,
        filters: Optional[Filters] = None,
        order_by: Optional[OrderBy] = None,
        limit: Optional[int] = None,
    ) -> List[Record]:
        args: List[Any] = [collection, json.dumps(dict(filters or {}), default=str)]
        order_sql = "created_at ASC"
        if order_by:
            args.append(order_by[0])
            order_sql = f"data -> ${len(args)}::text {_direction(order_by)}"
        args.append(limit)
        sql = f"""
            SELECT id, data FROM documents
            WHERE collection = $1 AND data @> $2::jsonb
            ORDER BY {order_sql}, id
            LIMIT ${len(args)}
        """
        with _remote(f"query:{collection}"):
            pool = await get_pool()
            async with pool.acquire() as conn:
                rows = await conn.fetch(sql, *args)
        return [_to_record(row["id"], row["data"]) for row in rows]

    async def subscribe(self, collection: str, filters: Optional[Filters] = None) -> AsyncIterator[List[Record]]:
        """Yield the current snapshot, then a fresh one after every change."""
        changes: asyncio.Queue[str] = asyncio.Queue()

        def _listener(_conn, _pid, _channel, payload: str) -> None:
            if payload == collection:
                changes.put_nowait(payload)

        with _remote(f"subscribe:{collection}"):
            pool = await get_pool()
            conn = await pool.acquire()
        try:
            with _remote(f"subscribe:{collection}"):
                await conn.add_listener(NOTIFY_CHANNEL, _listener)
            yield await self.query(collection, filters)
            while True:
                await changes.get()
                yield await self.query(collection, filters)
        finally:
            try:
                await conn.remove_listener(NOTIFY_CHANNEL, _listener)
            finally:
                await pool.release(conn)

    async def create_document(self, collection: str, data: Mapping[str, Any], doc_id: Optional[str] = None) -> str:
        new_id = doc_id or new_document_id()
        body = {key: value for key, value in data.items() if key != "id"}
        with _remote(f"create:{collection}"):
            pool = await get_pool()
            async with pool.acquire() as conn:
                await conn.execute(
                    """
                    INSERT INTO documents (collection, id, data)
                    VALUES ($1, $2, $3::jsonb)
                    ON CONFLICT (collection, id) DO UPDATE
                    SET data = EXCLUDED.data, updated_at = NOW()
                    """,
                    collection,
                    new_id,
                    json.dumps(body, default=str),
                )
        return new_id

    async def update_document(self, collection: str, doc_id: str, partial: Mapping[str, Any]) -> None:
        body = {key: value for key, value in partial.items() if key != "id"}
        with _remote(f"update:{collection}"):
            pool = await get_pool()
            async with pool.acquire() as conn:
                status = await conn.execute(
                    """
                    UPDATE documents SET data = data || $3::jsonb, updated_at = NOW()
                    WHERE collection = $1 AND id = $2
                    """,
                    collection,
                    doc_id,
                    json.dumps(body, default=str),
                )
        if status.endswith(" 0"):
            raise DocumentNotFound(f"{collection}/{doc_id}")

    async def delete_document(self, collection: str, doc_id: str) -> None:
        with _remote(f"delete:{collection}"):
            pool = await get_pool()
            async with pool.acquire() as conn:
                await conn.execute(
                    "DELETE FROM documents WHERE collection = $1 AND id = $2",
                    collection,
                    doc_id,
                )


def _matches(record: Mapping[str, Any], filters: Optional[Filters]) -> bool:
    return all(record.get(key) == value for key, value in (filters or {}).items())


class MemoryDocumentStore:
    """In-process document store with the same semantics as the Postgres one."""

    def __init__(self) -> None:
        self._collections: Dict[str, Dict[str, Record]] = {}
        self._order: Dict[str, List[str]] = {}
        self._subscribers: Dict[str, List[asyncio.Queue[str]]] = {}

    def _notify(self, collection: str) -> None:
        for queue in self._subscribers.get(collection, []):
            queue.put_nowait(collection)

    async def get_document(self, collection: str, doc_id: str) -> Optional[Record]:
        record = self._collections.get(collection, {}).get(doc_id)
        return deepcopy(record) if record is not None else None

    async def query(
        self,
        collection: str,
        filters: Optional[Filters] = None,
        order_by: Optional[OrderBy] = None,
        limit: Optional[int] = None,
    ) -> List[Record]:
        docs = self._collections.get(collection, {})
        records = [deepcopy(docs[doc_id]) for doc_id in self._order.get(collection, []) if _matches(docs[doc_id], filters)]
        if order_by:
            field = order_by[0]
            records.sort(
                key=lambda record: (record.get(field) is None, record.get(field)),
                reverse=_direction(order_by) == "DESC",
            )
        if limit is not None:
            records = records[:limit]
        return records

    async def subscribe(self, collection: str, filters: Optional[Filters] = None) -> AsyncIterator[List[Record]]:
        queue: asyncio.Queue[str] = asyncio.Queue()
        self._subscribers.setdefault(collection, []).append(queue)
        try:
            yield await self.query(collection, filters)
            while True:
                await queue.get()
                yield await self.query(collection, filters)
        finally:
            self._subscribers[collection].remove(queue)

    async def create_document(self, collection: str, data: Mapping[str, Any], doc_id: Optional[str] = None) -> str:
        new_id = doc_id or new_document_id()
        docs = self._collections.setdefault(collection, {})
        order = self._order.setdefault(collection, [])
        if new_id not in docs:
            order.append(new_id)
        docs[new_id] = _to_record(new_id, deepcopy(dict(data)))
        self._notify(collection)
        return new_id

    async def update_document(self, collection: str, doc_id: str, partial: Mapping[str, Any]) -> None:
        docs = self._collections.get(collection, {})
        if doc_id not in docs:
            raise DocumentNotFound(f"{collection}/{doc_id}")
        docs[doc_id].update({key: deepcopy(value) for key, value in partial.items() if key != "id"})
        self._notify(collection)

    async def delete_document(self, collection: str, doc_id: str) -> None:
        docs = self._collections.get(collection, {})
        if docs.pop(doc_id, None) is not None:
            self._order[collection].remove(doc_id)
            self._notify(collection)


def build_document_store(backend: str) -> DocumentStore:
    kind = backend.lower()
    if kind == "postgres":
        return PostgresDocumentStore()
    if kind == "memory":
        return MemoryDocumentStore()
    raise ValueError(f"unknown remote store backend: {kind!r}")
