"""
backend/doit/database/store.py

Document Store Adapter

Exposes create/read/update primitives keyed by collection path and document
identifier on top of the async SQLAlchemy engine:
- add / set / get / update / query
- Write-time field transforms (server timestamp, increment, array union/remove)
- Document size ceiling enforced on every write
- Standing subscriptions re-delivering a collection after each write
"""

import asyncio
import inspect
import json
import logging
import uuid
import weakref
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from doit.core.events import EventBus, Subscription
from doit.core.exceptions import BackendError
from doit.database.models import Document

logger = logging.getLogger(__name__)

MAX_DOCUMENT_BYTES = 1024 * 1024


# ---------------------------------------------------
# Write-time Field Transforms
# ---------------------------------------------------
class _ServerTimestamp:
    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()


@dataclass(frozen=True)
class Increment:
    amount: int | float = 1


class ArrayUnion:
    """Adds values to an array field, skipping values already present."""

    def __init__(self, *values: Any) -> None:
        self.values = values


class ArrayRemove:
    """Removes every occurrence of the values from an array field."""

    def __init__(self, *values: Any) -> None:
        self.values = values


# ---------------------------------------------------
# Query Filters and Snapshots
# ---------------------------------------------------
EQUALS = "=="
ARRAY_CONTAINS = "array-contains"


@dataclass(frozen=True)
class FieldFilter:
    field: str
    op: str
    value: Any

    def matches(self, data: Mapping[str, Any]) -> bool:
        current = data.get(self.field)
        if self.op == EQUALS:
            return current == self.value
        if self.op == ARRAY_CONTAINS:
            return isinstance(current, list) and self.value in current
        raise ValueError(f"Unsupported filter operator: {self.op}")


@dataclass(frozen=True)
class DocumentSnapshot:
    id: str
    data: dict[str, Any]

    def to_dict(self) -> dict[str, Any]:
        """Document fields with the identifier merged in."""
        return {**self.data, "id": self.id}


SnapshotCallback = Callable[[list[DocumentSnapshot]], Awaitable[None] | None]


# ---------------------------------------------------
# Helpers
# ---------------------------------------------------
def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def apply_transforms(current: Mapping[str, Any], patch: Mapping[str, Any], now: str) -> dict[str, Any]:
    """Merges a patch into a document, resolving field transforms."""
    result = dict(current)
    for key, value in patch.items():
        if value is SERVER_TIMESTAMP:
            result[key] = now
        elif isinstance(value, Increment):
            existing = result.get(key)
            base = existing if isinstance(existing, (int, float)) and not isinstance(existing, bool) else 0
            result[key] = base + value.amount
        elif isinstance(value, ArrayUnion):
            existing = list(result.get(key) or []) if isinstance(result.get(key), list) else []
            for item in value.values:
                if item not in existing:
                    existing.append(item)
            result[key] = existing
        elif isinstance(value, ArrayRemove):
            existing = result.get(key) if isinstance(result.get(key), list) else []
            result[key] = [item for item in existing if item not in value.values]
        else:
            result[key] = value
    return result


def _sort_key(value: Any) -> tuple[int, Any]:
    # Missing values sort lowest; mixed types never compare directly
    if value is None:
        return (0, 0)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return (1, value)
    if isinstance(value, str):
        return (2, value)
    return (3, str(value))


# ---------------------------------------------------
# Document Store
# ---------------------------------------------------
class DocumentStore:
    """Document-shaped persistence over an async SQLAlchemy session factory."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        events: EventBus | None = None,
        max_document_bytes: int = MAX_DOCUMENT_BYTES,
    ) -> None:
        self._session_factory = session_factory
        self.events = events or EventBus()
        self.max_document_bytes = max_document_bytes
        # One lock per document while any writer holds it
        self._write_locks: weakref.WeakValueDictionary[tuple[str, str], asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    @staticmethod
    def new_id() -> str:
        return uuid.uuid4().hex

    @staticmethod
    def _topic(collection: str) -> tuple[str, str]:
        return ("collection", collection)

    def _encode(self, collection: str, doc_id: str, data: Mapping[str, Any]) -> dict[str, Any]:
        """Normalizes to JSON-compatible values and enforces the size ceiling."""
        try:
            encoded = json.dumps(data, default=_json_default)
        except TypeError as e:
            raise BackendError("invalid-argument", str(e)) from e
        size = len(encoded.encode("utf-8"))
        if size > self.max_document_bytes:
            logger.warning(
                f"[STORE] Rejected {collection}/{doc_id}: {size} bytes exceeds {self.max_document_bytes}"
            )
            raise BackendError(
                "invalid-argument",
                f"Document {collection}/{doc_id} is {size} bytes; the limit is {self.max_document_bytes}",
            )
        return json.loads(encoded)

    def _write_lock(self, collection: str, doc_id: str) -> asyncio.Lock:
        """Serializes read-modify-write cycles on a single document."""
        key = (collection, doc_id)
        lock = self._write_locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._write_locks[key] = lock
        return lock

    async def _get_row(self, session: AsyncSession, collection: str, doc_id: str) -> Document | None:
        result = await session.execute(
            select(Document).filter_by(collection=collection, doc_id=doc_id)
        )
        return result.scalar_one_or_none()

    async def _notify(self, collection: str) -> None:
        await self.events.publish(self._topic(collection), collection)

    # ---------------------------------------------------
    # Writes
    # ---------------------------------------------------
    async def add(self, collection: str, data: Mapping[str, Any]) -> str:
        """Inserts a document with a generated identifier and returns it."""
        doc_id = self.new_id()
        payload = self._encode(collection, doc_id, apply_transforms({}, data, utc_now_iso()))
        try:
            async with self._session_factory() as session:
                session.add(Document(collection=collection, doc_id=doc_id, data=payload))
                await session.commit()
        except SQLAlchemyError as e:
            logger.error(f"[STORE] Failed to add document to {collection}: {e}")
            raise BackendError("unavailable", str(e)) from e

        logger.debug(f"[STORE] Added {collection}/{doc_id}")
        await self._notify(collection)
        return doc_id

    async def set(self, collection: str, doc_id: str, data: Mapping[str, Any]) -> None:
        """Creates or fully overwrites a document."""
        payload = self._encode(collection, doc_id, apply_transforms({}, data, utc_now_iso()))
        try:
            async with self._write_lock(collection, doc_id), self._session_factory() as session:
                row = await self._get_row(session, collection, doc_id)
                if row:
                    row.data = payload
                else:
                    session.add(Document(collection=collection, doc_id=doc_id, data=payload))
                await session.commit()
        except SQLAlchemyError as e:
            logger.error(f"[STORE] Failed to set {collection}/{doc_id}: {e}")
            raise BackendError("unavailable", str(e)) from e

        logger.debug(f"[STORE] Set {collection}/{doc_id}")
        await self._notify(collection)

    async def update(self, collection: str, doc_id: str, patch: Mapping[str, Any]) -> None:
        """Applies a partial update; the document must already exist."""
        try:
            async with self._write_lock(collection, doc_id), self._session_factory() as session:
                row = await self._get_row(session, collection, doc_id)
                if not row:
                    logger.warning(f"[STORE] Update on missing document {collection}/{doc_id}")
                    raise BackendError("not-found", f"No document to update: {collection}/{doc_id}")
                merged = apply_transforms(row.data or {}, patch, utc_now_iso())
                row.data = self._encode(collection, doc_id, merged)
                await session.commit()
        except SQLAlchemyError as e:
            logger.error(f"[STORE] Failed to update {collection}/{doc_id}: {e}")
            raise BackendError("unavailable", str(e)) from e

        logger.debug(f"[STORE] Updated {collection}/{doc_id} fields={sorted(patch)}")
        await self._notify(collection)

    # ---------------------------------------------------
    # Reads
    # ---------------------------------------------------
    async def get(self, collection: str, doc_id: str) -> DocumentSnapshot | None:
        try:
            async with self._session_factory() as session:
                row = await self._get_row(session, collection, doc_id)
        except SQLAlchemyError as e:
            logger.error(f"[STORE] Failed to read {collection}/{doc_id}: {e}")
            raise BackendError("unavailable", str(e)) from e

        if not row:
            return None
        return DocumentSnapshot(id=row.doc_id, data=dict(row.data or {}))

    async def query(
        self,
        collection: str,
        where: Sequence[FieldFilter] = (),
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[DocumentSnapshot]:
        """
        Returns the documents of a collection matching every filter.

        Ordering is by a single field; documents with equal values keep
        insertion order (newest first when descending).
        """
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(Document).filter_by(collection=collection).order_by(Document.seq)
                )
                rows = list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error(f"[STORE] Failed to query {collection}: {e}")
            raise BackendError("unavailable", str(e)) from e

        matched = [
            (row.seq, DocumentSnapshot(id=row.doc_id, data=dict(row.data or {})))
            for row in rows
            if all(condition.matches(row.data or {}) for condition in where)
        ]
        if order_by:
            matched.sort(key=lambda item: (_sort_key(item[1].data.get(order_by)), item[0]), reverse=descending)

        snapshots = [snapshot for _, snapshot in matched]
        if limit is not None:
            snapshots = snapshots[:limit]
        return snapshots

    # ---------------------------------------------------
    # Live Subscriptions
    # ---------------------------------------------------
    async def subscribe(
        self,
        collection: str,
        callback: SnapshotCallback,
        where: Sequence[FieldFilter] = (),
        order_by: str | None = None,
        descending: bool = False,
    ) -> Subscription:
        """
        Delivers the current contents of a collection to the callback, then
        re-delivers the full ordered list after every write to it.
        """

        async def deliver(_changed: Any = None) -> None:
            snapshots = await self.query(collection, where=where, order_by=order_by, descending=descending)
            result = callback(snapshots)
            if inspect.isawaitable(result):
                await result

        subscription = self.events.subscribe(self._topic(collection), deliver)
        try:
            await deliver()
        except Exception:
            subscription.cancel()
            raise
        logger.info(f"[STORE] Subscription opened on {collection}")
        return subscription
