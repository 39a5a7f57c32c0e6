"""
TradeTrack — SQLAlchemy record store.

Documents live in the ``records`` table as JSON. The atomic primitives run
in a single transaction that locks the document before reading it: ``SELECT
… FOR UPDATE`` on PostgreSQL, and on SQLite the ``BEGIN IMMEDIATE`` write
lock installed by ``database.serialize_sqlite_writes`` (engines built
elsewhere must install it too). Inside one process they also queue behind a
per-key asyncio.Lock.
"""

import logging
import uuid
from contextlib import asynccontextmanager
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tradetrack.errors import ConflictError, NotFoundError, StoreError
from tradetrack.models.record import Record
from tradetrack.services.store import EQ, KeyedLocks, Query, RecordStore, apply_query

logger = logging.getLogger(__name__)

# Lost insert races on array_append are retried as updates
_APPEND_ATTEMPTS = 3


class SqlRecordStore(RecordStore):
    """RecordStore backed by an async SQLAlchemy session factory."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory
        self._lock = KeyedLocks()

    @asynccontextmanager
    async def _transaction(self, collection: str = "", key: str = ""):
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    yield session
        except IntegrityError as e:
            raise ConflictError(collection, key) from e
        except SQLAlchemyError as e:
            logger.error(f"Record store failure on {collection}/{key}: {e}")
            raise StoreError(f"record store failure: {e}") from e

    @staticmethod
    async def _row(session: AsyncSession, collection: str, key: str, lock: bool = False) -> Optional[Record]:
        stmt = select(Record).where(Record.collection == collection, Record.key == key)
        if lock:
            stmt = stmt.with_for_update()
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def get(self, collection: str, key: str) -> Optional[dict]:
        async with self._transaction(collection, key) as session:
            row = await self._row(session, collection, key)
            return dict(row.data) if row else None

    async def set(self, collection: str, key: str, doc: dict) -> None:
        async with self._lock(collection, key):
            async with self._transaction(collection, key) as session:
                row = await self._row(session, collection, key, lock=True)
                if row:
                    row.data = dict(doc)
                else:
                    session.add(Record(collection=collection, key=key, data=dict(doc)))

    async def create(self, collection: str, key: str, doc: dict) -> None:
        async with self._lock(collection, key):
            async with self._transaction(collection, key) as session:
                if await self._row(session, collection, key):
                    raise ConflictError(collection, key)
                session.add(Record(collection=collection, key=key, data=dict(doc)))

    async def update(self, collection: str, key: str, changes: dict) -> dict:
        async with self._lock(collection, key):
            async with self._transaction(collection, key) as session:
                row = await self._row(session, collection, key, lock=True)
                if not row:
                    raise NotFoundError(collection, key)
                # reassign so the JSON column is flagged dirty
                row.data = {**row.data, **changes}
                return dict(row.data)

    async def delete(self, collection: str, key: str) -> None:
        async with self._lock(collection, key):
            async with self._transaction(collection, key) as session:
                row = await self._row(session, collection, key, lock=True)
                if not row:
                    raise NotFoundError(collection, key)
                await session.delete(row)

    async def add(self, collection: str, doc: dict) -> str:
        key = uuid.uuid4().hex
        async with self._transaction(collection, key) as session:
            session.add(Record(collection=collection, key=key, data=dict(doc)))
        return key

    async def keys(self, collection: str) -> list[str]:
        async with self._transaction(collection) as session:
            result = await session.execute(
                select(Record.key).where(Record.collection == collection).order_by(Record.created_at)
            )
            return list(result.scalars().all())

    async def scan(self, collection: str) -> list[dict]:
        async with self._transaction(collection) as session:
            result = await session.execute(
                select(Record.data).where(Record.collection == collection).order_by(Record.created_at)
            )
            return [dict(d) for d in result.scalars().all()]

    async def query(self, collection: str, query: Query) -> list[dict]:
        stmt = select(Record.data).where(Record.collection == collection)
        # string equality is pushed down; everything else is evaluated in-process
        for flt in query.filters:
            if flt.op == EQ and isinstance(flt.value, str):
                stmt = stmt.where(Record.data[flt.field].as_string() == flt.value)
        async with self._transaction(collection) as session:
            result = await session.execute(stmt)
            docs = [dict(d) for d in result.scalars().all()]
        return apply_query(docs, query)

    async def array_append(
        self, collection: str, key: str, field_name: str, value: Any, seed: Optional[dict] = None
    ) -> bool:
        async with self._lock(collection, key):
            for attempt in range(1, _APPEND_ATTEMPTS + 1):
                try:
                    async with self._transaction(collection, key) as session:
                        row = await self._row(session, collection, key, lock=True)
                        if row is None:
                            session.add(Record(
                                collection=collection, key=key,
                                data={**(seed or {}), field_name: [value]},
                            ))
                            return True
                        row.data = {**row.data, field_name: [*row.data.get(field_name, []), value]}
                        return False
                except ConflictError:
                    # another process inserted the document first
                    logger.warning(f"Append race on {collection}/{key} (attempt {attempt}), retrying")
                    if attempt == _APPEND_ATTEMPTS:
                        raise StoreError(f"append to {collection}/{key} kept conflicting")
        return False

    async def set_add(self, collection: str, key: str, field_name: str, value: Any) -> None:
        async with self._lock(collection, key):
            async with self._transaction(collection, key) as session:
                row = await self._row(session, collection, key, lock=True)
                if not row:
                    raise NotFoundError(collection, key)
                items = list(row.data.get(field_name, []))
                if value not in items:
                    items.append(value)
                    row.data = {**row.data, field_name: items}

    async def set_remove(self, collection: str, key: str, field_name: str, value: Any) -> None:
        async with self._lock(collection, key):
            async with self._transaction(collection, key) as session:
                row = await self._row(session, collection, key, lock=True)
                if not row:
                    raise NotFoundError(collection, key)
                items = [v for v in row.data.get(field_name, []) if v != value]
                row.data = {**row.data, field_name: items}
