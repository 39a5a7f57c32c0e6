"""
TradeTrack — Record store interface and in-memory backend.

The log services only talk to a ``RecordStore``: keyed documents grouped in
collections, simple field queries, and three atomic primitives
(``array_append``, ``set_add``, ``set_remove``) that the history and tag
logic depend on. Backends: ``MemoryRecordStore`` (here), ``SqlRecordStore``
(services/sql_store.py) and ``FirestoreRecordStore`` (services/firebase.py).
"""

import asyncio
import copy
import logging
import uuid
import weakref
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional

from tradetrack.errors import ConflictError, NotFoundError

logger = logging.getLogger(__name__)

EQ = "=="
ARRAY_CONTAINS = "array_contains"


@dataclass
class Filter:
    field: str
    op: str
    value: Any


@dataclass
class Query:
    """Field query: equality / array-contains filters, one ordering field, cursor, limit."""

    filters: list[Filter] = field(default_factory=list)
    order_by: Optional[str] = None
    descending: bool = False
    start_after: Any = None
    limit: Optional[int] = None

    def where(self, field_name: str, op: str, value: Any) -> "Query":
        if op not in (EQ, ARRAY_CONTAINS):
            raise ValueError(f"Unsupported filter op: {op}")
        self.filters.append(Filter(field_name, op, value))
        return self


def matches(doc: dict, flt: Filter) -> bool:
    value = doc.get(flt.field)
    if flt.op == ARRAY_CONTAINS:
        return isinstance(value, list) and flt.value in value
    return value == flt.value


def apply_query(docs: list[dict], query: Query) -> list[dict]:
    """Evaluate a Query in-process. Shared by backends without native support."""
    result = [d for d in docs if all(matches(d, f) for f in query.filters)]

    if query.order_by:
        # ordered queries skip documents that lack the ordering field
        result = [d for d in result if d.get(query.order_by) is not None]
        result.sort(key=lambda d: d[query.order_by], reverse=query.descending)
        if query.start_after is not None:
            if query.descending:
                result = [d for d in result if d[query.order_by] < query.start_after]
            else:
                result = [d for d in result if d[query.order_by] > query.start_after]

    if query.limit is not None:
        result = result[: max(query.limit, 0)]
    return result


class KeyedLocks:
    """
    One asyncio.Lock per (collection, key).

    Held weakly: a lock disappears as soon as no coroutine holds or waits
    on it, so the map stays as small as the set of keys in flight.
    """

    def __init__(self):
        self._locks: weakref.WeakValueDictionary = weakref.WeakValueDictionary()

    def __call__(self, collection: str, key: str) -> asyncio.Lock:
        lock = self._locks.get((collection, key))
        if lock is None:
            lock = asyncio.Lock()
            self._locks[(collection, key)] = lock
        return lock

    def __len__(self) -> int:
        return len(self._locks)


class RecordStore(ABC):
    """Async document store used by every log service."""

    @abstractmethod
    async def get(self, collection: str, key: str) -> Optional[dict]:
        """Return the document or None."""

    @abstractmethod
    async def set(self, collection: str, key: str, doc: dict) -> None:
        """Create or overwrite a document."""

    @abstractmethod
    async def create(self, collection: str, key: str, doc: dict) -> None:
        """Create a document; ConflictError if the key is taken."""

    @abstractmethod
    async def update(self, collection: str, key: str, changes: dict) -> dict:
        """Shallow-merge ``changes`` into an existing document and return it."""

    @abstractmethod
    async def delete(self, collection: str, key: str) -> None:
        """Hard delete; NotFoundError if missing."""

    @abstractmethod
    async def add(self, collection: str, doc: dict) -> str:
        """Store ``doc`` under a generated key and return the key."""

    @abstractmethod
    async def keys(self, collection: str) -> list[str]:
        ...

    @abstractmethod
    async def scan(self, collection: str) -> list[dict]:
        ...

    @abstractmethod
    async def query(self, collection: str, query: Query) -> list[dict]:
        ...

    @abstractmethod
    async def array_append(
        self, collection: str, key: str, field_name: str, value: Any, seed: Optional[dict] = None
    ) -> bool:
        """
        Atomically append ``value`` to the list ``field_name``.

        Creates the document as ``{**seed, field_name: [value]}`` when it does
        not exist. Never de-duplicates. Returns True when the document was created.
        """

    @abstractmethod
    async def set_add(self, collection: str, key: str, field_name: str, value: Any) -> None:
        """Atomic set union on a list field; NotFoundError if the document is missing."""

    @abstractmethod
    async def set_remove(self, collection: str, key: str, field_name: str, value: Any) -> None:
        """Atomic removal from a list field; removing an absent value is a no-op."""

    async def close(self) -> None:
        return None


class MemoryRecordStore(RecordStore):
    """
    Dict-backed store for tests and single-process deployments.

    Documents are deep-copied on the way in and out, and the atomic
    primitives run under a per-(collection, key) asyncio.Lock.
    """

    def __init__(self):
        self._data: dict[str, dict[str, dict]] = {}
        self._lock = KeyedLocks()

    def _bucket(self, collection: str) -> dict[str, dict]:
        return self._data.setdefault(collection, {})

    async def get(self, collection: str, key: str) -> Optional[dict]:
        doc = self._bucket(collection).get(key)
        return copy.deepcopy(doc) if doc is not None else None

    async def set(self, collection: str, key: str, doc: dict) -> None:
        async with self._lock(collection, key):
            self._bucket(collection)[key] = copy.deepcopy(doc)

    async def create(self, collection: str, key: str, doc: dict) -> None:
        async with self._lock(collection, key):
            bucket = self._bucket(collection)
            if key in bucket:
                raise ConflictError(collection, key)
            bucket[key] = copy.deepcopy(doc)

    async def update(self, collection: str, key: str, changes: dict) -> dict:
        async with self._lock(collection, key):
            bucket = self._bucket(collection)
            if key not in bucket:
                raise NotFoundError(collection, key)
            merged = {**bucket[key], **copy.deepcopy(changes)}
            bucket[key] = merged
            return copy.deepcopy(merged)

    async def delete(self, collection: str, key: str) -> None:
        async with self._lock(collection, key):
            bucket = self._bucket(collection)
            if key not in bucket:
                raise NotFoundError(collection, key)
            del bucket[key]

    async def add(self, collection: str, doc: dict) -> str:
        key = uuid.uuid4().hex
        self._bucket(collection)[key] = copy.deepcopy(doc)
        return key

    async def keys(self, collection: str) -> list[str]:
        return list(self._bucket(collection))

    async def scan(self, collection: str) -> list[dict]:
        return [copy.deepcopy(d) for d in self._bucket(collection).values()]

    async def query(self, collection: str, query: Query) -> list[dict]:
        return apply_query(await self.scan(collection), query)

    async def array_append(
        self, collection: str, key: str, field_name: str, value: Any, seed: Optional[dict] = None
    ) -> bool:
        async with self._lock(collection, key):
            bucket = self._bucket(collection)
            doc = bucket.get(key)
            if doc is None:
                bucket[key] = {**copy.deepcopy(seed or {}), field_name: [copy.deepcopy(value)]}
                return True
            doc.setdefault(field_name, []).append(copy.deepcopy(value))
            return False

    async def set_add(self, collection: str, key: str, field_name: str, value: Any) -> None:
        async with self._lock(collection, key):
            doc = self._bucket(collection).get(key)
            if doc is None:
                raise NotFoundError(collection, key)
            items = doc.setdefault(field_name, [])
            if value not in items:
                items.append(value)

    async def set_remove(self, collection: str, key: str, field_name: str, value: Any) -> None:
        async with self._lock(collection, key):
            doc = self._bucket(collection).get(key)
            if doc is None:
                raise NotFoundError(collection, key)
            doc[field_name] = [v for v in doc.get(field_name, []) if v != value]
