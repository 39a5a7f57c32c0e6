"""
Tests for the record store backends — memory and SQLAlchemy (SQLite).
"""

import asyncio

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

import tradetrack.models  # noqa: F401
from tradetrack.database import Base, serialize_sqlite_writes
from tradetrack.errors import ConflictError, NotFoundError
from tradetrack.schemas.logs import LogEntry
from tradetrack.services.history import contract_history
from tradetrack.services.sql_store import SqlRecordStore
from tradetrack.services.store import ARRAY_CONTAINS, EQ, MemoryRecordStore, Query, apply_query
from tests.conftest import CONTRACT, IMPORTER


# ── Query evaluation ────────────────────────────────────

class TestApplyQuery:
    DOCS = [
        {"id": "a", "ts": 3, "owner": "x", "tags": ["kyc"]},
        {"id": "b", "ts": 1, "owner": "y", "tags": []},
        {"id": "c", "ts": 2, "owner": "x", "tags": ["kyc", "mint"]},
        {"id": "d", "owner": "x"},
    ]

    def test_equality_filter(self):
        result = apply_query(self.DOCS, Query().where("owner", EQ, "x"))
        assert {d["id"] for d in result} == {"a", "c", "d"}

    def test_array_contains(self):
        result = apply_query(self.DOCS, Query().where("tags", ARRAY_CONTAINS, "kyc"))
        assert {d["id"] for d in result} == {"a", "c"}

    def test_descending_order_skips_docs_without_field(self):
        result = apply_query(self.DOCS, Query(order_by="ts", descending=True))
        assert [d["id"] for d in result] == ["a", "c", "b"]

    def test_descending_cursor_is_strictly_older(self):
        result = apply_query(self.DOCS, Query(order_by="ts", descending=True, start_after=3))
        assert [d["id"] for d in result] == ["c", "b"]

    def test_ascending_cursor_is_strictly_newer(self):
        result = apply_query(self.DOCS, Query(order_by="ts", start_after=1))
        assert [d["id"] for d in result] == ["c", "a"]

    def test_limit(self):
        result = apply_query(self.DOCS, Query(order_by="ts", descending=True, limit=2))
        assert [d["id"] for d in result] == ["a", "c"]

    def test_zero_limit_returns_nothing(self):
        assert apply_query(self.DOCS, Query(order_by="ts", descending=True, limit=0)) == []

    def test_unknown_operator_rejected(self):
        with pytest.raises(ValueError):
            Query().where("ts", ">", 1)


# ── Backend contract ────────────────────────────────────

class TestRecordStore:
    async def test_get_missing_returns_none(self, record_store):
        assert await record_store.get("things", "nope") is None

    async def test_set_then_get(self, record_store):
        await record_store.set("things", "k1", {"name": "one", "n": 1})
        assert await record_store.get("things", "k1") == {"name": "one", "n": 1}

    async def test_set_overwrites(self, record_store):
        await record_store.set("things", "k1", {"name": "one"})
        await record_store.set("things", "k1", {"name": "uno"})
        assert await record_store.get("things", "k1") == {"name": "uno"}

    async def test_create_conflict_leaves_original(self, record_store):
        await record_store.create("things", "k1", {"v": 1})
        with pytest.raises(ConflictError):
            await record_store.create("things", "k1", {"v": 2})
        assert await record_store.get("things", "k1") == {"v": 1}

    async def test_update_merges(self, record_store):
        await record_store.set("things", "k1", {"a": 1, "b": 2})
        merged = await record_store.update("things", "k1", {"b": 3, "c": 4})
        assert merged == {"a": 1, "b": 3, "c": 4}
        assert await record_store.get("things", "k1") == merged

    async def test_update_missing_raises(self, record_store):
        with pytest.raises(NotFoundError):
            await record_store.update("things", "nope", {"a": 1})

    async def test_delete(self, record_store):
        await record_store.set("things", "k1", {"a": 1})
        await record_store.delete("things", "k1")
        assert await record_store.get("things", "k1") is None
        with pytest.raises(NotFoundError):
            await record_store.delete("things", "k1")

    async def test_add_generates_keys(self, record_store):
        k1 = await record_store.add("things", {"n": 1})
        k2 = await record_store.add("things", {"n": 2})
        assert k1 != k2
        assert set(await record_store.keys("things")) == {k1, k2}

    async def test_collections_are_isolated(self, record_store):
        await record_store.set("a/1/history", "x", {"n": 1})
        await record_store.set("a/2/history", "x", {"n": 2})
        assert await record_store.scan("a/1/history") == [{"n": 1}]
        assert await record_store.keys("a") == []

    async def test_query_pushes_string_filters(self, record_store):
        await record_store.set("n", "1", {"userId": "alice", "createdAt": 1})
        await record_store.set("n", "2", {"userId": "bob", "createdAt": 2})
        await record_store.set("n", "3", {"userId": "alice", "createdAt": 3})
        result = await record_store.query(
            "n", Query(order_by="createdAt", descending=True).where("userId", EQ, "alice"),
        )
        assert [d["createdAt"] for d in result] == [3, 1]

    async def test_returned_documents_are_copies(self, record_store):
        await record_store.set("things", "k1", {"items": [1]})
        doc = await record_store.get("things", "k1")
        doc["items"].append(2)
        assert await record_store.get("things", "k1") == {"items": [1]}


class TestArrayAppend:
    async def test_creates_document_from_seed(self, record_store):
        created = await record_store.array_append("logs", "k", "history", {"n": 1}, seed={"id": "k"})
        assert created is True
        assert await record_store.get("logs", "k") == {"id": "k", "history": [{"n": 1}]}

    async def test_appends_without_dedup(self, record_store):
        await record_store.array_append("logs", "k", "history", {"n": 1})
        created = await record_store.array_append("logs", "k", "history", {"n": 1})
        assert created is False
        assert (await record_store.get("logs", "k"))["history"] == [{"n": 1}, {"n": 1}]

    async def test_concurrent_appends_lose_nothing(self, record_store):
        await asyncio.gather(*(
            record_store.array_append("logs", "k", "history", {"n": i}) for i in range(25)
        ))
        history = (await record_store.get("logs", "k"))["history"]
        assert sorted(e["n"] for e in history) == list(range(25))


class TestSetOps:
    async def test_set_add_is_idempotent(self, record_store):
        await record_store.set("agg", "e", {"tags": []})
        await record_store.set_add("agg", "e", "tags", "kyc")
        await record_store.set_add("agg", "e", "tags", "kyc")
        assert (await record_store.get("agg", "e"))["tags"] == ["kyc"]

    async def test_set_remove_absent_is_noop(self, record_store):
        await record_store.set("agg", "e", {"tags": ["kyc"]})
        await record_store.set_remove("agg", "e", "tags", "mint")
        await record_store.set_remove("agg", "e", "tags", "kyc")
        assert (await record_store.get("agg", "e"))["tags"] == []

    async def test_missing_document_raises(self, record_store):
        with pytest.raises(NotFoundError):
            await record_store.set_add("agg", "nope", "tags", "kyc")
        with pytest.raises(NotFoundError):
            await record_store.set_remove("agg", "nope", "tags", "kyc")


# ── Lock bookkeeping ────────────────────────────────────

class TestKeyedLocks:
    async def test_locks_released_after_writes(self):
        store = MemoryRecordStore()
        await asyncio.gather(*(store.create("notifications", f"n{i}", {"i": i}) for i in range(300)))
        await asyncio.gather(*(store.array_append("logs", "k", "history", i) for i in range(20)))
        assert len(store._lock) == 0
        assert len((await store.get("logs", "k"))["history"]) == 20

    async def test_lock_shared_while_in_use(self):
        store = MemoryRecordStore()
        lock = store._lock("logs", "k")
        async with lock:
            assert store._lock("logs", "k") is lock
            assert len(store._lock) == 1


# ── Several processes on one SQLite file ────────────────

@pytest_asyncio.fixture()
async def shared_file_stores(tmp_path):
    """Two stores on separate engines over the same database file."""
    url = f"sqlite+aiosqlite:///{tmp_path / 'shared.db'}"
    engines = [create_async_engine(url, connect_args={"timeout": 30}) for _ in range(2)]
    for engine in engines:
        serialize_sqlite_writes(engine)
    async with engines[0].begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield [SqlRecordStore(async_sessionmaker(e, expire_on_commit=False)) for e in engines]
    finally:
        for engine in engines:
            await engine.dispose()


class TestSharedSqliteFile:
    async def test_appends_from_two_engines_all_kept(self, shared_file_stores):
        logs = [contract_history(store) for store in shared_file_stores]
        await asyncio.gather(*(
            logs[i % 2].append(CONTRACT, LogEntry(action="deposit", account=IMPORTER, txHash="0x1", timestamp=i))
            for i in range(30)
        ))
        for log in logs:
            assert sorted(e.timestamp for e in await log.get(CONTRACT)) == list(range(30))

    async def test_tags_from_two_engines_all_kept(self, shared_file_stores):
        first, second = shared_file_stores
        await first.set("agg", "e", {"tags": []})
        tags = [f"t{i}" for i in range(20)]
        await asyncio.gather(*(
            (first if i % 2 else second).set_add("agg", "e", "tags", tag) for i, tag in enumerate(tags)
        ))
        assert sorted((await second.get("agg", "e"))["tags"]) == sorted(tags)
