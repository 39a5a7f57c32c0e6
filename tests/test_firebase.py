"""
Tests for the Firestore record store — SDK init and the adapter over a mocked client.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from google.api_core import exceptions as gexc

import tradetrack.services.firebase as fb_mod
from tradetrack.errors import ConflictError, NotFoundError, StoreError
from tradetrack.services.firebase import FirestoreRecordStore
from tradetrack.services.store import ARRAY_CONTAINS, EQ, Query


def snapshot(doc=None):
    snap = MagicMock()
    snap.exists = doc is not None
    snap.to_dict.return_value = doc
    return snap


async def aiter_of(items):
    for item in items:
        yield item


@pytest.fixture()
def ref():
    ref = MagicMock()
    ref.get = AsyncMock(return_value=snapshot())
    for name in ("set", "create", "update", "delete"):
        setattr(ref, name, AsyncMock())
    return ref


@pytest.fixture()
def client(ref):
    client = MagicMock()
    client.collection.return_value.document.return_value = ref
    return client


@pytest.fixture()
def store(client):
    return FirestoreRecordStore(client)


# ── SDK init ────────────────────────────────────────────


class TestFirebaseInit:
    def test_init_no_cred_path(self):
        """Without cred path, init should return False."""
        old = fb_mod._initialized
        fb_mod._initialized = False

        assert fb_mod.init_firebase(cred_path="") is False

        fb_mod._initialized = old

    def test_init_already_initialized(self):
        old = fb_mod._initialized
        fb_mod._initialized = True

        assert fb_mod.init_firebase(cred_path="/fake.json") is True

        fb_mod._initialized = old

    def test_init_bad_cred_file(self, tmp_path):
        old = fb_mod._initialized
        fb_mod._initialized = False

        assert fb_mod.init_firebase(cred_path=str(tmp_path / "missing.json")) is False
        assert fb_mod.is_initialized() is False

        fb_mod._initialized = old

    def test_is_initialized(self):
        old = fb_mod._initialized
        fb_mod._initialized = True
        assert fb_mod.is_initialized() is True
        fb_mod._initialized = False
        assert fb_mod.is_initialized() is False
        fb_mod._initialized = old


# ── Documents ───────────────────────────────────────────


class TestDocuments:
    async def test_get(self, store, client, ref):
        ref.get.return_value = snapshot({"tokenId": "1"})
        assert await store.get("KYCs", "1") == {"tokenId": "1"}
        client.collection.assert_called_with("KYCs")
        client.collection.return_value.document.assert_called_with("1")

    async def test_get_missing(self, store):
        assert await store.get("KYCs", "1") is None

    async def test_get_unavailable(self, store, ref):
        ref.get.side_effect = gexc.ServiceUnavailable("down")
        with pytest.raises(StoreError):
            await store.get("KYCs", "1")

    async def test_create_conflict(self, store, ref):
        ref.create.side_effect = gexc.AlreadyExists("exists")
        with pytest.raises(ConflictError):
            await store.create("KYCs", "1", {"tokenId": "1"})

    async def test_update_missing(self, store, ref):
        ref.update.side_effect = gexc.NotFound("missing")
        with pytest.raises(NotFoundError):
            await store.update("KYCs", "1", {"status": "Signed"})

    async def test_update_returns_merged(self, store, ref):
        ref.get.return_value = snapshot({"tokenId": "1", "status": "Signed"})
        assert (await store.update("KYCs", "1", {"status": "Signed"}))["status"] == "Signed"
        ref.update.assert_awaited_once_with({"status": "Signed"})

    async def test_delete_missing(self, store, ref):
        with pytest.raises(NotFoundError):
            await store.delete("notifications", "n1")
        ref.delete.assert_not_called()

    async def test_delete(self, store, ref):
        ref.get.return_value = snapshot({"id": "n1"})
        await store.delete("notifications", "n1")
        ref.delete.assert_awaited_once()

    async def test_add_returns_generated_id(self, store, client):
        new_ref = MagicMock(id="auto123")
        client.collection.return_value.add = AsyncMock(return_value=(None, new_ref))
        assert await store.add("activityLogs/0xA/history", {"action": "x"}) == "auto123"

    async def test_keys(self, store, client):
        client.collection.return_value.list_documents = lambda: aiter_of([MagicMock(id="a"), MagicMock(id="b")])
        assert await store.keys("contractLogs") == ["a", "b"]


class TestQuery:
    async def test_filters_order_cursor_limit(self, store, client):
        coll = client.collection.return_value
        for name in ("where", "order_by", "start_after", "limit"):
            getattr(coll, name).return_value = coll
        coll.stream = lambda: aiter_of([snapshot({"tokenId": 1})])

        query = Query(order_by="timestamp", descending=True, start_after=50, limit=10)
        query.where("linkedContracts", ARRAY_CONTAINS, "0xC").where("owner", EQ, "0xO")
        assert await store.query("documents", query) == [{"tokenId": 1}]

        ops = [c.kwargs["filter"].op_string for c in coll.where.call_args_list]
        assert ops == ["array_contains", "=="]
        coll.start_after.assert_called_once_with({"timestamp": 50})
        coll.limit.assert_called_once_with(10)


class TestArrayOps:
    async def test_append_seeds_new_document(self, store, client, ref):
        transaction = MagicMock()
        client.transaction.return_value = transaction
        with patch.object(fb_mod.firestore, "async_transactional", lambda fn: fn):
            created = await store.array_append("contractLogs", "0xC", "history", {"a": 1}, seed={"contractAddress": "0xC"})
        assert created is True
        transaction.set.assert_called_once_with(ref, {"contractAddress": "0xC", "history": [{"a": 1}]})

    async def test_append_extends_existing(self, store, client, ref):
        transaction = MagicMock()
        client.transaction.return_value = transaction
        ref.get.return_value = snapshot({"contractAddress": "0xC", "history": [{"a": 1}]})
        with patch.object(fb_mod.firestore, "async_transactional", lambda fn: fn):
            created = await store.array_append("contractLogs", "0xC", "history", {"a": 2})
        assert created is False
        transaction.update.assert_called_once_with(ref, {"history": [{"a": 1}, {"a": 2}]})

    async def test_set_add_uses_array_union(self, store, ref):
        await store.set_add("aggregatedActivityLogs", "id1", "tags", "kyc")
        (changes,), _ = ref.update.call_args
        assert isinstance(changes["tags"], fb_mod.firestore.ArrayUnion)

    async def test_set_remove_missing(self, store, ref):
        ref.update.side_effect = gexc.NotFound("missing")
        with pytest.raises(NotFoundError):
            await store.set_remove("aggregatedActivityLogs", "id1", "tags", "kyc")
