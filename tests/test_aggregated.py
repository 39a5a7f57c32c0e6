"""
Tests for the aggregated activity log — shadow fields, queries, tags.
"""

import asyncio

import pytest

from tradetrack.errors import NotFoundError, ValidationError
from tradetrack.services.aggregated import AGGREGATED_LOGS, AggregatedActivityLog, aggregated_id
from tests.conftest import CONTRACT, EXPORTER, IMPORTER, TX_HASH, activity_payload


@pytest.fixture()
def aggregated(record_store):
    return AggregatedActivityLog(record_store)


class TestAdd:
    async def test_shadow_fields_and_id(self, aggregated):
        entry = await aggregated.add(activity_payload(timestamp=42, txHash=TX_HASH.upper().replace("0X", "0x")))
        assert entry.id == f"{IMPORTER}_42"
        assert entry.account_lower == IMPORTER.lower()
        assert entry.tx_hash_lower == TX_HASH.lower()
        assert entry.contract_lower == CONTRACT.lower()
        assert entry.tags == []

    async def test_missing_optional_shadow_fields_absent(self, aggregated, record_store):
        entry = await aggregated.add({"type": "backend", "action": "login", "account": IMPORTER, "timestamp": 1})
        doc = await record_store.get(AGGREGATED_LOGS, entry.id)
        assert "txHashLower" not in doc
        assert "contractLower" not in doc
        assert doc["tags"] == []

    async def test_same_account_and_timestamp_last_write_wins(self, aggregated, record_store):
        await aggregated.add(activity_payload(timestamp=7, action="deposit"))
        await aggregated.add(activity_payload(timestamp=7, action="finalize"))
        assert await record_store.keys(AGGREGATED_LOGS) == [aggregated_id(IMPORTER, 7)]
        assert (await aggregated.get_by_id(aggregated_id(IMPORTER, 7))).action == "finalize"

    async def test_get_by_id_missing(self, aggregated):
        assert await aggregated.get_by_id("nope") is None
        with pytest.raises(NotFoundError):
            await aggregated.require("nope")


class TestQuery:
    async def test_account_filter_case_insensitive(self, aggregated):
        await aggregated.add(activity_payload(account=IMPORTER, timestamp=1))
        await aggregated.add(activity_payload(account=EXPORTER, timestamp=2))
        upper = await aggregated.query(account=IMPORTER.upper().replace("0X", "0x"))
        lower = await aggregated.query(account=IMPORTER.lower())
        assert [e.id for e in upper] == [e.id for e in lower] == [f"{IMPORTER}_1"]

    async def test_tx_and_contract_filters(self, aggregated):
        await aggregated.add(activity_payload(timestamp=1, txHash="0xAbC"))
        await aggregated.add(activity_payload(timestamp=2, txHash="0xdef"))
        assert [e.timestamp for e in await aggregated.query(tx_hash="0xABC")] == [1]
        assert len(await aggregated.query(contract_address=CONTRACT.lower())) == 2

    async def test_newest_first_with_cursor_and_limit(self, aggregated):
        for ts in range(1, 8):
            await aggregated.add(activity_payload(timestamp=ts))
        page = await aggregated.query(limit=3)
        assert [e.timestamp for e in page] == [7, 6, 5]
        page = await aggregated.query(limit=3, start_after_timestamp=5)
        assert [e.timestamp for e in page] == [4, 3, 2]

    async def test_tags_argument_is_not_a_filter(self, aggregated):
        await aggregated.add(activity_payload(timestamp=1))
        assert len(await aggregated.query(tags=["never-applied"])) == 1


class TestTags:
    async def test_add_tag_twice_keeps_one(self, aggregated):
        entry = await aggregated.add(activity_payload(timestamp=1))
        await aggregated.add_tag(entry.id, "kyc")
        await aggregated.add_tag(entry.id, "kyc")
        assert (await aggregated.get_by_id(entry.id)).tags == ["kyc"]

    async def test_remove_absent_tag_is_noop(self, aggregated):
        entry = await aggregated.add(activity_payload(timestamp=1))
        await aggregated.add_tag(entry.id, "kyc")
        await aggregated.remove_tag(entry.id, "mint")
        assert (await aggregated.get_by_id(entry.id)).tags == ["kyc"]

    async def test_remove_tag(self, aggregated):
        entry = await aggregated.add(activity_payload(timestamp=1))
        await aggregated.add_tag(entry.id, "kyc")
        await aggregated.remove_tag(entry.id, "kyc")
        assert (await aggregated.get_by_id(entry.id)).tags == []

    async def test_concurrent_distinct_tags_merge(self, aggregated):
        entry = await aggregated.add(activity_payload(timestamp=1))
        tags = ["kyc", "mint", "review", "sign"]
        await asyncio.gather(*(aggregated.add_tag(entry.id, t) for t in tags))
        assert sorted((await aggregated.get_by_id(entry.id)).tags) == sorted(tags)

    async def test_blank_tag_rejected(self, aggregated):
        entry = await aggregated.add(activity_payload(timestamp=1))
        with pytest.raises(ValidationError):
            await aggregated.add_tag(entry.id, "  ")

    async def test_unknown_entry(self, aggregated):
        with pytest.raises(NotFoundError):
            await aggregated.add_tag("nope", "kyc")
