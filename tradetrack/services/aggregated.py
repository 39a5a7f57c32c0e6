"""
TradeTrack — Aggregated activity log.

A flat, denormalized copy of activity entries with lower-cased shadow
fields (``accountLower``, ``txHashLower``, ``contractLower``) so equality
queries are case-insensitive, plus a mutable ``tags`` set.

Entries are keyed ``{account}_{timestamp}`` and written with a plain set:
two events from one account in the same millisecond collapse into the
last one written.
"""

import logging
from typing import Optional

from tradetrack.errors import NotFoundError, ValidationError
from tradetrack.schemas.logs import AggregatedActivityEntry
from tradetrack.services.codec import decode_activity
from tradetrack.services.store import EQ, Query, RecordStore

logger = logging.getLogger(__name__)

AGGREGATED_LOGS = "aggregatedActivityLogs"
TAGS_FIELD = "tags"


def aggregated_id(account: str, timestamp: int) -> str:
    return f"{account}_{timestamp}"


class AggregatedActivityLog:
    def __init__(self, store: RecordStore):
        self.store = store

    async def add(self, payload: dict) -> AggregatedActivityEntry:
        activity = decode_activity(payload)
        entry = AggregatedActivityEntry(
            **activity.model_dump(by_alias=True, exclude_none=True),
            id=aggregated_id(activity.account, activity.timestamp),
            accountLower=activity.account.lower(),
            txHashLower=activity.tx_hash.lower() if activity.tx_hash else None,
            contractLower=activity.contract_address.lower() if activity.contract_address else None,
            tags=[],
        )
        await self.store.set(AGGREGATED_LOGS, entry.id, entry.to_doc())
        logger.info(f"📇 Aggregated {entry.id} ({entry.action})")
        return entry

    async def get_by_id(self, entry_id: str) -> Optional[AggregatedActivityEntry]:
        doc = await self.store.get(AGGREGATED_LOGS, entry_id)
        return AggregatedActivityEntry.model_validate(doc) if doc else None

    async def query(
        self,
        account: Optional[str] = None,
        tx_hash: Optional[str] = None,
        contract_address: Optional[str] = None,
        tags: Optional[list[str]] = None,
        limit: Optional[int] = None,
        start_after_timestamp: Optional[int] = None,
    ) -> list[AggregatedActivityEntry]:
        """
        Newest first, filters matched case-insensitively.

        ``tags`` is accepted for interface compatibility but not applied;
        callers filter by tag on their side.
        """
        query = Query(
            order_by="timestamp", descending=True,
            start_after=start_after_timestamp, limit=limit,
        )
        if account:
            query.where("accountLower", EQ, account.strip().lower())
        if tx_hash:
            query.where("txHashLower", EQ, tx_hash.strip().lower())
        if contract_address:
            query.where("contractLower", EQ, contract_address.strip().lower())

        docs = await self.store.query(AGGREGATED_LOGS, query)
        return [AggregatedActivityEntry.model_validate(d) for d in docs]

    @staticmethod
    def _check_tag(tag: Optional[str]) -> str:
        if tag is None or not tag.strip():
            raise ValidationError("tag")
        return tag

    async def add_tag(self, entry_id: str, tag: str) -> None:
        """Set union: adding a tag that is already present changes nothing."""
        tag = self._check_tag(tag)
        await self.store.set_add(AGGREGATED_LOGS, entry_id, TAGS_FIELD, tag)
        logger.info(f"🏷️  {entry_id} + {tag}")

    async def remove_tag(self, entry_id: str, tag: str) -> None:
        tag = self._check_tag(tag)
        await self.store.set_remove(AGGREGATED_LOGS, entry_id, TAGS_FIELD, tag)
        logger.info(f"🏷️  {entry_id} - {tag}")

    async def require(self, entry_id: str) -> AggregatedActivityEntry:
        entry = await self.get_by_id(entry_id)
        if entry is None:
            raise NotFoundError(AGGREGATED_LOGS, entry_id)
        return entry
