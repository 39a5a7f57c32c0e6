"""
TradeTrack — Global activity log.

Each account owns a sub-log ``activityLogs/{account}/history``. An index
document ``activityLogs/{account}`` is refreshed on every write so that
account scans see every account that has activity.
"""

import logging
from typing import Optional

from tradetrack.schemas.logs import ActivityLogEntry, now_ms
from tradetrack.services.codec import decode_activity, normalize_address
from tradetrack.services.store import Query, RecordStore

logger = logging.getLogger(__name__)

ACTIVITY_LOGS = "activityLogs"


def account_log(account: str) -> str:
    """Collection path of one account's sub-log."""
    return f"{ACTIVITY_LOGS}/{account}/history"


class ActivityLogService:
    def __init__(self, store: RecordStore):
        self.store = store

    async def add(self, payload: dict) -> ActivityLogEntry:
        entry = decode_activity(payload)
        await self.store.set(
            ACTIVITY_LOGS, entry.account, {"account": entry.account, "lastActivityAt": now_ms()},
        )
        await self.store.add(account_log(entry.account), entry.to_doc())
        logger.info(f"🗒️  Activity {entry.action} by {entry.account}")
        return entry

    async def accounts(self) -> list[str]:
        return await self.store.keys(ACTIVITY_LOGS)

    async def list_by_account(
        self,
        account: str,
        limit: Optional[int] = None,
        start_after_timestamp: Optional[int] = None,
    ) -> list[ActivityLogEntry]:
        """
        Newest first. ``start_after_timestamp`` returns strictly older entries;
        pass the last timestamp of a page to get the next one.
        """
        query = Query(
            order_by="timestamp", descending=True,
            start_after=start_after_timestamp, limit=limit,
        )
        docs = await self.store.query(account_log(normalize_address(account)), query)
        return [ActivityLogEntry.model_validate(d) for d in docs]

    async def list_all(
        self,
        account: Optional[str] = None,
        tx_hash: Optional[str] = None,
        contract_address: Optional[str] = None,
        limit: Optional[int] = None,
        start_after_timestamp: Optional[int] = None,
    ) -> list[ActivityLogEntry]:
        """
        Activity across accounts.

        Without ``account`` every sub-log is paged separately, the pages are
        concatenated, post-filtered and re-sorted. Cost grows with the number
        of accounts; the aggregated log is the indexed alternative.
        """
        if account:
            entries = await self.list_by_account(account, limit, start_after_timestamp)
        else:
            entries = []
            for acc in await self.accounts():
                entries.extend(await self.list_by_account(acc, limit, start_after_timestamp))

        if tx_hash:
            wanted = tx_hash.lower()
            entries = [e for e in entries if (e.tx_hash or "").lower() == wanted]
        if contract_address:
            wanted = contract_address.strip().lower()
            entries = [e for e in entries if (e.contract_address or "").lower() == wanted]

        entries.sort(key=lambda e: e.timestamp, reverse=True)
        return entries
