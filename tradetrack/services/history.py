"""
TradeTrack — Per-entity history log.

One document per entity (contract address, document tokenId, KYC tokenId)
holding an append-only ``history`` array. Appends go through the store's
atomic ``array_append`` so concurrent writers never lose entries, and
entries are kept in arrival order even when their timestamps are not.
"""

import asyncio
import logging
from typing import Any, Callable, Iterable, Optional

from pydantic import ValidationError as PydanticValidationError

from tradetrack.errors import TradeTrackError
from tradetrack.schemas.logs import LogEntry
from tradetrack.services.codec import normalize_address
from tradetrack.services.store import EQ, Query, RecordStore

logger = logging.getLogger(__name__)

CONTRACT_LOGS = "contractLogs"
DOCUMENT_LOGS = "documentLogs"
KYC_LOGS = "KYCLogs"

HISTORY_FIELD = "history"


def _token_key(value: Any) -> str:
    return str(value).strip()


class EntityHistoryLog:
    """Append-only history for one entity type."""

    def __init__(
        self,
        store: RecordStore,
        collection: str,
        key_field: str,
        normalize: Callable[[Any], str] = _token_key,
    ):
        self.store = store
        self.collection = collection
        self.key_field = key_field
        self._normalize = normalize

    def key_for(self, entity_key: Any) -> str:
        return self._normalize(entity_key)

    async def append(self, entity_key: Any, entry: LogEntry) -> LogEntry:
        """Append one entry, creating the history document on first use. Errors propagate."""
        key = self.key_for(entity_key)
        created = await self.store.array_append(
            self.collection, key, HISTORY_FIELD, entry.to_doc(), seed={self.key_field: key},
        )
        if created:
            logger.info(f"📜 New {self.collection} history for {key} ({entry.action})")
        else:
            logger.info(f"📜 {self.collection}/{key} += {entry.action}")
        return entry

    async def get_document(self, entity_key: Any) -> Optional[dict]:
        """Raw ``{<key_field>, history}`` document, or None when nothing was ever logged."""
        return await self.store.get(self.collection, self.key_for(entity_key))

    async def get(self, entity_key: Any) -> list[LogEntry]:
        doc = await self.get_document(entity_key)
        if not doc:
            return []
        return [LogEntry.model_validate(e) for e in doc.get(HISTORY_FIELD, [])]

    async def last_entry(self, entity_key: Any) -> Optional[LogEntry]:
        history = await self.get(entity_key)
        return history[-1] if history else None

    async def keys(self) -> list[str]:
        return await self.store.keys(self.collection)

    async def _get_or_empty(self, key: str) -> list[LogEntry]:
        try:
            return await self.get(key)
        except (TradeTrackError, PydanticValidationError) as e:
            logger.warning(f"History for {self.collection}/{key} unavailable: {e}")
            return []

    async def histories_for(self, entity_keys: Iterable[Any]) -> dict[str, list[LogEntry]]:
        """Fetch several histories concurrently; a failing one degrades to []."""
        keys = [self.key_for(k) for k in entity_keys]
        results = await asyncio.gather(*(self._get_or_empty(k) for k in keys))
        return dict(zip(keys, results))

    async def find_with_history(
        self,
        collection: str,
        field_name: str,
        value: Any,
        op: str = EQ,
        record_key_field: Optional[str] = None,
    ) -> list[dict]:
        """
        Records of ``collection`` where ``field_name`` matches ``value``, each
        with its history attached under ``history``.
        """
        records = await self.store.query(collection, Query().where(field_name, op, value))
        key_field = record_key_field or self.key_field
        keyed = [r for r in records if r.get(key_field) is not None]
        histories = await self.histories_for(r[key_field] for r in keyed)
        return [
            {**r, HISTORY_FIELD: [e.to_doc() for e in histories[self.key_for(r[key_field])]]}
            for r in keyed
        ]


def contract_history(store: RecordStore) -> EntityHistoryLog:
    return EntityHistoryLog(store, CONTRACT_LOGS, "contractAddress", normalize=normalize_address)


def document_history(store: RecordStore) -> EntityHistoryLog:
    return EntityHistoryLog(store, DOCUMENT_LOGS, "tokenId")


def kyc_history(store: RecordStore) -> EntityHistoryLog:
    return EntityHistoryLog(store, KYC_LOGS, "tokenId")
