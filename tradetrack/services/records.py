"""
TradeTrack — KYC and trade-document records.

Just enough record keeping for the logging flows: create (refusing
duplicates), read, merge-update, delete and find-by-field.
"""

import logging
from typing import Any, Optional

from tradetrack.errors import NotFoundError
from tradetrack.schemas.logs import now_ms
from tradetrack.services.store import EQ, Query, RecordStore

logger = logging.getLogger(__name__)

KYC_RECORDS = "KYCs"
DOCUMENT_RECORDS = "documents"

# Stamped by the store side, never taken from an update body
_SERVER_FIELDS = ("createdAt", "updatedAt")


class EntityRecords:
    def __init__(self, store: RecordStore, collection: str, key_field: str = "tokenId"):
        self.store = store
        self.collection = collection
        self.key_field = key_field

    async def create(self, key: str, doc: dict) -> dict:
        """ConflictError when ``key`` is taken; the existing record is left alone."""
        record = {**doc, "createdAt": doc.get("createdAt") or now_ms()}
        await self.store.create(self.collection, key, record)
        logger.info(f"✅ {self.collection}/{key} created")
        return record

    async def get(self, key: str) -> Optional[dict]:
        return await self.store.get(self.collection, key)

    async def require(self, key: str) -> dict:
        record = await self.get(key)
        if record is None:
            raise NotFoundError(self.collection, key)
        return record

    async def update(self, key: str, changes: dict) -> dict:
        changes = {
            k: v for k, v in changes.items()
            if k != self.key_field and k not in _SERVER_FIELDS
        }
        return await self.store.update(self.collection, key, {**changes, "updatedAt": now_ms()})

    async def delete(self, key: str) -> None:
        await self.store.delete(self.collection, key)
        logger.info(f"🗑️  {self.collection}/{key} deleted")

    async def find(self, field_name: str, value: Any, op: str = EQ) -> list[dict]:
        return await self.store.query(self.collection, Query().where(field_name, op, value))
