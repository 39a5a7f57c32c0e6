"""
TradeTrack — Firestore record store.

Requires firebase-admin SDK and a service account key. History appends run
in a Firestore transaction (retried by the SDK on contention); tag edits
use ArrayUnion / ArrayRemove so concurrent edits of different tags merge.
"""

import logging
from typing import Any, Optional

import firebase_admin
from firebase_admin import credentials, firestore, firestore_async
from google.api_core import exceptions as gexc

from tradetrack.errors import ConflictError, NotFoundError, StoreError
from tradetrack.services.store import ARRAY_CONTAINS, Query, RecordStore

logger = logging.getLogger(__name__)

_initialized = False


def init_firebase(cred_path: str = "", project_id: str = "") -> bool:
    """
    Initialize Firebase Admin SDK.

    Args:
        cred_path: Path to the service account JSON key file.
        project_id: Optional project id override.

    Returns True if init succeeded, False otherwise.
    """
    global _initialized

    if _initialized:
        return True

    if not cred_path:
        logger.warning("FIREBASE_CRED_PATH not set — Firestore store unavailable")
        return False

    try:
        cred = credentials.Certificate(cred_path)
        options = {"projectId": project_id} if project_id else None
        firebase_admin.initialize_app(cred, options)
        _initialized = True
        logger.info("✅ Firebase Admin SDK initialized")
        return True
    except (ValueError, OSError) as e:
        logger.error(f"Firebase init failed: {e}")
        return False


def is_initialized() -> bool:
    """Check if Firebase Admin SDK is initialized."""
    return _initialized


class FirestoreRecordStore(RecordStore):
    """RecordStore over the async Firestore client."""

    def __init__(self, client=None):
        self._db = client if client is not None else firestore_async.client()

    def _ref(self, collection: str, key: str):
        return self._db.collection(collection).document(key)

    async def get(self, collection: str, key: str) -> Optional[dict]:
        try:
            snapshot = await self._ref(collection, key).get()
        except gexc.GoogleAPICallError as e:
            raise StoreError(f"Firestore get {collection}/{key} failed: {e}") from e
        return snapshot.to_dict() if snapshot.exists else None

    async def set(self, collection: str, key: str, doc: dict) -> None:
        try:
            await self._ref(collection, key).set(doc)
        except gexc.GoogleAPICallError as e:
            raise StoreError(f"Firestore set {collection}/{key} failed: {e}") from e

    async def create(self, collection: str, key: str, doc: dict) -> None:
        try:
            await self._ref(collection, key).create(doc)
        except gexc.AlreadyExists as e:
            raise ConflictError(collection, key) from e
        except gexc.GoogleAPICallError as e:
            raise StoreError(f"Firestore create {collection}/{key} failed: {e}") from e

    async def update(self, collection: str, key: str, changes: dict) -> dict:
        ref = self._ref(collection, key)
        try:
            await ref.update(changes)
            snapshot = await ref.get()
        except gexc.NotFound as e:
            raise NotFoundError(collection, key) from e
        except gexc.GoogleAPICallError as e:
            raise StoreError(f"Firestore update {collection}/{key} failed: {e}") from e
        return snapshot.to_dict() or {}

    async def delete(self, collection: str, key: str) -> None:
        ref = self._ref(collection, key)
        try:
            snapshot = await ref.get()
            if not snapshot.exists:
                raise NotFoundError(collection, key)
            await ref.delete()
        except gexc.GoogleAPICallError as e:
            raise StoreError(f"Firestore delete {collection}/{key} failed: {e}") from e

    async def add(self, collection: str, doc: dict) -> str:
        try:
            _, ref = await self._db.collection(collection).add(doc)
        except gexc.GoogleAPICallError as e:
            raise StoreError(f"Firestore add to {collection} failed: {e}") from e
        return ref.id

    async def keys(self, collection: str) -> list[str]:
        try:
            return [ref.id async for ref in self._db.collection(collection).list_documents()]
        except gexc.GoogleAPICallError as e:
            raise StoreError(f"Firestore list {collection} failed: {e}") from e

    async def scan(self, collection: str) -> list[dict]:
        try:
            return [d.to_dict() async for d in self._db.collection(collection).stream()]
        except gexc.GoogleAPICallError as e:
            raise StoreError(f"Firestore scan {collection} failed: {e}") from e

    async def query(self, collection: str, query: Query) -> list[dict]:
        q = self._db.collection(collection)
        for flt in query.filters:
            op = "array_contains" if flt.op == ARRAY_CONTAINS else "=="
            q = q.where(filter=firestore.FieldFilter(flt.field, op, flt.value))
        if query.order_by:
            direction = firestore.Query.DESCENDING if query.descending else firestore.Query.ASCENDING
            q = q.order_by(query.order_by, direction=direction)
            if query.start_after is not None:
                q = q.start_after({query.order_by: query.start_after})
        if query.limit is not None:
            if query.limit <= 0:
                return []
            q = q.limit(query.limit)
        try:
            return [d.to_dict() async for d in q.stream()]
        except gexc.GoogleAPICallError as e:
            raise StoreError(f"Firestore query on {collection} failed: {e}") from e

    async def array_append(
        self, collection: str, key: str, field_name: str, value: Any, seed: Optional[dict] = None
    ) -> bool:
        ref = self._ref(collection, key)

        @firestore.async_transactional
        async def _append(transaction) -> bool:
            snapshot = await ref.get(transaction=transaction)
            if not snapshot.exists:
                transaction.set(ref, {**(seed or {}), field_name: [value]})
                return True
            items = list((snapshot.to_dict() or {}).get(field_name, []))
            items.append(value)
            transaction.update(ref, {field_name: items})
            return False

        try:
            return await _append(self._db.transaction())
        except gexc.GoogleAPICallError as e:
            raise StoreError(f"Firestore append to {collection}/{key} failed: {e}") from e

    async def set_add(self, collection: str, key: str, field_name: str, value: Any) -> None:
        try:
            await self._ref(collection, key).update({field_name: firestore.ArrayUnion([value])})
        except gexc.NotFound as e:
            raise NotFoundError(collection, key) from e
        except gexc.GoogleAPICallError as e:
            raise StoreError(f"Firestore tag add on {collection}/{key} failed: {e}") from e

    async def set_remove(self, collection: str, key: str, field_name: str, value: Any) -> None:
        try:
            await self._ref(collection, key).update({field_name: firestore.ArrayRemove([value])})
        except gexc.NotFound as e:
            raise NotFoundError(collection, key) from e
        except gexc.GoogleAPICallError as e:
            raise StoreError(f"Firestore tag remove on {collection}/{key} failed: {e}") from e
