"""Firestore-backed document store (google-cloud-firestore AsyncClient obtained via firebase_admin)."""
import logging
from typing import Any, Dict, List, Optional

from google.api_core import exceptions as google_exceptions
from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter

from app.core.errors import DocumentExists, StorageUnavailable, VersionConflict
from app.store.base import VERSION_FIELD, DocumentStore, Filter

logger = logging.getLogger(__name__)


@firestore.async_transactional
async def _conditional_merge(transaction, ref, data: Dict[str, Any], expected_version: int) -> None:
    snapshot = await ref.get(transaction=transaction)
    actual = (snapshot.to_dict() or {}).get(VERSION_FIELD) if snapshot.exists else None
    if actual != expected_version:
        raise VersionConflict(ref.id, expected_version, actual)
    transaction.set(ref, data, merge=True)


class FirestoreDocumentStore(DocumentStore):
    """DocumentStore over a Firestore AsyncClient. Google API errors surface as StorageUnavailable.
    Why available: Production backend; the client is created by the entry point (see app.core.firebase) and passed in."""

    backend = "firestore"

    def __init__(self, client: firestore.AsyncClient):
        self._client = client

    def _ref(self, collection: str, doc_id: str):
        return self._client.collection(collection).document(doc_id)

    def new_id(self, collection: str) -> str:
        # auto-ids are generated client side
        return self._client.collection(collection).document().id

    async def create(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        try:
            await self._ref(collection, doc_id).create(data)
        except google_exceptions.Conflict as e:
            raise DocumentExists(collection, doc_id) from e
        except google_exceptions.GoogleAPIError as e:
            raise StorageUnavailable(f"create {collection}/{doc_id} failed: {e}") from e

    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        try:
            snapshot = await self._ref(collection, doc_id).get()
        except google_exceptions.GoogleAPIError as e:
            raise StorageUnavailable(f"read {collection}/{doc_id} failed: {e}") from e
        if not snapshot.exists:
            return None
        return snapshot.to_dict() or {}

    async def merge(
        self,
        collection: str,
        doc_id: str,
        data: Dict[str, Any],
        *,
        expected_version: Optional[int] = None,
    ) -> None:
        ref = self._ref(collection, doc_id)
        try:
            if expected_version is None:
                await ref.set(data, merge=True)
                return
            await _conditional_merge(self._client.transaction(), ref, data, expected_version)
        except google_exceptions.GoogleAPIError as e:
            raise StorageUnavailable(f"write {collection}/{doc_id} failed: {e}") from e

    async def delete(self, collection: str, doc_id: str) -> None:
        try:
            await self._ref(collection, doc_id).delete()
        except google_exceptions.GoogleAPIError as e:
            raise StorageUnavailable(f"delete {collection}/{doc_id} failed: {e}") from e

    async def query(
        self,
        collection: str,
        *,
        filters: Optional[List[Filter]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        q = self._client.collection(collection)
        for field, value in filters or []:
            q = q.where(filter=FieldFilter(field, "==", value))
        if order_by:
            direction = firestore.Query.DESCENDING if descending else firestore.Query.ASCENDING
            q = q.order_by(order_by, direction=direction)
        if limit is not None:
            q = q.limit(limit)

        rows: List[Dict[str, Any]] = []
        try:
            async for snapshot in q.stream():
                rows.append({**(snapshot.to_dict() or {}), "id": snapshot.id})
        except google_exceptions.GoogleAPIError as e:
            raise StorageUnavailable(f"query on {collection} failed: {e}") from e
        logger.debug("query %s returned %d documents", collection, len(rows))
        return rows
