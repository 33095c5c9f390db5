"""In-memory document store (per process). Used by tests and local development; in production use Firestore."""
import copy
import threading
import uuid
from typing import Any, Dict, List, Optional

from app.core.errors import DocumentExists, ValidationError, VersionConflict
from app.store.base import VERSION_FIELD, DocumentStore, Filter


class InMemoryDocumentStore(DocumentStore):
    """Dict-of-dicts store guarded by a lock so conditional merges are atomic across threads.
    Why available: Lets the tracker and cache run without Firestore credentials, with the same merge and version semantics."""

    backend = "memory"

    def __init__(self):
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._lock = threading.Lock()

    def _docs(self, collection: str) -> Dict[str, Dict[str, Any]]:
        if not collection:
            raise ValidationError("collection name is required")
        return self._collections.setdefault(collection, {})

    def new_id(self, collection: str) -> str:
        with self._lock:
            docs = self._docs(collection)
            doc_id = uuid.uuid4().hex
            while doc_id in docs:
                doc_id = uuid.uuid4().hex
            return doc_id

    async def create(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        if not doc_id:
            raise ValidationError("document id is required")
        with self._lock:
            docs = self._docs(collection)
            if doc_id in docs:
                raise DocumentExists(collection, doc_id)
            docs[doc_id] = copy.deepcopy(data)

    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            doc = self._docs(collection).get(doc_id)
            return copy.deepcopy(doc) if doc is not None else None

    async def merge(
        self,
        collection: str,
        doc_id: str,
        data: Dict[str, Any],
        *,
        expected_version: Optional[int] = None,
    ) -> None:
        if not doc_id:
            raise ValidationError("document id is required")
        with self._lock:
            docs = self._docs(collection)
            current = docs.get(doc_id)
            if expected_version is not None:
                actual = current.get(VERSION_FIELD) if current is not None else None
                if actual != expected_version:
                    raise VersionConflict(doc_id, expected_version, actual)
            merged = dict(current or {})
            merged.update(copy.deepcopy(data))
            docs[doc_id] = merged

    async def delete(self, collection: str, doc_id: str) -> None:
        with self._lock:
            self._docs(collection).pop(doc_id, None)

    async def query(
        self,
        collection: str,
        *,
        filters: Optional[List[Filter]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        with self._lock:
            rows = [
                {**copy.deepcopy(doc), "id": doc_id}
                for doc_id, doc in self._docs(collection).items()
                if all(doc.get(field) == value for field, value in (filters or []))
            ]
        if order_by:
            # documents missing the field are left out, as Firestore does
            rows = [r for r in rows if r.get(order_by) is not None]
            rows.sort(key=lambda r: r[order_by], reverse=descending)
        if limit is not None:
            rows = rows[: max(0, limit)]
        return rows
