"""Document store contract used by the job tracker and the response cache.

Documents are addressed by (collection, doc_id). Implementations must provide
read-your-writes consistency for a single document and atomic conditional
merges when expected_version is given.
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple

VERSION_FIELD = "version"

Filter = Tuple[str, Any]  # (field, value), equality only


class DocumentStore(ABC):
    """Async document store handle. Constructed by the process entry point and injected into components."""

    backend: str = "abstract"

    @abstractmethod
    def new_id(self, collection: str) -> str:
        """Return a fresh, unused document id for collection."""

    @abstractmethod
    async def create(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        """Write a new document; raise DocumentExists if doc_id is already taken."""

    @abstractmethod
    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        """Return the document fields, or None when it does not exist."""

    @abstractmethod
    async def merge(
        self,
        collection: str,
        doc_id: str,
        data: Dict[str, Any],
        *,
        expected_version: Optional[int] = None,
    ) -> None:
        """Field-level upsert. With expected_version, raise VersionConflict unless the stored version matches."""

    @abstractmethod
    async def delete(self, collection: str, doc_id: str) -> None:
        ...

    @abstractmethod
    async def query(
        self,
        collection: str,
        *,
        filters: Optional[List[Filter]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Return documents matching all equality filters; each dict carries its id under "id"."""

    async def close(self) -> None:
        return None
