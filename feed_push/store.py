import logging
from typing import Any, Dict, List, Protocol, Sequence

from firebase_admin.firestore import FieldFilter
from google.cloud.firestore import AsyncClient

from .notifications.errors import DocumentNotFoundError

logger = logging.getLogger(__name__)

# Firestore accepts at most 30 values in an 'in' filter
IN_FILTER_LIMIT = 30


class DocumentStore(Protocol):
    """Read access to the records a notification is built from.

    Documents are returned as dictionaries with their id under ``$id``.
    """

    async def get_document(self, collection: str, document_id: str) -> Dict[str, Any]:
        ...

    async def list_documents(self, collection: str, limit: int) -> List[Dict[str, Any]]:
        ...

    async def query_in(self, collection: str, field: str, values: Sequence[str], limit: int) -> List[Dict[str, Any]]:
        ...

    async def get_documents(self, collection: str, document_ids: Sequence[str], limit: int) -> List[Dict[str, Any]]:
        ...

    async def list_subcollection(self, collection: str, document_id: str, subcollection: str,
                                 limit: int) -> List[Dict[str, Any]]:
        ...


def _with_id(snapshot) -> Dict[str, Any]:
    data = snapshot.to_dict() or {}
    data["$id"] = snapshot.id
    return data


class FirestoreDocumentStore:
    """DocumentStore backed by the async Firestore client."""

    def __init__(self, firestore_db: AsyncClient):
        self.firestore_db = firestore_db

    async def get_document(self, collection: str, document_id: str) -> Dict[str, Any]:
        if not document_id:
            raise DocumentNotFoundError(collection, "<empty id>")
        snapshot = await self.firestore_db.collection(collection).document(document_id).get()
        if not snapshot.exists:
            raise DocumentNotFoundError(collection, document_id)
        return _with_id(snapshot)

    async def list_documents(self, collection: str, limit: int) -> List[Dict[str, Any]]:
        query = self.firestore_db.collection(collection).limit(limit)
        return [_with_id(snapshot) async for snapshot in query.stream()]

    async def query_in(self, collection: str, field: str, values: Sequence[str], limit: int) -> List[Dict[str, Any]]:
        """Documents whose field matches any of values, capped at limit across chunks."""
        documents = []
        values = list(values)
        for start in range(0, len(values), IN_FILTER_LIMIT):
            remaining = limit - len(documents)
            if remaining <= 0:
                break
            chunk = values[start:start + IN_FILTER_LIMIT]
            query = (self.firestore_db.collection(collection)
                     .where(filter=FieldFilter(field, "in", chunk))
                     .limit(remaining))
            documents.extend([_with_id(snapshot) async for snapshot in query.stream()])
        return documents

    async def get_documents(self, collection: str, document_ids: Sequence[str], limit: int) -> List[Dict[str, Any]]:
        """Documents by id; ids that do not exist are skipped."""
        refs = [self.firestore_db.collection(collection).document(document_id)
                for document_id in list(document_ids)[:limit]]
        if not refs:
            return []
        return [_with_id(snapshot) async for snapshot in self.firestore_db.get_all(refs) if snapshot.exists]

    async def list_subcollection(self, collection: str, document_id: str, subcollection: str,
                                 limit: int) -> List[Dict[str, Any]]:
        query = (self.firestore_db.collection(collection)
                 .document(document_id)
                 .collection(subcollection)
                 .limit(limit))
        return [_with_id(snapshot) async for snapshot in query.stream()]
