"""Shared fixtures: settings, an in-memory document store and a recording dispatcher."""

from typing import Any, Dict, List, Sequence

import pytest

from feed_push.config import Settings
from feed_push.notifications.errors import DocumentNotFoundError
from feed_push.notifications.schemas import DispatchResult, NotificationIntent
from feed_push.notifications.service import NotificationService
from feed_push.notifications.tokens import build_token_resolver


class FakeDocumentStore:
    """In-memory DocumentStore keyed by collection, then document id."""

    def __init__(self, collections: Dict[str, Dict[str, Dict[str, Any]]] = None):
        self.collections = collections or {}
        self.subcollections: Dict[tuple, Dict[str, Dict[str, Any]]] = {}
        self.calls: List[tuple] = []

    def add(self, collection: str, document_id: str, **fields) -> None:
        self.collections.setdefault(collection, {})[document_id] = fields

    def add_target(self, collection: str, document_id: str, subcollection: str, target_id: str, **fields) -> None:
        self.subcollections.setdefault((collection, document_id, subcollection), {})[target_id] = fields

    def _docs(self, collection: str) -> Dict[str, Dict[str, Any]]:
        return self.collections.get(collection, {})

    async def get_document(self, collection: str, document_id: str) -> Dict[str, Any]:
        self.calls.append(("get_document", collection, document_id))
        document = self._docs(collection).get(document_id)
        if document is None:
            raise DocumentNotFoundError(collection, document_id)
        return {**document, "$id": document_id}

    async def list_documents(self, collection: str, limit: int) -> List[Dict[str, Any]]:
        self.calls.append(("list_documents", collection))
        return [{**doc, "$id": doc_id} for doc_id, doc in self._docs(collection).items()][:limit]

    async def query_in(self, collection: str, field: str, values: Sequence[str], limit: int) -> List[Dict[str, Any]]:
        self.calls.append(("query_in", collection, field))
        return [{**doc, "$id": doc_id} for doc_id, doc in self._docs(collection).items()
                if doc.get(field) in values][:limit]

    async def get_documents(self, collection: str, document_ids: Sequence[str], limit: int) -> List[Dict[str, Any]]:
        self.calls.append(("get_documents", collection))
        docs = self._docs(collection)
        return [{**docs[doc_id], "$id": doc_id} for doc_id in list(document_ids)[:limit] if doc_id in docs]

    async def list_subcollection(self, collection: str, document_id: str, subcollection: str,
                                 limit: int) -> List[Dict[str, Any]]:
        self.calls.append(("list_subcollection", collection, document_id))
        docs = self.subcollections.get((collection, document_id, subcollection), {})
        return [{**doc, "$id": doc_id} for doc_id, doc in docs.items()][:limit]


class RecordingDispatcher:
    def __init__(self, message_id: str = "ticket-1"):
        self.message_id = message_id
        self.calls: List[tuple] = []

    async def send(self, tokens: Sequence[str], intent: NotificationIntent) -> DispatchResult:
        self.calls.append((list(tokens), intent))
        return DispatchResult(sent_to=len(tokens), message_id=self.message_id)


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        firebase_project_id="demo-project",
        firebase_secret="{}",
        expo_access_token="expo-token",
    )


@pytest.fixture
def store():
    return FakeDocumentStore()


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def service(settings, store, dispatcher):
    return NotificationService(
        settings=settings,
        store=store,
        resolver=build_token_resolver(settings, store),
        dispatcher=dispatcher,
    )
