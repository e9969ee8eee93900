from unittest.mock import AsyncMock, MagicMock

import pytest

from feed_push.notifications.errors import DocumentNotFoundError
from feed_push.store import FirestoreDocumentStore


def _snapshot(doc_id, data, exists=True):
    snapshot = MagicMock()
    snapshot.id = doc_id
    snapshot.exists = exists
    snapshot.to_dict.return_value = data
    return snapshot


class _AsyncStream:
    def __init__(self, snapshots):
        self._snapshots = list(snapshots)

    def __aiter__(self):
        return self

    async def __anext__(self):
        if not self._snapshots:
            raise StopAsyncIteration
        return self._snapshots.pop(0)


@pytest.mark.asyncio
async def test_get_document_adds_id():
    mock_db = MagicMock()
    doc_ref = mock_db.collection.return_value.document.return_value
    doc_ref.get = AsyncMock(return_value=_snapshot("p1", {"authorId": "u1"}))

    document = await FirestoreDocumentStore(mock_db).get_document("posts", "p1")

    assert document == {"authorId": "u1", "$id": "p1"}
    mock_db.collection.assert_called_with("posts")
    mock_db.collection.return_value.document.assert_called_with("p1")


@pytest.mark.asyncio
async def test_get_document_missing():
    mock_db = MagicMock()
    mock_db.collection.return_value.document.return_value.get = AsyncMock(
        return_value=_snapshot("p1", None, exists=False))

    with pytest.raises(DocumentNotFoundError) as exc_info:
        await FirestoreDocumentStore(mock_db).get_document("posts", "p1")
    assert exc_info.value.status_code == 500

    with pytest.raises(DocumentNotFoundError):
        await FirestoreDocumentStore(mock_db).get_document("posts", "")


@pytest.mark.asyncio
async def test_query_in_chunks_values():
    mock_db = MagicMock()
    query = mock_db.collection.return_value.where.return_value.limit.return_value
    query.stream.side_effect = [
        _AsyncStream([_snapshot("a", {"userId": "u0", "pushToken": "t0"})]),
        _AsyncStream([_snapshot("b", {"userId": "u30", "pushToken": "t30"})]),
    ]
    user_ids = [f"u{i}" for i in range(35)]

    documents = await FirestoreDocumentStore(mock_db).query_in("push_tokens", "userId", user_ids, 100)

    assert [doc["$id"] for doc in documents] == ["a", "b"]
    assert mock_db.collection.return_value.where.call_count == 2
    first_filter = mock_db.collection.return_value.where.call_args_list[0].kwargs["filter"]
    assert first_filter.value == user_ids[:30]


@pytest.mark.asyncio
async def test_get_documents_skips_missing():
    mock_db = MagicMock()
    mock_db.get_all.return_value = _AsyncStream([
        _snapshot("u1", {"pushToken": "t1"}),
        _snapshot("u2", None, exists=False),
    ])

    documents = await FirestoreDocumentStore(mock_db).get_documents("users", ["u1", "u2"], 100)

    assert documents == [{"pushToken": "t1", "$id": "u1"}]
    assert await FirestoreDocumentStore(mock_db).get_documents("users", [], 100) == []


@pytest.mark.asyncio
async def test_list_subcollection():
    mock_db = MagicMock()
    targets = mock_db.collection.return_value.document.return_value.collection.return_value
    targets.limit.return_value.stream.return_value = _AsyncStream([
        _snapshot("t1", {"providerType": "push", "identifier": "ExponentPushToken[a]"}),
    ])

    documents = await FirestoreDocumentStore(mock_db).list_subcollection("users", "u1", "targets", 100)

    assert documents == [{"providerType": "push", "identifier": "ExponentPushToken[a]", "$id": "t1"}]
    mock_db.collection.return_value.document.return_value.collection.assert_called_with("targets")
