from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest import mock

import pytest

from eldercare.storage.document_store import (
    FirestoreDocumentStore,
    InMemoryDocumentStore,
    StoreFailure,
    build_document_store,
)

T0 = datetime(2025, 1, 1, tzinfo=timezone.utc)


def _snap(doc_id, data):
    return SimpleNamespace(id=doc_id, to_dict=lambda: dict(data))


def test_firestore_insert_returns_store_assigned_id():
    client = mock.MagicMock()
    client.collection.return_value.add.return_value = (None, SimpleNamespace(id="abc123"))
    store = FirestoreDocumentStore(client=client)

    doc_id = store.insert("entorns", {"name": "Garden"})

    assert doc_id == "abc123"
    client.collection.assert_called_with("entorns")
    client.collection.return_value.add.assert_called_once_with({"name": "Garden"})


def test_firestore_insert_failure_raises_store_failure():
    client = mock.MagicMock()
    client.collection.return_value.add.side_effect = RuntimeError("deadline exceeded")
    store = FirestoreDocumentStore(client=client)

    with pytest.raises(StoreFailure) as excinfo:
        store.insert("entorns", {"name": "Garden"})
    assert excinfo.value.collection == "entorns"


def test_firestore_list_all_orders_by_created_at():
    client = mock.MagicMock()
    client.collection.return_value.stream.return_value = [
        _snap("late", {"name": "b", "createdAt": T0 + timedelta(seconds=5)}),
        _snap("early", {"name": "a", "createdAt": T0}),
        _snap("undated", {"name": "c"}),
    ]
    store = FirestoreDocumentStore(client=client)

    rows = store.list_all("users")

    assert [doc_id for doc_id, _ in rows] == ["early", "late", "undated"]
    assert rows[0][1]["name"] == "a"


def test_firestore_list_failure_raises_store_failure():
    client = mock.MagicMock()
    client.collection.return_value.stream.side_effect = RuntimeError("unavailable")
    with pytest.raises(StoreFailure):
        FirestoreDocumentStore(client=client).list_all("users")


def test_memory_store_insert_and_list():
    store = InMemoryDocumentStore()
    first = store.insert("users", {"name": "John Doe", "createdAt": T0})
    second = store.insert("users", {"name": "Jane Doe", "createdAt": T0 + timedelta(seconds=1)})

    assert first != second
    rows = store.list_all("users")
    assert [doc_id for doc_id, _ in rows] == [first, second]
    assert store.list_all("entorns") == []


def test_memory_store_returns_copies():
    store = InMemoryDocumentStore()
    record = {"name": "Garden", "tags": ["a"]}
    store.insert("entorns", record)
    record["tags"].append("mutated")

    (_, stored), = store.list_all("entorns")
    assert stored["tags"] == ["a"]


def test_build_document_store_backends():
    assert isinstance(build_document_store("memory"), InMemoryDocumentStore)
    with pytest.raises(RuntimeError):
        build_document_store("mongo")
