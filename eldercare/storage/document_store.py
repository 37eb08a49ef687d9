"""Document store adapters: Firestore and in-memory.

Records are plain dicts keyed by a store-assigned identifier inside a named
collection. Only insert and full-collection listing are exposed.
"""
from __future__ import annotations

import copy
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol, Tuple
from uuid import uuid4

from eldercare.config import runtime_config

logger = logging.getLogger(__name__)

Document = Dict[str, Any]


class StoreFailure(RuntimeError):
    """Raised when the document store cannot complete an operation."""

    def __init__(self, message: str, collection: Optional[str] = None) -> None:
        super().__init__(message)
        self.collection = collection


class DocumentStore(Protocol):
    """Storage abstraction for schema-less records."""

    def insert(self, collection: str, record: Document) -> str: ...
    def list_all(self, collection: str) -> List[Tuple[str, Document]]: ...


def _order_key(item: Tuple[int, Tuple[str, Document]]):
    position, (_, data) = item
    created = data.get("createdAt")
    if isinstance(created, datetime):
        return (0, created.timestamp(), position)
    return (1, 0.0, position)


def sort_by_created(rows: List[Tuple[str, Document]]) -> List[Tuple[str, Document]]:
    """Order rows by createdAt where present, otherwise keep arrival order."""
    return [row for _, row in sorted(enumerate(rows), key=_order_key)]


class FirestoreDocumentStore:
    """Firestore-backed document store (top-level collections)."""

    def __init__(self, project: Optional[str] = None, client: Optional[object] = None) -> None:
        if client is None:
            try:
                from google.cloud import firestore
            except Exception as exc:
                raise RuntimeError("google-cloud-firestore is required for Firestore document store") from exc
            project = project or runtime_config.get_firestore_project()
            if not project:
                raise RuntimeError("GCP project is required for Firestore document store")
            client = firestore.Client(project=project)
        self._client = client

    def insert(self, collection: str, record: Document) -> str:
        try:
            _, doc_ref = self._client.collection(collection).add(dict(record))
        except Exception as exc:
            logger.error("Failed to insert into %s: %s", collection, exc)
            raise StoreFailure(f"Failed to insert document: {exc}", collection=collection) from exc
        return doc_ref.id

    def list_all(self, collection: str) -> List[Tuple[str, Document]]:
        try:
            rows = [(snap.id, snap.to_dict() or {}) for snap in self._client.collection(collection).stream()]
        except Exception as exc:
            logger.error("Failed to list %s: %s", collection, exc)
            raise StoreFailure(f"Failed to list documents: {exc}", collection=collection) from exc
        return sort_by_created(rows)


class InMemoryDocumentStore:
    """In-memory implementation for dev/tests."""

    def __init__(self) -> None:
        self.collections: Dict[str, Dict[str, Document]] = {}

    def insert(self, collection: str, record: Document) -> str:
        doc_id = uuid4().hex
        self.collections.setdefault(collection, {})[doc_id] = copy.deepcopy(record)
        return doc_id

    def list_all(self, collection: str) -> List[Tuple[str, Document]]:
        rows = [(doc_id, copy.deepcopy(data)) for doc_id, data in self.collections.get(collection, {}).items()]
        return sort_by_created(rows)


def build_document_store(backend: Optional[str] = None) -> DocumentStore:
    backend = (backend or runtime_config.get_document_backend()).lower()
    if backend == "firestore":
        return FirestoreDocumentStore()
    if backend == "memory":
        return InMemoryDocumentStore()
    raise RuntimeError(f"DOCUMENT_BACKEND must be 'firestore' or 'memory'. Got: '{backend}'")
