"""Process-wide store handles shared by routes/services.

Stores are built lazily from runtime config on first use; tests swap them
with ``set_blob_store``/``set_document_store``.
"""
from __future__ import annotations

from typing import Optional

from eldercare.storage.blob_store import BlobStore, build_blob_store
from eldercare.storage.document_store import DocumentStore, build_document_store

_blob_store: Optional[BlobStore] = None
_document_store: Optional[DocumentStore] = None


def get_blob_store() -> BlobStore:
    global _blob_store
    if _blob_store is None:
        _blob_store = build_blob_store()
    return _blob_store


def set_blob_store(store: Optional[BlobStore]) -> None:
    global _blob_store
    _blob_store = store


def get_document_store() -> DocumentStore:
    global _document_store
    if _document_store is None:
        _document_store = build_document_store()
    return _document_store


def set_document_store(store: Optional[DocumentStore]) -> None:
    global _document_store
    _document_store = store
