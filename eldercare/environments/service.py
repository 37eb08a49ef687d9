"""Environment bundle ingestion.

An ingestion moves through

    RECEIVED -> VALIDATED -> BLOB_WRITTEN -> URL_ISSUED -> RECORD_PERSISTED -> COMPLETED

or stops in FAILED. The blob is always written before its metadata record, so
a record never points at a missing blob. The reverse is not guaranteed: a
failure after BLOB_WRITTEN leaves an orphan blob, which is logged with its key
and reported on the raised IngestionError for out-of-band reconciliation.
"""
from __future__ import annotations

import asyncio
import functools
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from eldercare.config import runtime_config
from eldercare.environments.keys import ENVIRONMENTS_PREFIX, generate_storage_key
from eldercare.environments.models import ENVIRONMENTS_COLLECTION, EnvironmentRecord, UploadDescriptor
from eldercare.storage.blob_store import BlobStore, Expiry
from eldercare.storage.document_store import DocumentStore
from eldercare.storage.state import get_blob_store, get_document_store

logger = logging.getLogger(__name__)

MISSING_FILE_MESSAGE = "No s'ha rebut cap fitxer"


class IngestionState(str, Enum):
    RECEIVED = "received"
    VALIDATED = "validated"
    BLOB_WRITTEN = "blob_written"
    URL_ISSUED = "url_issued"
    RECORD_PERSISTED = "record_persisted"
    COMPLETED = "completed"
    FAILED = "failed"


class FailureReason(str, Enum):
    MISSING_FILE = "MissingFile"
    BLOB_WRITE_ERROR = "BlobWriteError"
    URL_ISSUE_ERROR = "URLIssueError"
    RECORD_PERSIST_ERROR = "RecordPersistError"
    TIMEOUT = "Timeout"

    @property
    def code(self) -> str:
        return {
            FailureReason.MISSING_FILE: "missing_file",
            FailureReason.BLOB_WRITE_ERROR: "blob_write_error",
            FailureReason.URL_ISSUE_ERROR: "url_issue_error",
            FailureReason.RECORD_PERSIST_ERROR: "record_persist_error",
            FailureReason.TIMEOUT: "timeout",
        }[self]


class IngestionError(Exception):
    """Terminal failure of one ingestion.

    ``state`` is the last state reached before failing. ``orphan`` is True when
    a blob may exist at ``storage_key`` with no record pointing at it.
    """

    def __init__(
        self,
        reason: FailureReason,
        message: str,
        *,
        state: IngestionState,
        storage_key: Optional[str] = None,
        orphan: bool = False,
    ) -> None:
        super().__init__(message)
        self.reason = reason
        self.message = message
        self.state = state
        self.storage_key = storage_key
        self.orphan = orphan

    def to_details(self) -> Dict[str, Any]:
        return {
            "reason": self.reason.value,
            "state": self.state.value,
            "storage_key": self.storage_key,
            "orphan": self.orphan,
        }


@dataclass
class IngestionRun:
    descriptor: UploadDescriptor
    state: IngestionState = IngestionState.RECEIVED
    storage_key: Optional[str] = None

    def advance(self, state: IngestionState) -> None:
        logger.debug("ingestion %s: %s -> %s", self.storage_key or "-", self.state.value, state.value)
        self.state = state


@dataclass
class IngestionSettings:
    url_expiry: Expiry
    timeout_seconds: Optional[float] = runtime_config.DEFAULT_INGEST_TIMEOUT_SECONDS
    rollback_orphans: bool = False
    key_prefix: str = ENVIRONMENTS_PREFIX
    collection: str = ENVIRONMENTS_COLLECTION

    @classmethod
    def from_runtime_config(cls) -> "IngestionSettings":
        return cls(
            url_expiry=runtime_config.get_url_expiry(),
            timeout_seconds=runtime_config.get_ingest_timeout_seconds(),
            rollback_orphans=runtime_config.rollback_orphans_enabled(),
        )


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class IngestionPipeline:
    def __init__(
        self,
        blob_store: BlobStore,
        document_store: DocumentStore,
        settings: Optional[IngestionSettings] = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.blob_store = blob_store
        self.document_store = document_store
        self.settings = settings or IngestionSettings.from_runtime_config()
        self._clock = clock

    async def ingest(self, descriptor: UploadDescriptor) -> EnvironmentRecord:
        """Store the payload, then its metadata record; raise IngestionError on any failure."""
        run = IngestionRun(descriptor=descriptor)
        timeout = self.settings.timeout_seconds
        try:
            if timeout:
                return await asyncio.wait_for(self._run(run), timeout=timeout)
            return await self._run(run)
        except asyncio.TimeoutError:
            # a step may still be running in its worker thread
            reached = run.state
            orphan = run.storage_key is not None
            run.advance(IngestionState.FAILED)
            logger.error(
                "Ingestion of %s timed out after %ss in state %s (storage key %s)",
                descriptor.filename,
                timeout,
                reached.value,
                run.storage_key,
            )
            raise IngestionError(
                FailureReason.TIMEOUT,
                f"Ingestion exceeded {timeout}s deadline",
                state=reached,
                storage_key=run.storage_key,
                orphan=orphan,
            ) from None

    async def _run(self, run: IngestionRun) -> EnvironmentRecord:
        descriptor = run.descriptor
        if not descriptor.payload:
            raise self._fail(run, FailureReason.MISSING_FILE, MISSING_FILE_MESSAGE)
        name = descriptor.resolved_name()
        description = descriptor.resolved_description()
        run.advance(IngestionState.VALIDATED)

        now = self._clock()
        key = generate_storage_key(
            descriptor.filename,
            now_ms=int(now.timestamp() * 1000),
            prefix=self.settings.key_prefix,
        )
        run.storage_key = key

        try:
            await self._call(self.blob_store.save, key, descriptor.payload, descriptor.content_type)
        except Exception as exc:
            raise self._fail(run, FailureReason.BLOB_WRITE_ERROR, f"Error pujant el fitxer: {exc}") from exc
        run.advance(IngestionState.BLOB_WRITTEN)

        try:
            url = await self._call(self.blob_store.issue_retrieval_url, key, self.settings.url_expiry)
        except Exception as exc:
            orphan = await self._release_orphan(run)
            raise self._fail(
                run, FailureReason.URL_ISSUE_ERROR, f"Error generant l'URL de descàrrega: {exc}", orphan=orphan
            ) from exc
        run.advance(IngestionState.URL_ISSUED)

        record = EnvironmentRecord(
            name=name,
            description=description,
            storage_path=key,
            download_url=url,
            created_at=self._clock(),
        )
        try:
            doc_id = await self._call(self.document_store.insert, self.settings.collection, record.to_document())
        except Exception as exc:
            orphan = await self._release_orphan(run)
            raise self._fail(
                run, FailureReason.RECORD_PERSIST_ERROR, f"Error desant l'entorn: {exc}", orphan=orphan
            ) from exc
        run.advance(IngestionState.RECORD_PERSISTED)

        record = record.model_copy(update={"id": doc_id})
        run.advance(IngestionState.COMPLETED)
        logger.info("Ingested environment %s at %s (%d bytes)", doc_id, key, len(descriptor.payload))
        return record

    async def _call(self, fn: Callable[..., Any], *args: Any) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(fn, *args))

    async def _release_orphan(self, run: IngestionRun) -> bool:
        """Delete the written blob when rollback is enabled; return True if it is still orphaned."""
        key = run.storage_key
        if not self.settings.rollback_orphans or key is None:
            logger.warning("Orphan blob left at %s (no metadata record)", key)
            return True
        try:
            await self._call(self.blob_store.delete, key)
        except Exception as exc:
            logger.warning("Rollback of orphan blob %s failed: %s", key, exc)
            return True
        logger.info("Rolled back blob %s after downstream failure", key)
        return False

    def _fail(
        self,
        run: IngestionRun,
        reason: FailureReason,
        message: str,
        *,
        orphan: bool = False,
    ) -> IngestionError:
        reached = run.state
        run.advance(IngestionState.FAILED)
        if reason is FailureReason.MISSING_FILE:
            logger.info("Rejected upload %r: %s", run.descriptor.filename, message)
        else:
            logger.error("Ingestion failed in state %s (%s): %s", reached.value, reason.value, message)
        return IngestionError(reason, message, state=reached, storage_key=run.storage_key, orphan=orphan)


def list_environments(
    document_store: DocumentStore,
    collection: str = ENVIRONMENTS_COLLECTION,
) -> List[EnvironmentRecord]:
    return [EnvironmentRecord.from_document(doc_id, data) for doc_id, data in document_store.list_all(collection)]


# Module-level default pipeline, built from the shared stores on first use.
_default_pipeline: Optional[IngestionPipeline] = None


def get_ingestion_pipeline() -> IngestionPipeline:
    global _default_pipeline
    if _default_pipeline is None:
        _default_pipeline = IngestionPipeline(get_blob_store(), get_document_store())
    return _default_pipeline


def set_ingestion_pipeline(pipeline: Optional[IngestionPipeline]) -> None:
    """Override the default pipeline (useful for tests)."""
    global _default_pipeline
    _default_pipeline = pipeline
