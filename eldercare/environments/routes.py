from __future__ import annotations

import logging
from typing import List

from fastapi import APIRouter, File, Form, UploadFile

from eldercare.common.error_envelope import error_response
from eldercare.environments.models import EnvironmentRecord, UploadDescriptor
from eldercare.environments.service import (
    MISSING_FILE_MESSAGE,
    FailureReason,
    IngestionError,
    get_ingestion_pipeline,
    list_environments,
)
from eldercare.storage.document_store import StoreFailure
from eldercare.storage.state import get_document_store

logger = logging.getLogger(__name__)

router = APIRouter(tags=["environments"])


@router.post("/upload_entorn", status_code=201, response_model=EnvironmentRecord)
async def upload_environment(
    file: UploadFile | None = File(None),
    name: str | None = Form(None),
    description: str | None = Form(None),
):
    """Upload an environment bundle and record its metadata."""
    if file is None:
        error_response(
            code="environments.missing_file",
            message=MISSING_FILE_MESSAGE,
            status_code=400,
            resource_kind="environment",
        )
    descriptor = UploadDescriptor(
        filename=file.filename or "",
        content_type=file.content_type,
        payload=await file.read(),
        name=name,
        description=description,
    )
    try:
        return await get_ingestion_pipeline().ingest(descriptor)
    except IngestionError as exc:
        status_code = 400 if exc.reason is FailureReason.MISSING_FILE else 500
        error_response(
            code=f"environments.{exc.reason.code}",
            message=exc.message,
            status_code=status_code,
            resource_kind="environment",
            details=exc.to_details(),
        )


@router.get("/entorns", response_model=List[EnvironmentRecord])
def get_environments():
    try:
        return list_environments(get_document_store())
    except StoreFailure as exc:
        error_response(
            code="environments.list_failed",
            message=str(exc),
            status_code=500,
            resource_kind="environment",
        )
