from __future__ import annotations

from typing import List

from fastapi import APIRouter

from eldercare.common.error_envelope import error_response
from eldercare.storage.document_store import StoreFailure
from eldercare.users.models import UserCreate, UserRecord
from eldercare.users.service import get_user_service

router = APIRouter(prefix="/users", tags=["users"])


@router.post("", status_code=201, response_model=UserRecord)
def create_user(payload: UserCreate):
    try:
        return get_user_service().create_user(payload)
    except StoreFailure as exc:
        error_response(code="users.create_failed", message=str(exc), status_code=500, resource_kind="user")


@router.get("", response_model=List[UserRecord])
def list_users():
    try:
        return get_user_service().list_users()
    except StoreFailure as exc:
        error_response(code="users.list_failed", message=str(exc), status_code=500, resource_kind="user")
