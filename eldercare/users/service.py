from __future__ import annotations

import logging
from typing import List, Optional

from eldercare.storage.document_store import DocumentStore
from eldercare.storage.state import get_document_store
from eldercare.users.models import USERS_COLLECTION, UserCreate, UserRecord

logger = logging.getLogger(__name__)


class UserService:
    def __init__(self, document_store: Optional[DocumentStore] = None) -> None:
        self.document_store = document_store or get_document_store()

    def create_user(self, req: UserCreate) -> UserRecord:
        user = UserRecord(name=req.name, email=req.email)
        doc_id = self.document_store.insert(USERS_COLLECTION, user.to_document())
        logger.info("Created user %s", doc_id)
        return user.model_copy(update={"id": doc_id})

    def list_users(self) -> List[UserRecord]:
        return [UserRecord.from_document(doc_id, data) for doc_id, data in self.document_store.list_all(USERS_COLLECTION)]


_default_service: Optional[UserService] = None


def get_user_service() -> UserService:
    global _default_service
    if _default_service is None:
        _default_service = UserService()
    return _default_service


def set_user_service(service: Optional[UserService]) -> None:
    """Override the default service (useful for tests)."""
    global _default_service
    _default_service = service
