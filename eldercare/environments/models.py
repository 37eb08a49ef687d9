from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

ENVIRONMENTS_COLLECTION = "entorns"
DEFAULT_ENVIRONMENT_NAME = "Entorn sense nom"
DEFAULT_ENVIRONMENT_DESCRIPTION = ""


def _now() -> datetime:
    return datetime.now(timezone.utc)


class UploadDescriptor(BaseModel):
    """A single uploaded file plus its optional display metadata."""

    filename: str = ""
    content_type: Optional[str] = None
    payload: bytes = b""
    name: Optional[str] = None
    description: Optional[str] = None

    def resolved_name(self) -> str:
        name = (self.name or "").strip()
        return name or DEFAULT_ENVIRONMENT_NAME

    def resolved_description(self) -> str:
        return self.description if self.description is not None else DEFAULT_ENVIRONMENT_DESCRIPTION


class EnvironmentRecord(BaseModel):
    """Persisted metadata for an ingested environment bundle.

    Serialised with camelCase keys, which is also the stored document shape.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str = ""
    name: str
    description: str = DEFAULT_ENVIRONMENT_DESCRIPTION
    storage_path: str = Field(alias="storagePath")
    download_url: str = Field(alias="downloadURL")
    created_at: datetime = Field(default_factory=_now, alias="createdAt")

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude={"id"})

    @classmethod
    def from_document(cls, doc_id: str, data: Dict[str, Any]) -> "EnvironmentRecord":
        return cls(
            id=doc_id,
            name=data.get("name") or DEFAULT_ENVIRONMENT_NAME,
            description=data.get("description") or DEFAULT_ENVIRONMENT_DESCRIPTION,
            storage_path=data.get("storagePath", ""),
            download_url=data.get("downloadURL", ""),
            created_at=data.get("createdAt") or _now(),
        )
