from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field, field_validator

USERS_COLLECTION = "users"


def _now() -> datetime:
    return datetime.now(timezone.utc)


class UserCreate(BaseModel):
    name: str
    email: str

    @field_validator("name")
    @classmethod
    def _name_present(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name is required")
        return v

    @field_validator("email")
    @classmethod
    def _email_shape(cls, v: str) -> str:
        v = v.strip()
        local, _, domain = v.partition("@")
        if not local or not domain:
            raise ValueError("email must look like user@domain")
        return v


class UserRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = ""
    name: str
    email: str
    created_at: datetime = Field(default_factory=_now, alias="createdAt")

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude={"id"})

    @classmethod
    def from_document(cls, doc_id: str, data: Dict[str, Any]) -> "UserRecord":
        return cls(
            id=doc_id,
            name=data.get("name", ""),
            email=data.get("email", ""),
            created_at=data.get("createdAt") or _now(),
        )
