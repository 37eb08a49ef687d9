"""Runtime configuration helpers for the ElderCare API."""
from __future__ import annotations

import os
from datetime import datetime, timezone
from typing import Dict, List, Optional

DEFAULT_PORT = 5000
DEFAULT_URL_EXPIRY = "2500-03-01"
DEFAULT_INGEST_TIMEOUT_SECONDS = 120.0


def _get_env(name: str, default: Optional[str] = None) -> Optional[str]:
    return os.getenv(name, default)


def _truthy(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in {"1", "true", "yes", "on"}


def get_port() -> int:
    raw = _get_env("PORT")
    if not raw:
        return DEFAULT_PORT
    try:
        return int(raw)
    except ValueError as exc:
        raise RuntimeError(f"PORT must be an integer. Got: '{raw}'") from exc


def get_firestore_project() -> Optional[str]:
    return _get_env("GCP_PROJECT_ID") or _get_env("GCP_PROJECT")


def get_gcs_project() -> Optional[str]:
    return _get_env("GCS_PROJECT_ID") or get_firestore_project()


def get_environments_bucket() -> Optional[str]:
    return _get_env("ENVIRONMENTS_BUCKET") or _get_env("FIREBASE_STORAGE_BUCKET")


def get_blob_backend() -> str:
    return (_get_env("BLOB_BACKEND") or "gcs").lower()


def get_blob_fs_dir() -> str:
    return _get_env("BLOB_FS_DIR") or "/tmp/eldercare-blobs"


def get_document_backend() -> str:
    return (_get_env("DOCUMENT_BACKEND") or "firestore").lower()


def get_url_expiry() -> datetime:
    """Expiry stamped on issued download URLs.

    Defaults to a far-future date so stored records stay dereferenceable;
    set ENVIRONMENTS_URL_EXPIRY to an ISO date to shorten it. An unparsable
    value raises instead of falling back to the far-future default.
    """
    raw = _get_env("ENVIRONMENTS_URL_EXPIRY") or DEFAULT_URL_EXPIRY
    try:
        value = datetime.fromisoformat(raw)
    except ValueError as exc:
        raise RuntimeError(f"ENVIRONMENTS_URL_EXPIRY must be an ISO date. Got: '{raw}'") from exc
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def get_ingest_timeout_seconds() -> Optional[float]:
    raw = _get_env("ENVIRONMENTS_INGEST_TIMEOUT_SECONDS")
    if raw is None or raw == "":
        return DEFAULT_INGEST_TIMEOUT_SECONDS
    try:
        value = float(raw)
    except ValueError:
        return DEFAULT_INGEST_TIMEOUT_SECONDS
    # 0 or negative disables the deadline
    return value if value > 0 else None


def rollback_orphans_enabled() -> bool:
    return _truthy(_get_env("ENVIRONMENTS_ROLLBACK_ORPHANS"))


def get_cors_allow_origins() -> List[str]:
    raw = _get_env("CORS_ALLOW_ORIGINS") or "*"
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


def config_snapshot() -> Dict[str, object]:
    return {
        "port": get_port(),
        "firestore_project": get_firestore_project(),
        "environments_bucket": get_environments_bucket(),
        "blob_backend": get_blob_backend(),
        "document_backend": get_document_backend(),
        "url_expiry": get_url_expiry().isoformat(),
        "ingest_timeout_seconds": get_ingest_timeout_seconds(),
        "rollback_orphans": rollback_orphans_enabled(),
    }
