"""Storage key generation for uploaded environment bundles."""
from __future__ import annotations

import time
from pathlib import PurePosixPath, PureWindowsPath
from typing import Optional

ENVIRONMENTS_PREFIX = "unreal-envs"
FALLBACK_FILENAME = "upload.bin"


def _safe_name(filename: str) -> str:
    # browsers on Windows may send the full client path
    name = PureWindowsPath(PurePosixPath(filename or "").name).name.strip()
    if name in ("", ".", ".."):
        return FALLBACK_FILENAME
    return name


def generate_storage_key(
    filename: str,
    now_ms: Optional[int] = None,
    prefix: str = ENVIRONMENTS_PREFIX,
) -> str:
    """Return ``<prefix>/<epoch-millis>_<filename>``.

    Two calls within the same millisecond for the same filename produce the
    same key; callers relying on uniqueness need a millisecond-resolution clock.
    """
    if now_ms is None:
        now_ms = time.time_ns() // 1_000_000
    return f"{prefix}/{int(now_ms)}_{_safe_name(filename)}"
