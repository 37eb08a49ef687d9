import os
import sys
from pathlib import Path

import pytest

# Ensure repo root on sys.path for imports from anywhere in tests tree.
ROOT = Path(__file__).resolve().parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("BLOB_BACKEND", "memory")
os.environ.setdefault("DOCUMENT_BACKEND", "memory")
os.environ.setdefault("GCP_PROJECT", "test-project")
os.environ.setdefault("ENVIRONMENTS_BUCKET", "test-environments")

from eldercare.environments.service import set_ingestion_pipeline  # noqa: E402
from eldercare.storage.state import set_blob_store, set_document_store  # noqa: E402
from eldercare.users.service import set_user_service  # noqa: E402


@pytest.fixture(autouse=True)
def _reset_shared_state():
    set_blob_store(None)
    set_document_store(None)
    set_ingestion_pipeline(None)
    set_user_service(None)
    yield
