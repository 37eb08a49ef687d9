from datetime import datetime, timedelta, timezone
from unittest import mock

import pytest

from eldercare.storage.blob_store import (
    FilesystemBlobStore,
    GcsBlobStore,
    InMemoryBlobStore,
    StorageFailure,
    build_blob_store,
    validate_key,
)

KEY = "unreal-envs/1700000000000_scene.pak"


def _gcs_store():
    client = mock.MagicMock()
    blob = client.bucket.return_value.blob.return_value
    store = GcsBlobStore(bucket="test-envs", client=client)
    return store, client, blob


def test_gcs_save_uploads_with_content_type():
    store, client, blob = _gcs_store()
    store.save(KEY, b"0123456789", "application/octet-stream")

    client.bucket.assert_called_once_with("test-envs")
    client.bucket.return_value.blob.assert_called_with(KEY)
    blob.upload_from_string.assert_called_once_with(
        b"0123456789", content_type="application/octet-stream", if_generation_match=0
    )


def test_gcs_save_over_existing_object_fails():
    store, _, blob = _gcs_store()
    blob.upload_from_string.side_effect = RuntimeError("412 conditionNotMet")

    with pytest.raises(StorageFailure) as excinfo:
        store.save(KEY, b"second", None)
    assert excinfo.value.key == KEY
    assert blob.upload_from_string.call_args.kwargs["if_generation_match"] == 0


def test_gcs_save_wraps_client_errors():
    store, _, blob = _gcs_store()
    blob.upload_from_string.side_effect = RuntimeError("quota exceeded")

    with pytest.raises(StorageFailure) as excinfo:
        store.save(KEY, b"abc", None)
    assert excinfo.value.key == KEY
    assert "quota exceeded" in str(excinfo.value)


def test_gcs_far_future_expiry_uses_v2_signing():
    store, _, blob = _gcs_store()
    blob.exists.return_value = True
    blob.generate_signed_url.return_value = "https://storage.googleapis.com/test-envs/signed"

    url = store.issue_retrieval_url(KEY, datetime(2500, 3, 1, tzinfo=timezone.utc))

    assert url == "https://storage.googleapis.com/test-envs/signed"
    kwargs = blob.generate_signed_url.call_args.kwargs
    assert kwargs["version"] == "v2"
    assert kwargs["method"] == "GET"
    assert kwargs["expiration"] == datetime(2500, 3, 1, tzinfo=timezone.utc)


def test_gcs_short_expiry_uses_v4_signing():
    store, _, blob = _gcs_store()
    blob.exists.return_value = True
    store.issue_retrieval_url(KEY, timedelta(hours=1))
    assert blob.generate_signed_url.call_args.kwargs["version"] == "v4"


def test_gcs_issue_url_for_missing_blob_fails():
    store, _, blob = _gcs_store()
    blob.exists.return_value = False

    with pytest.raises(StorageFailure):
        store.issue_retrieval_url(KEY, timedelta(days=1))
    blob.generate_signed_url.assert_not_called()


def test_gcs_signing_errors_become_storage_failures():
    store, _, blob = _gcs_store()
    blob.exists.return_value = True
    blob.generate_signed_url.side_effect = AttributeError("you need a private key to sign credentials")

    with pytest.raises(StorageFailure):
        store.issue_retrieval_url(KEY, timedelta(days=1))


def test_gcs_requires_bucket(monkeypatch):
    monkeypatch.delenv("ENVIRONMENTS_BUCKET", raising=False)
    monkeypatch.delenv("FIREBASE_STORAGE_BUCKET", raising=False)
    with pytest.raises(RuntimeError):
        GcsBlobStore(client=mock.MagicMock())


@pytest.mark.parametrize("key", ["", "   ", "/abs/key", "unreal-envs/../secrets", "a//b"])
def test_invalid_keys_rejected(key):
    with pytest.raises(StorageFailure):
        validate_key(key)


def test_invalid_key_never_reaches_gcs():
    store, _, blob = _gcs_store()
    with pytest.raises(StorageFailure):
        store.save("../escape", b"abc", None)
    blob.upload_from_string.assert_not_called()


def test_memory_url_round_trip():
    store = InMemoryBlobStore()
    store.save(KEY, b"\x00\x01payload", "application/octet-stream")

    url = store.issue_retrieval_url(KEY, timedelta(minutes=5))

    assert url.startswith("memory://memory-bucket/")
    assert store.open_url(url) == b"\x00\x01payload"


def test_memory_url_expires():
    store = InMemoryBlobStore()
    store.save(KEY, b"abc", None)
    url = store.issue_retrieval_url(KEY, timedelta(minutes=5))

    later = datetime.now(timezone.utc) + timedelta(hours=1)
    with pytest.raises(StorageFailure):
        store.open_url(url, now=later)


def test_memory_issue_url_for_missing_key_fails():
    with pytest.raises(StorageFailure):
        InMemoryBlobStore().issue_retrieval_url(KEY, timedelta(days=1))


def test_memory_save_is_write_once():
    store = InMemoryBlobStore()
    store.save(KEY, b"first", None)

    with pytest.raises(StorageFailure):
        store.save(KEY, b"second", None)
    assert store.blobs[KEY].payload == b"first"


def test_filesystem_save_is_write_once(tmp_path):
    store = FilesystemBlobStore(base_dir=str(tmp_path))
    store.save(KEY, b"first", None)

    with pytest.raises(StorageFailure):
        store.save(KEY, b"second", None)
    assert (tmp_path / KEY).read_bytes() == b"first"


def test_filesystem_store_writes_under_base_dir(tmp_path):
    store = FilesystemBlobStore(base_dir=str(tmp_path))
    store.save(KEY, b"bundle", "application/octet-stream")

    assert (tmp_path / KEY).read_bytes() == b"bundle"
    url = store.issue_retrieval_url(KEY, timedelta(days=1))
    assert url.startswith("file://")
    assert store.exists(KEY)

    store.delete(KEY)
    assert not store.exists(KEY)


def test_build_blob_store_backends(tmp_path, monkeypatch):
    assert isinstance(build_blob_store("memory"), InMemoryBlobStore)
    monkeypatch.setenv("BLOB_FS_DIR", str(tmp_path))
    assert isinstance(build_blob_store("filesystem"), FilesystemBlobStore)
    with pytest.raises(RuntimeError):
        build_blob_store("ftp")
