"""Tests for certificate file storage."""

from unittest.mock import MagicMock

import pytest
from urllib3.exceptions import HTTPError

from bloodlink_api.errors import UpstreamUnavailableError, ValidationError
from bloodlink_api.storage.service import (
    LocalFileStore,
    MinioFileStore,
    build_object_key,
    sanitize_file_name,
)


def test_build_object_key():
    assert build_object_key("donor-1", "blood test.pdf", 1700000000000) == (
        "donor-1/1700000000000_blood_test.pdf"
    )


def test_object_key_cannot_traverse():
    key = build_object_key("../../etc", "../passwd", 1)
    assert key == ".._.._etc/1_.._passwd"


def test_object_key_requires_owner_and_name():
    with pytest.raises(ValidationError):
        build_object_key("", "a.pdf")
    with pytest.raises(ValidationError):
        build_object_key("donor", "")


def test_sanitize_file_name():
    assert sanitize_file_name("résumé (1).pdf") == "r_sum___1_.pdf"


class TestLocalFileStore:
    def test_round_trip(self, file_store):
        locator = file_store.upload(b"%PDF", "donor-1", "cert.pdf", "application/pdf")
        assert locator.startswith("donor-1/")
        assert file_store.download(locator) == b"%PDF"

    def test_missing_file(self, file_store):
        with pytest.raises(FileNotFoundError):
            file_store.download("donor-1/0_missing.pdf")

    def test_locator_outside_root_rejected(self, file_store):
        with pytest.raises(ValidationError):
            file_store.download("../../outside.pdf")

    def test_delete(self, file_store):
        locator = file_store.upload(b"%PDF", "donor-1", "cert.pdf", "application/pdf")
        file_store.delete(locator)
        with pytest.raises(FileNotFoundError):
            file_store.download(locator)
        # already gone
        file_store.delete(locator)

    def test_is_available(self, tmp_path):
        assert LocalFileStore(str(tmp_path / "new")).is_available() is True


class TestMinioFileStore:
    def test_upload_creates_bucket_once(self):
        client = MagicMock()
        client.bucket_exists.return_value = False
        store = MinioFileStore(client, "certificates")

        first = store.upload(b"one", "donor-1", "a.pdf", "application/pdf")
        store.upload(b"two", "donor-1", "b.pdf", "application/pdf")

        client.make_bucket.assert_called_once_with("certificates")
        bucket, key, _stream = client.put_object.call_args_list[0].args
        assert bucket == "certificates"
        assert key == first
        assert client.put_object.call_args_list[0].kwargs["length"] == 3
        assert client.put_object.call_args_list[0].kwargs["content_type"] == "application/pdf"

    def test_download(self):
        client = MagicMock()
        client.get_object.return_value.read.return_value = b"%PDF"
        store = MinioFileStore(client, "certificates")

        assert store.download("donor-1/1_a.pdf") == b"%PDF"
        client.get_object.return_value.close.assert_called_once()
        client.get_object.return_value.release_conn.assert_called_once()

    def test_connection_failure_is_unavailable(self):
        client = MagicMock()
        client.get_object.side_effect = HTTPError("connection refused")
        store = MinioFileStore(client, "certificates")

        with pytest.raises(UpstreamUnavailableError) as exc_info:
            store.download("donor-1/1_a.pdf")
        assert exc_info.value.service == "file store"

    def test_upload_failure_is_unavailable(self):
        client = MagicMock()
        client.bucket_exists.return_value = True
        client.put_object.side_effect = OSError("disk full")
        store = MinioFileStore(client, "certificates")

        with pytest.raises(UpstreamUnavailableError):
            store.upload(b"one", "donor-1", "a.pdf")

    def test_is_available(self):
        client = MagicMock()
        client.bucket_exists.side_effect = HTTPError("down")
        assert MinioFileStore(client, "certificates").is_available() is False

    def test_delete(self):
        client = MagicMock()
        MinioFileStore(client, "certificates").delete("donor-1/1_a.pdf")
        client.remove_object.assert_called_once_with("certificates", "donor-1/1_a.pdf")

    def test_delete_failure_is_unavailable(self):
        client = MagicMock()
        client.remove_object.side_effect = HTTPError("connection refused")

        with pytest.raises(UpstreamUnavailableError):
            MinioFileStore(client, "certificates").delete("donor-1/1_a.pdf")
