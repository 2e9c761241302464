"""
Evidence storage tests: upload policy, data URI parsing and the Cloudinary
store's mapping of SDK results and failures.

Run: pytest backend/test_storage.py -v
"""

from unittest.mock import patch

import pytest

from backend.config import MAX_IMAGE_BYTES
from backend.errors import StorageError, ValidationError
from backend.storage import CloudinaryEvidenceStore, UploadPayload, parse_data_uri, validate_upload


class TestPolicy:
    def test_allowed_types(self):
        validate_upload("image", "image/png", 1024)
        validate_upload("image", "IMAGE/JPEG", 1024)
        validate_upload("document", "application/pdf", 1024)

    def test_disallowed_type(self):
        with pytest.raises(ValidationError, match="Invalid file type"):
            validate_upload("image", "application/pdf", 1024)
        with pytest.raises(ValidationError):
            validate_upload("document", "image/png", 1024)

    def test_size_cap(self):
        validate_upload("image", "image/png", MAX_IMAGE_BYTES)
        with pytest.raises(ValidationError, match="too large"):
            validate_upload("image", "image/png", MAX_IMAGE_BYTES + 1)

    def test_unknown_kind(self):
        with pytest.raises(ValidationError):
            validate_upload("video", "video/mp4", 10)

    def test_payload_size(self):
        assert UploadPayload(data=b"12345", content_type="image/png").size == 5


class TestDataUri:
    def test_parses_type_and_size(self):
        content_type, size = parse_data_uri("data:image/jpeg;base64,AAAA")
        assert content_type == "image/jpeg"
        assert size == 3

    @pytest.mark.parametrize("value", ["", "hello", "data:image/png,rawdata", "https://example.org/a.png"])
    def test_rejects_non_base64_uris(self, value):
        with pytest.raises(ValidationError):
            parse_data_uri(value)


class TestCloudinaryStore:
    def test_image_upload(self):
        store = CloudinaryEvidenceStore(cloud_name="demo", api_key="k", api_secret="s", base_folder="blue-carbon")
        result = {"secure_url": "https://res.cloudinary.com/demo/a.png", "public_id": "blue-carbon/projects/a"}
        with patch("backend.storage.cloudinary.uploader.upload", return_value=result) as upload:
            stored = store.upload(b"\x89PNG", "projects", "image")

        assert stored == {"url": result["secure_url"], "public_id": result["public_id"]}
        _, kwargs = upload.call_args
        assert kwargs["folder"] == "blue-carbon/projects"
        assert "transformation" in kwargs

    def test_document_upload_is_raw(self):
        store = CloudinaryEvidenceStore(cloud_name="demo", api_key="k", api_secret="s")
        result = {"secure_url": "https://res.cloudinary.com/demo/r.pdf", "public_id": "blue-carbon/documents/r"}
        with patch("backend.storage.cloudinary.uploader.upload", return_value=result) as upload:
            store.upload(b"%PDF", "documents", "document")
        assert upload.call_args[1]["resource_type"] == "raw"

    def test_upload_failure_becomes_storage_error(self):
        store = CloudinaryEvidenceStore(cloud_name="demo", api_key="k", api_secret="s")
        with patch("backend.storage.cloudinary.uploader.upload", side_effect=RuntimeError("network down")):
            with pytest.raises(StorageError):
                store.upload(b"\x89PNG", "projects")

    def test_delete(self):
        store = CloudinaryEvidenceStore(cloud_name="demo", api_key="k", api_secret="s")
        with patch("backend.storage.cloudinary.uploader.destroy") as destroy:
            store.delete("blue-carbon/documents/r", "document")
        destroy.assert_called_once_with("blue-carbon/documents/r", resource_type="raw")

    def test_delete_failure_becomes_storage_error(self):
        store = CloudinaryEvidenceStore(cloud_name="demo", api_key="k", api_secret="s")
        with patch("backend.storage.cloudinary.uploader.destroy", side_effect=RuntimeError("timeout")):
            with pytest.raises(StorageError):
                store.delete("blue-carbon/projects/a")
