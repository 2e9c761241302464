"""
backend/storage.py

Evidence object storage.

EvidenceStore is the interface the project/user modules talk to; the
Cloudinary implementation is the production one. Upload policy (allowed MIME
types and size caps) is checked here before any bytes leave the process.
"""

from __future__ import annotations

import io
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Tuple, Union

import cloudinary
import cloudinary.uploader

from backend.config import (
    CLOUDINARY_API_KEY,
    CLOUDINARY_API_SECRET,
    CLOUDINARY_CLOUD_NAME,
    IS_DEV,
    MAX_DOCUMENT_BYTES,
    MAX_IMAGE_BYTES,
    UPLOAD_FOLDER,
)
from backend.errors import StorageError, ValidationError

IMAGE_TYPES = {
    "image/jpeg",
    "image/jpg",
    "image/png",
    "image/gif",
    "image/webp",
}

DOCUMENT_TYPES = {
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "text/plain",
    "application/geo+json",
}

UPLOAD_POLICIES = {
    "image": (IMAGE_TYPES, MAX_IMAGE_BYTES),
    "document": (DOCUMENT_TYPES, MAX_DOCUMENT_BYTES),
}

# Images are capped at 1000x1000 with automatic quality, like the baseline uploads
IMAGE_TRANSFORMATION = [
    {"width": 1000, "height": 1000, "crop": "limit"},
    {"quality": "auto"},
]


@dataclass
class UploadPayload:
    """A file received from a client, ready for policy checks and upload."""
    data: bytes
    content_type: str
    filename: str = ""

    @property
    def size(self) -> int:
        return len(self.data)


def parse_data_uri(data_uri: str) -> Tuple[str, int]:
    """
    Return (content_type, approximate decoded size) for a base64 data URI.

    Raises:
        ValidationError: not a base64 data URI
    """
    if not data_uri or not data_uri.startswith("data:") or "," not in data_uri:
        raise ValidationError("Image must be a base64 data URI")
    header, encoded = data_uri.split(",", 1)
    if ";base64" not in header:
        raise ValidationError("Image must be a base64 data URI")
    content_type = header[5:].split(";", 1)[0]
    return content_type, len(encoded) * 3 // 4


def validate_upload(kind: str, content_type: str, size: int) -> None:
    """
    Enforce the MIME/size policy for an upload kind ("image" or "document").

    Raises:
        ValidationError: unknown kind, disallowed type, or payload too large
    """
    if kind not in UPLOAD_POLICIES:
        raise ValidationError(f"Unknown upload kind: {kind}")
    allowed_types, max_bytes = UPLOAD_POLICIES[kind]
    if (content_type or "").lower() not in allowed_types:
        raise ValidationError(f"Invalid file type: {content_type}")
    if size > max_bytes:
        raise ValidationError(f"File too large (max {max_bytes // (1024 * 1024)}MB)")


class EvidenceStore(ABC):
    """Stores evidence payloads and hands back a stable URL + opaque id."""

    @abstractmethod
    def upload(self, data: Union[bytes, str], folder: str, kind: str = "image") -> Dict[str, str]:
        """Upload bytes or a base64 data URI; returns {"url", "public_id"}."""

    @abstractmethod
    def delete(self, public_id: str, kind: str = "image") -> None:
        """Release a stored object by its opaque id."""


class CloudinaryEvidenceStore(EvidenceStore):
    def __init__(self, cloud_name: str = CLOUDINARY_CLOUD_NAME, api_key: str = CLOUDINARY_API_KEY,
                 api_secret: str = CLOUDINARY_API_SECRET, base_folder: str = UPLOAD_FOLDER):
        cloudinary.config(
            cloud_name=cloud_name,
            api_key=api_key,
            api_secret=api_secret,
            secure=True,
        )
        self.base_folder = base_folder

    def upload(self, data: Union[bytes, str], folder: str, kind: str = "image") -> Dict[str, str]:
        options = {"folder": f"{self.base_folder}/{folder}"}
        if kind == "image":
            options["transformation"] = IMAGE_TRANSFORMATION
        else:
            options["resource_type"] = "raw"

        payload = io.BytesIO(data) if isinstance(data, bytes) else data
        try:
            result = cloudinary.uploader.upload(payload, **options)
        except Exception as e:  # SDK and transport errors alike
            print(f"[STORAGE] Upload failed: folder={options['folder']}, error={e}")
            raise StorageError("Failed to upload evidence")

        if IS_DEV:
            print(f"[STORAGE] Uploaded: public_id={result.get('public_id')}")
        return {"url": result["secure_url"], "public_id": result["public_id"]}

    def delete(self, public_id: str, kind: str = "image") -> None:
        resource_type = "image" if kind == "image" else "raw"
        try:
            cloudinary.uploader.destroy(public_id, resource_type=resource_type)
        except Exception as e:  # SDK and transport errors alike
            print(f"[STORAGE] Delete failed: public_id={public_id}, error={e}")
            raise StorageError("Failed to delete evidence")

        if IS_DEV:
            print(f"[STORAGE] Deleted: public_id={public_id}")
