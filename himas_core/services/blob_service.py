# =============================================================================
# himas_core/services/blob_service.py
# Prescription File Upload
# =============================================================================

from __future__ import annotations
import re
from datetime import datetime
from typing import Optional

from himas_core.errors import IntegrationError
from .base_service import BaseService, ServiceResult

_UNSAFE = re.compile(r"[^A-Za-z0-9._-]+")


def safe_object_name(filename: str, prefix: str = "uploads") -> str:
    """Timestamped, path-safe object key, e.g. uploads/20240615T101500_scan.pdf."""
    stem = _UNSAFE.sub("_", filename.strip()) or "file"
    return f"{prefix}/{datetime.now().strftime('%Y%m%dT%H%M%S')}_{stem}"


class BlobService(BaseService):
    """
    Uploads files to a Supabase Storage bucket and returns their public URL.

    Usage:
        blobs = BlobService(client, bucket="prescriptions")
        url = blobs.upload("scan.pdf", data, "application/pdf")
    """

    service_name = "storage"

    def __init__(self, client, bucket: str = "prescriptions"):
        super().__init__()
        self.client = client
        self.bucket = bucket

    @property
    def is_configured(self) -> bool:
        return self.client is not None

    def upload(self, filename: str, content: bytes, content_type: Optional[str] = None) -> str:
        """
        Raises:
            IntegrationError: Storage not configured or the upload failed
        """
        self.require_configured()
        if not content:
            raise IntegrationError(f"{filename} is empty", service="storage")

        path = safe_object_name(filename)
        storage = self.client.storage.from_(self.bucket)
        try:
            storage.upload(path, content, {"content-type": content_type or "application/octet-stream"})
            url = storage.get_public_url(path)
        except Exception as e:
            raise IntegrationError(f"Upload of {filename} failed: {e}", service="storage") from e

        self.logger.info(f"Uploaded {filename} to {self.bucket}/{path}")
        return url

    def try_upload(self, filename: str, content: bytes, content_type: Optional[str] = None) -> ServiceResult:
        """upload() for UI callers that prefer a result object to an exception."""
        return self.safe_execute(f"Uploading {filename}", self.upload, filename, content, content_type)
